"""Booking and scheduling consistency engine for the driving-school portal."""

__version__ = "0.1.0"
