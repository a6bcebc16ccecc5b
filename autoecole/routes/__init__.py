# All application routes are mounted under /api/v1
from . import (
    attendance as attendance,
    bookings as bookings,
    groups as groups,
    schedules as schedules,
)
