"""Structured outcome returned by every public engine operation."""
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from ..core.exceptions import DomainException

T = TypeVar("T")


class ErrorInfo(BaseModel):
    code: str
    category: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class OperationResult(BaseModel, Generic[T]):
    """Success flag plus either data or an error description."""

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: DomainException) -> "OperationResult[T]":
        return cls(
            success=False,
            error=ErrorInfo(
                code=exc.code,
                category=exc.category,
                message=exc.message,
                details=exc.details,
            ),
        )
