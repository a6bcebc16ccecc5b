"""Helpers shared by the API routers."""

from typing import TypeVar

from fastapi import HTTPException

from ..core.exceptions import http_status_for_category
from ..schemas.result import OperationResult

T = TypeVar("T")


def unwrap(result: OperationResult[T]) -> T:
    """Return the result's data, or raise the HTTP error matching its category."""
    if result.success:
        return result.data
    error = result.error
    raise HTTPException(
        status_code=http_status_for_category(error.category),
        detail=error.model_dump(),
    )
