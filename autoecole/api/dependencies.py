# autoecole/api/dependencies.py
"""
FastAPI dependencies for the scheduling API.

Callers are authenticated upstream by the identity provider, which forwards
the asserted user id and role as request headers.
"""

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.principal import Principal
from ..database import get_db as original_get_db
from ..engine import SchedulingEngine


def get_db() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields:
        Database session that will be closed after use
    """
    yield from original_get_db()


def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Principal:
    """Build the calling principal from the identity headers."""
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers",
        )
    try:
        role = RoleName(x_user_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}",
        )
    return Principal(user_id=x_user_id, role=role)


def get_engine(db: Session = Depends(get_db)) -> SchedulingEngine:
    """Engine bound to the request's session."""
    return SchedulingEngine(db)
