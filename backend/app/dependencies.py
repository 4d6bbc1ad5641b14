"""
Shared FastAPI dependency helpers.

- `get_db` provides a SQLAlchemy session to each request and makes sure it's
  closed afterward.
- `service_errors` maps service-layer exceptions to HTTP responses so routers
  stay consistent:
      NotFoundError    → 404
      PeriodStateError → 409
      ValueError       → 400
"""

import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.db import SessionLocal  # noqa: E402
from app.services.errors import NotFoundError, PeriodStateError

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and close it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def service_errors(db: Session | None = None) -> Iterator[None]:
    try:
        yield
    except HTTPException:
        raise
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PeriodStateError as e:
        if db is not None:
            db.rollback()
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        if db is not None:
            db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        if db is not None:
            db.rollback()
        logger.exception("Unhandled service error")
        raise HTTPException(status_code=500, detail=f"Internal error: {type(e).__name__}") from e
