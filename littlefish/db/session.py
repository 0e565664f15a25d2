import logging
from typing import Generator

from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from littlefish.core.config import settings
from littlefish.core.errors import ServerError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # sessions are used from FastAPI's threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {
        "connect_args": {"connect_timeout": 30},
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session. Unexpected errors roll back and surface as 500."""
    db = SessionLocal()
    try:
        yield db
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("database session error")
        raise ServerError("Query data error")
    finally:
        db.close()
