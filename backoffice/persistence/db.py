from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from backoffice.core.config import get_settings
from backoffice.core.errors import ConflictError, UnavailableError
from backoffice.persistence.models import Base

logger = logging.getLogger(__name__)


def create_engine_from_url(url: str):
    # FastAPI runs sync endpoints in a threadpool
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


settings = get_settings()
engine = create_engine_from_url(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        logger.warning("concurrent update detected: %s", exc)
        raise ConflictError("the record was changed by another request; reload and try again") from exc
    except OperationalError as exc:
        session.rollback()
        logger.warning("database unavailable: %s", exc)
        raise UnavailableError("the data store is temporarily unavailable") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session
