from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .settings import settings

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./ielts.db"

Base = declarative_base()


class _Storage:
	"""Process-wide engine and session factory, owned by the app lifecycle."""

	def __init__(self) -> None:
		self.engine: Optional[Engine] = None
		self.session_factory: Optional[sessionmaker] = None


_storage = _Storage()


def _engine_kwargs(url: str) -> dict:
	if not url.startswith("sqlite"):
		return {"pool_pre_ping": True}
	kwargs: dict = {"connect_args": {"check_same_thread": False}}
	# In-memory SQLite only lives as long as its single connection
	if url in ("sqlite://", "sqlite:///:memory:"):
		kwargs["poolclass"] = StaticPool
	return kwargs


def init_db(url: Optional[str] = None) -> Engine:
	"""Create the engine, the session factory and all tables."""
	if _storage.engine is not None:
		close_db()
	database_url = url or settings.database_url or DEFAULT_DATABASE_URL
	engine = create_engine(database_url, future=True, **_engine_kwargs(database_url))
	# Models register themselves on Base at import time
	from . import models  # noqa: F401

	Base.metadata.create_all(bind=engine)
	_storage.engine = engine
	_storage.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
	logger.info("Database initialized (%s)", engine.url.get_backend_name())
	return engine


def close_db() -> None:
	if _storage.engine is not None:
		_storage.engine.dispose()
		logger.info("Database connections closed")
	_storage.engine = None
	_storage.session_factory = None


def get_engine() -> Engine:
	if _storage.engine is None:
		raise RuntimeError("Database is not initialized; call init_db() first")
	return _storage.engine


def new_session() -> Session:
	if _storage.session_factory is None:
		raise RuntimeError("Database is not initialized; call init_db() first")
	return _storage.session_factory()


def get_db() -> Iterator[Session]:
	db = new_session()
	try:
		yield db
	finally:
		db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
	# For work outside a request, e.g. background tasks and startup seeding
	db = new_session()
	try:
		yield db
	finally:
		db.close()
