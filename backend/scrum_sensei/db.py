from __future__ import annotations
import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker


LOGGER = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
	cursor = dbapi_connection.cursor()
	cursor.execute("PRAGMA foreign_keys=ON")
	cursor.close()


class Database:
	"""Owns the engine and session factory for one application instance."""

	def __init__(self, url: str) -> None:
		self.url = url
		connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
		self.engine: Engine = create_engine(url, connect_args=connect_args, future=True)
		if url.startswith("sqlite"):
			event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
		self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, future=True)

	def create_all(self) -> None:
		# Import registers the mapped classes on Base.metadata
		from . import models  # noqa: F401

		Base.metadata.create_all(bind=self.engine)
		try:
			ensure_schema(self.engine)
		except Exception:
			LOGGER.exception("Schema upgrade failed for %s", self.url)

	def session(self) -> Session:
		return self.SessionLocal()

	def dispose(self) -> None:
		self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
	db = request.app.state.database.session()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for database files created by older builds
_COLUMN_UPGRADES = {
	"materials": {
		"description": "TEXT",
		"content": "TEXT",
		"status": "VARCHAR(16) DEFAULT 'draft'",
		"file_path": "TEXT",
		"published_at": "DATETIME",
	},
	"questions": {
		"explanation": "TEXT",
	},
	"advice": {
		"sources": "TEXT",
		"metadata_json": "TEXT",
	},
}


def ensure_schema(engine: Engine) -> None:
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	with engine.begin() as conn:
		for table, columns in _COLUMN_UPGRADES.items():
			if table not in tables:
				continue
			existing = {c["name"] for c in inspector.get_columns(table)}
			for name, ddl in columns.items():
				if name not in existing:
					LOGGER.info("Adding missing column %s.%s", table, name)
					conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
