from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./mathtutor.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Lightweight migrations for development (SQLite-friendly)
def ensure_schema() -> None:
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	if "tutor_sessions" in tables:
		cols = {c["name"] for c in inspector.get_columns("tutor_sessions")}
		with engine.begin() as conn:
			if "current_step" not in cols:
				conn.exec_driver_sql("ALTER TABLE tutor_sessions ADD COLUMN current_step INTEGER DEFAULT 1 NOT NULL")
			if "transcript_json" not in cols:
				conn.exec_driver_sql("ALTER TABLE tutor_sessions ADD COLUMN transcript_json TEXT")
