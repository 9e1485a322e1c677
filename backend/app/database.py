import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import SchemaError

logger = logging.getLogger(__name__)

Base = declarative_base()


def _normalize_database_url(url: str) -> str:
    # Allow simpler `.env` values like `postgres://...` and upgrade to the driver form.
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


class Database:
    """
    Storage handle: owns the engine and session factory for one process.

    Constructed once at startup (or per test) and passed into every component that
    touches storage; `dispose()` releases the pool on shutdown.
    """

    def __init__(self, url: str):
        self.url = _normalize_database_url((url or "").strip())
        engine_kwargs: dict = {"pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            # FastAPI/uvicorn may touch the connection from several threads.
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(self.url, **engine_kwargs)

        if self.is_sqlite:
            @event.listens_for(self.engine, "connect")
            def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
                cursor = dbapi_connection.cursor()
                # Foreign keys are off by default in SQLite; upserts rely on them.
                cursor.execute("PRAGMA foreign_keys=ON;")
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA busy_timeout=30000;")
                cursor.close()

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @property
    def dialect(self) -> str:
        return str(self.engine.dialect.name).lower()

    @property
    def is_sqlite(self) -> bool:
        return self.dialect == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.dialect == "postgresql"

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def init_schema(self) -> None:
        # Import models so they register with SQLAlchemy metadata before create_all.
        from .models import food, location, schedule, truck  # noqa: F401

        logger.info("initializing database schema (%s)...", self.dialect)
        try:
            if self.is_postgres:
                with self.engine.begin() as conn:
                    conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise SchemaError(f"failed to initialize database schema: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()

