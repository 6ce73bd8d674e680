"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Builds the async engine and session factory, creates tables
and checks connectivity.

URL comes from ``DATABASE_URL`` (loaded via python-dotenv),
defaulting to a local SQLite file through aiosqlite.

============================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .models import Base
from .repository import StorageError
from .sql_repository import SqlTradingRepository


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./trading_engine.db"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and ":memory:" in self.url

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DatabaseConfig":
        env = os.environ if environ is None else environ
        return cls(
            url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            echo=env.get("DATABASE_ECHO", "false").lower() == "true",
        )

    def masked_url(self) -> str:
        return self.url.split("@")[-1] if "@" in self.url else self.url


class Database:
    """Owns the engine and session factory."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self.connect()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self.connect()
        return self._session_factory

    def connect(self) -> None:
        kwargs = {"echo": self.config.echo}
        if self.config.is_memory:
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        elif not self.config.is_sqlite:
            kwargs["pool_size"] = self.config.pool_size
            kwargs["max_overflow"] = self.config.max_overflow
            kwargs["pool_pre_ping"] = True

        self._engine = create_async_engine(self.config.url, **kwargs)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Database engine created for %s", self.config.masked_url())

    async def create_tables(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError("create_tables", str(e), cause=e) from e
        logger.info("Database tables ready: %s", ", ".join(sorted(Base.metadata.tables)))

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("Database health check failed: %s", e)
            return False

    def repository(self) -> SqlTradingRepository:
        return SqlTradingRepository(self.session_factory)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
