"""Database abstraction layer for switchboard persistence (SQLite only)"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Optional, Union

from loguru import logger
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    event,
    func,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from switchboard.core.exceptions import PersistenceError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp stored as naive UTC and read back as aware UTC.

    SQLite keeps no offset, so values are converted before they are written.
    Naive inputs are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base"""

    pass


class ProviderModel(Base):
    """Provider database model"""

    __tablename__ = "cc_providers"
    __table_args__ = (
        # At most one current provider per app type, enforced by the engine too
        Index(
            "uq_cc_providers_current",
            "app_type",
            unique=True,
            sqlite_where=text("is_current = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    app_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="claude", index=True
    )
    settings_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    website_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="custom")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    icon_color: Mapped[str] = mapped_column(
        String(20), nullable=False, default="#6366f1"
    )
    is_current: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    sort_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class PromptModel(Base):
    """System prompt database model"""

    __tablename__ = "cc_prompts"
    __table_args__ = (
        Index(
            "uq_cc_prompts_enabled",
            "app_type",
            unique=True,
            sqlite_where=text("is_enabled = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    app_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="claude", index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class McpServerModel(Base):
    """MCP server database model"""

    __tablename__ = "cc_mcp_servers"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    command: Mapped[str] = mapped_column(Text, nullable=False)
    args: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    env: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    enabled_claude: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enabled_codex: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enabled_gemini: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class SpeedTestModel(Base):
    """Provider probe result database model"""

    __tablename__ = "cc_speed_tests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("cc_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    app_type: Mapped[str] = mapped_column(String(20), nullable=False)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    http_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    tested_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, index=True
    )


class SettingModel(Base):
    """Key/value application setting (JSON values)"""

    __tablename__ = "cc_settings"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class DatabaseConfig:
    """Database configuration (SQLite only)"""

    def __init__(
        self,
        url: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
        busy_timeout: float = 30.0,
        echo: bool = False,
    ):
        if url:
            self.url = self._convert_url(url)
        else:
            if path is None:
                from switchboard.core.config import get_config

                path = get_config().db_path
            self.url = f"sqlite+aiosqlite:///{Path(path).expanduser()}"
        self.busy_timeout = busy_timeout
        self.echo = echo

    @staticmethod
    def _convert_url(url: str) -> str:
        """Convert a sqlite:// URL to the async aiosqlite driver format"""
        if url.startswith("sqlite+aiosqlite://"):
            return url
        elif url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        else:
            raise ValueError(
                f"Unsupported database URL: {url}. Only SQLite is supported."
            )

    @property
    def file_path(self) -> Optional[Path]:
        """Database file path, or None for in-memory databases"""
        _, _, raw = self.url.partition(":///")
        if not raw or raw.startswith(":memory:"):
            return None
        return Path(raw)


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    """Per-connection pragmas: cascade deletes and non-blocking readers"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class Database:
    """Database connection manager (SQLite only)"""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected")
        return self._engine

    async def connect(self) -> None:
        """Create database connection and make sure the schema exists"""
        if self._engine is not None:
            return

        file_path = self.config.file_path
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(
            self.config.url,
            echo=self.config.echo,
            connect_args={"timeout": self.config.busy_timeout},
        )
        event.listen(self._engine.sync_engine, "connect", _configure_sqlite)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        await self.create_tables()

    async def disconnect(self) -> None:
        """Close database connection"""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    async def create_tables(self) -> None:
        """Create any missing tables and indexes"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create schema: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a transactional session; commits on success, rolls back on error.

        Database errors are re-raised as PersistenceError.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not connected")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database transaction rolled back: {e}")
                raise PersistenceError(str(e)) from e
            except BaseException:
                await session.rollback()
                raise

    async def is_empty(self) -> bool:
        """Check if database has no providers configured"""
        async with self.session() as session:
            count = await session.scalar(select(func.count()).select_from(ProviderModel))
            return not count


_database: Optional[Database] = None


def get_database() -> Optional[Database]:
    """Get global database instance"""
    return _database


async def init_database(config: Optional[DatabaseConfig] = None) -> Database:
    """Initialize and connect the global database"""
    global _database

    if _database is not None:
        return _database

    _database = Database(config)
    await _database.connect()
    logger.info(f"Database connected: {_database.config.url}")
    return _database


async def close_database() -> None:
    """Close database connection"""
    global _database
    if _database is not None:
        await _database.disconnect()
        _database = None
