"""Database engine and base declarative models."""

from __future__ import annotations

from typing import Any

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from config.settings import get_settings


class Base(DeclarativeBase):
    """Declarative base model."""


def build_engine(database_url: str) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": False, "future": True}
    if database_url.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them.
        kwargs["poolclass"] = pool.NullPool
    return create_async_engine(database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


settings = get_settings()
engine = build_engine(settings.database_url)
AsyncSessionFactory = build_session_factory(engine)


async def create_schema(bind: AsyncEngine) -> None:
    # Import models so metadata is populated.
    import db.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize database schema.

    In local/dev environments we can auto-create tables. In higher environments,
    prefer Alembic migrations and set `AUTO_CREATE_DB_SCHEMA=false`.
    """

    if not settings.auto_create_db_schema:
        return

    await create_schema(engine)
