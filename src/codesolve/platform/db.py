"""
Declarative base, shared column mixins and the async engine used by billing persistence.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, String
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from codesolve.platform.settings import settings


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """created_at / updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )


class StrictTenantMixin:
    """Non-null, indexed tenant_id; every billing row belongs to one tenant."""

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)


_async_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine(
            settings.database.sqlalchemy_url,
            echo=settings.database.echo,
        )
    return _async_engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
    return _async_session_maker


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables registered on ``Base``."""
    # Register table modules on Base.metadata
    from codesolve.platform.audit import models as _audit_models  # noqa: F401
    from codesolve.platform.billing import tables as _billing_tables  # noqa: F401

    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
