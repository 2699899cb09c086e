"""
Database engine for the wizard session store.
PostgreSQL via asyncpg with the SQLAlchemy 2 async engine; the only table is
wizard_sessions.
"""

import logging
import ssl
from datetime import datetime, timedelta, timezone
from sqlalchemy import delete, text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from adwizard.config import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _get_connect_args(config: Settings | None = None) -> dict:
    """asyncpg connect args; DATABASE_SSL_INSECURE turns on TLS without certificate checks."""
    config = config or settings
    args = {"timeout": 30}
    if config.database_ssl_insecure:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return args


# Wizard traffic is a handful of short reads/writes per page load
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=3,
    max_overflow=5,
    pool_pre_ping=True,
    connect_args=_get_connect_args(),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db():
    """Create wizard_sessions if missing. Schema changes go through Alembic."""
    import adwizard.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Session tables ready: {', '.join(Base.metadata.tables.keys())}")


async def purge_expired_sessions(max_age_days: int | None = None) -> int:
    """
    Delete sessions untouched for longer than the cookie lifetime; their
    cookies have expired so nobody can resume them. Returns the row count.
    """
    from adwizard.models import WizardSessionRecord

    max_age_days = max_age_days or settings.session_max_age_days
    cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=max_age_days)
    async with async_session() as db:
        async with db.begin():
            result = await db.execute(
                delete(WizardSessionRecord).where(WizardSessionRecord.updated_at < cutoff)
            )
    if result.rowcount:
        logger.info(f"Purged {result.rowcount} wizard sessions idle for more than {max_age_days} days")
    return result.rowcount or 0


async def check_db_connection() -> bool:
    """Test database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
