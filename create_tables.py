"""
create_tables.py
----------------
One-shot script to create all database tables (tenants, users,
dispensaries, orders, compliance logs, daily reports).
Use this for quick setup. For production migrations, use Alembic instead.

Usage:
    python create_tables.py
"""

import asyncio

from sqlalchemy.ext.asyncio import create_async_engine

from compliance_api.core.config import settings
from compliance_api.core.logging import configure_logging, get_logger
from compliance_api.models import Base  # Imports all models so metadata is populated

logger = get_logger(__name__)


async def create_all_tables() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("All tables created", tables=sorted(Base.metadata.tables))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_all_tables())
