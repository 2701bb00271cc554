"""
Create any missing fulfillment tables. Idempotent; run after deploys:

    python -m app.db.schema_check
"""

import asyncio
import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import app.core.models  # noqa: F401  registers every table on Base.metadata
from app.core.logging import configure_logging
from app.db.session import Base, engine

logger = logging.getLogger(__name__)


REQUIRED_TABLES: List[str] = [
    "orders",
    "classes",
    "students",
    "order_status_logs",
    "audit_reports",
    "audit_trail_entries",
    "student_audits",
]


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create missing tables (and their indexes) in dependency order. Returns the tables created."""
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t for t in REQUIRED_TABLES if t not in existing]
        await conn.run_sync(Base.metadata.create_all)

    if missing:
        logger.info("Created missing tables: %s", ", ".join(missing))
    else:
        logger.info("All fulfillment tables already exist in the database.")
    return missing


async def main() -> None:
    configure_logging()
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
