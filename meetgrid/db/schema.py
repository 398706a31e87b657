"""Schema bootstrap, run once when the pool opens."""

import logging

from meetgrid.db.migrations import get_current_version, run_migrations

logger = logging.getLogger(__name__)


async def _ensure_schema() -> None:
    """Apply pending migrations; a no-op on an up to date database."""
    before = await get_current_version()
    applied = await run_migrations()
    if applied:
        logger.info("db.schema migrated from=%d to=%d", before, await get_current_version())
    else:
        logger.info("db.schema current version=%d", before)
