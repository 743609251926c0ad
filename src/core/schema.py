"""SQLite schema management (code-first approach).

Tables and indexes are declared by the registered feature modules and applied
idempotently at startup.
"""

import logging

from src.core import db_client
from src.core.module_registry import get_all_indexes, get_all_table_schemas


logger = logging.getLogger(__name__)


async def init_db(*, db_path: str | None = None) -> list[str]:
    """Create every module table and index that does not exist yet.

    Args:
        db_path: Optional override for the configured database path

    Returns:
        Names of the tables that were ensured
    """
    conn = await db_client.get_connection(db_path=db_path)
    schemas = get_all_table_schemas()

    for table_name, statement in schemas.items():
        await conn.execute(statement)
        logger.info("Ensured table", extra={"table": table_name})

    for statement in get_all_indexes():
        await conn.execute(statement)

    await conn.commit()
    logger.info("Database schema initialized", extra={"tables": list(schemas)})
    return list(schemas)
