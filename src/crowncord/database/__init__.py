"""
Database package for Crowncord.

Public API:
    - db_connection: the process-wide ConnectionManager
    - initialize_database: open the connection and create the schema
"""

from pathlib import Path

from crowncord.database.db_connection import ConnectionManager, db_connection
from crowncord.database.db_schema import SchemaManager


async def initialize_database(path: Path, connection: ConnectionManager = db_connection) -> None:
    """Open ``connection`` on ``path`` and make sure every table exists."""
    await connection.open(path)
    async with connection.transaction() as conn:
        await SchemaManager.initialize_schema(conn)
