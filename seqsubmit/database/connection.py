from typing import Any

import psycopg

from seqsubmit.config.settings import Settings


def build_conninfo(settings: Settings) -> str:
    """Build a libpq connection string from settings."""
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


async def open_listen_connection(conninfo: str) -> psycopg.AsyncConnection[Any]:
    """Open a dedicated autocommit connection for LISTEN/NOTIFY.

    Notifications are only delivered outside of a transaction, so the
    connection must never sit in an open transaction block.
    """
    return await psycopg.AsyncConnection.connect(conninfo, autocommit=True)
