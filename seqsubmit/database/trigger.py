from typing import Any

import psycopg
from psycopg import sql

UPLOAD_TABLE = "upload"
NOTIFY_FUNCTION = "notify_upload_change"

_CREATE_FUNCTION = sql.SQL(
    """
    CREATE OR REPLACE FUNCTION {function}() RETURNS trigger AS $$
    BEGIN
        PERFORM pg_notify(TG_ARGV[0], row_to_json(NEW)::text);
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """
)

_DROP_TRIGGER = sql.SQL("DROP TRIGGER IF EXISTS {trigger} ON {table}")

_CREATE_TRIGGER = sql.SQL(
    """
    CREATE TRIGGER {trigger}
    AFTER INSERT OR UPDATE ON {table}
    FOR EACH ROW EXECUTE FUNCTION {function}({channel})
    """
)


def trigger_name(channel: str) -> str:
    return f"{channel}_trigger"


async def install_notification_trigger(
    conn: psycopg.AsyncConnection[Any],
    channel: str,
    table: str = UPLOAD_TABLE,
) -> None:
    """(Re)create the row trigger that NOTIFYs every insert/update on the upload table.

    The payload is the full row as JSON, which is what UploadRecord.from_json
    expects. Idempotent.
    """
    params = {
        "function": sql.Identifier(NOTIFY_FUNCTION),
        "trigger": sql.Identifier(trigger_name(channel)),
        "table": sql.Identifier(table),
        "channel": sql.Literal(channel),
    }
    await conn.execute(_CREATE_FUNCTION.format(**params))
    await conn.execute(_DROP_TRIGGER.format(**params))
    await conn.execute(_CREATE_TRIGGER.format(**params))
    if not conn.autocommit:
        await conn.commit()
