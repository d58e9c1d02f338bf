from collections.abc import AsyncGenerator, Awaitable, Callable
from types import TracebackType
from typing import Any

import psycopg
from psycopg import sql

from seqsubmit.config.settings import Settings
from seqsubmit.database.connection import build_conninfo, open_listen_connection
from seqsubmit.database.exceptions import RecordDecodeError
from seqsubmit.database.models import UploadRecord
from seqsubmit.logging.logger import Log
from seqsubmit.notifications.exceptions import ListenerStateError

Connect = Callable[[str], Awaitable[psycopg.AsyncConnection[Any]]]


class ChangeListener:
    """Owns the single LISTEN connection on the upload notification channel.

    The sequence returned by records() is hot: notifications that arrive
    while nobody iterates are not replayed. Only the NotificationRouter
    should consume it.
    """

    def __init__(
        self,
        conninfo: str,
        channel: str = "upload_notification",
        connect: Connect = open_listen_connection,
    ) -> None:
        self._conninfo = conninfo
        self._channel = channel
        self._connect = connect
        self._conn: psycopg.AsyncConnection[Any] | None = None
        self._consuming = False
        self.decode_failures = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChangeListener":
        return cls(build_conninfo(settings), channel=settings.notification_channel)

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def is_listening(self) -> bool:
        return self._conn is not None

    async def start(self) -> None:
        """Open the connection and issue LISTEN once."""
        if self._conn is not None:
            raise ListenerStateError(f"Already listening on '{self._channel}'")
        conn = await self._connect(self._conninfo)
        try:
            await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self._channel)))
        except psycopg.Error:
            await conn.close()
            raise
        self._conn = conn
        Log.info(f"Listening for notifications on channel '{self._channel}'")

    async def stop(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        Log.info(f"Stopped listening on channel '{self._channel}'")

    async def __aenter__(self) -> "ChangeListener":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def records(self) -> AsyncGenerator[UploadRecord, None]:
        """Yield decoded upload rows as their notifications arrive.

        Empty payloads are dropped. Undecodable payloads are logged, counted in
        ``decode_failures`` and skipped so one bad row cannot stop the stream.
        Iteration ends when the connection is closed or lost.
        """
        if self._conn is None:
            raise ListenerStateError("Listener must be started before reading records")
        if self._consuming:
            raise ListenerStateError("Notification records are already being consumed")
        self._consuming = True
        try:
            async for notify in self._conn.notifies():
                record = self.decode(notify.payload)
                if record is not None:
                    yield record
        finally:
            self._consuming = False

    def decode(self, payload: str | None) -> UploadRecord | None:
        if not payload:
            Log.debug(f"Dropping notification without payload on '{self._channel}'")
            return None
        try:
            return UploadRecord.from_json(payload)
        except RecordDecodeError as exc:
            self.decode_failures += 1
            Log.error(
                f"Undecodable upload notification on '{self._channel}' "
                f"({self.decode_failures} so far): {exc}"
            )
            return None
