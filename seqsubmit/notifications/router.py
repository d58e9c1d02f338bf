import asyncio
import itertools
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from types import TracebackType
from typing import Any

from seqsubmit.config.settings import Settings
from seqsubmit.database.models import UploadRecord
from seqsubmit.logging.logger import Log
from seqsubmit.notifications.exceptions import RouterStateError
from seqsubmit.notifications.listener import ChangeListener

_END = object()


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class Subscription:
    """One subscriber's filtered view of the upload stream.

    Events are buffered in a bounded queue; when the subscriber falls behind,
    the oldest buffered event is dropped so the router never waits on it.
    """

    def __init__(
        self,
        router: "NotificationRouter",
        subscription_id: int,
        user_id: uuid.UUID,
        submission_id: uuid.UUID | None,
        queue_size: int,
    ) -> None:
        self.id = subscription_id
        self.user_id = user_id
        self.submission_id = submission_id
        self.dropped = 0
        self._router = router
        self._queue_size = max(1, queue_size)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._ended = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, record: UploadRecord) -> bool:
        if record.user_id != self.user_id:
            return False
        return self.submission_id is None or record.submission_id == self.submission_id

    def deliver(self, record: UploadRecord) -> None:
        if self._closed or self._ended:
            return
        if self._queue.qsize() >= self._queue_size:
            self._queue.get_nowait()
            self.dropped += 1
            Log.warning(
                f"Subscriber {self.id} is falling behind, dropped oldest event "
                f"({self.dropped} so far)"
            )
        self._queue.put_nowait(record)

    def end(self) -> None:
        """Stop iteration once already buffered events are consumed."""
        if self._ended:
            return
        self._ended = True
        # the end marker sits outside the bound so no buffered event is evicted
        self._queue.put_nowait(_END)

    def close(self) -> None:
        """Unregister from the router; no further events are returned."""
        if self._closed:
            return
        self._closed = True
        self._router.unsubscribe(self)
        self._ended = True
        self._queue.put_nowait(_END)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> UploadRecord:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END or self._closed:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class NotificationRouter:
    """Fans the listener's single stream out to per-user subscriptions.

    One pump task consumes ChangeListener.records() and hands every record to
    each matching subscription in arrival order. When the upstream ends or
    fails all subscriptions end with it; there is no reconnection.
    """

    def __init__(self, listener: ChangeListener, queue_size: int = 100) -> None:
        self._listener = listener
        self._queue_size = queue_size
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._task: asyncio.Task[None] | None = None
        self._finished = False

    @classmethod
    def from_settings(cls, settings: Settings, listener: ChangeListener) -> "NotificationRouter":
        return cls(listener, queue_size=settings.subscriber_queue_size)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            raise RouterStateError("Notification router already started")
        self._task = asyncio.create_task(self._pump(), name="upload-notification-router")

    async def stop(self) -> None:
        if self._task is None:
            return
        task = self._task
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def subscribe(
        self,
        user_id: uuid.UUID | str,
        submission_id: uuid.UUID | str | None = None,
    ) -> Subscription:
        subscription = Subscription(
            self,
            next(self._ids),
            _as_uuid(user_id),
            _as_uuid(submission_id) if submission_id is not None else None,
            self._queue_size,
        )
        if self._finished:
            subscription.end()
            return subscription
        self._subscriptions[subscription.id] = subscription
        Log.debug(
            f"Subscriber {subscription.id} registered for user {subscription.user_id}"
            f" submission {subscription.submission_id}"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is not None:
            Log.debug(f"Subscriber {subscription.id} unregistered")

    async def stream(
        self,
        user_id: uuid.UUID | str,
        submission_id: uuid.UUID | str | None = None,
    ) -> AsyncIterator[UploadRecord]:
        """Yield matching records until the caller stops iterating.

        The subscription is registered when iteration starts and removed when
        the generator is closed or cancelled.
        """
        subscription = self.subscribe(user_id, submission_id)
        try:
            async for record in subscription:
                yield record
        finally:
            subscription.close()

    async def stream_json(
        self,
        user_id: uuid.UUID | str,
        submission_id: uuid.UUID | str | None = None,
    ) -> AsyncIterator[str]:
        """Same as stream(), encoded as the JSON objects sent to clients."""
        subscription = self.subscribe(user_id, submission_id)
        try:
            async for record in subscription:
                yield record.to_json()
        finally:
            subscription.close()

    def _dispatch(self, record: UploadRecord) -> None:
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(record):
                subscription.deliver(record)

    async def _pump(self) -> None:
        try:
            async with aclosing(self._listener.records()) as records:
                async for record in records:
                    self._dispatch(record)
        except asyncio.CancelledError:
            raise
        except Exception:
            Log.exception("Upload notification stream failed, ending all subscriptions")
        else:
            Log.warning("Upload notification stream ended, ending all subscriptions")
        finally:
            self._finish()

    def _finish(self) -> None:
        self._finished = True
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.end()
