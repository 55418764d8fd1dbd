"""Change notifier: committed store mutations become invalidation signals.

Signals exist only to tell a session "re-fetch now". Delivery is at-least-once
with no ordering across record sets, and the payload is advisory: consumers
must treat the next query as the source of truth.

Flow:
    service commits ──► after_commit hook ──► ChangeNotifier.publish
        ──► matching Subscription queues (any event loop, any thread)
        ──► RefetchCoalescer (one re-fetch per burst)

Signals are collected on ``after_flush`` and only published on ``after_commit``;
a rollback discards them. Core-level statements that bypass the unit of work
(the membership upsert, the conditional invitation update) register their
signals explicitly with ``note_change``.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from app.config import settings
from app.models.group import Group, GroupMember
from app.models.invitation import GroupInvitation

logger = logging.getLogger(__name__)

RECORD_SETS = ("groups", "memberships", "invitations")
FILTER_KEYS = ("group_id", "user_id", "email")

_PENDING_KEY = "pending_change_signals"
_CLOSED = object()


@dataclass(frozen=True)
class ChangeSignal:
    record_set: str
    action: str  # insert | update | delete
    record_id: Optional[str] = None
    keys: Mapping[str, Any] = field(default_factory=dict)

    def matches(self, record_set: str, filters: Mapping[str, Any]) -> bool:
        if record_set != self.record_set:
            return False
        return all(self.keys.get(k) == v for k, v in filters.items())


class Subscription:
    """Async iterator of signals for one subscriber.

    Bound to the event loop it was created on. The queue is bounded; when full
    the oldest signal is dropped, since any queued signal means "re-fetch".
    """

    def __init__(self, notifier: "ChangeNotifier", record_set: str, filters: Mapping[str, Any],
                 loop: asyncio.AbstractEventLoop, maxsize: int):
        self.record_set = record_set
        self.filters = dict(filters)
        self._notifier = notifier
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, signal: ChangeSignal) -> bool:
        return not self._closed and signal.matches(self.record_set, self.filters)

    def _put(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def _deliver(self, item) -> None:
        """Hand an item to the subscriber's loop from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._put(item)
        else:
            self._loop.call_soon_threadsafe(self._put, item)

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._notifier._remove(self)
        try:
            self._deliver(_CLOSED)
        except RuntimeError:
            # subscriber loop already closed
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeSignal:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.unsubscribe()


class ChangeNotifier:
    """Process-local fan-out of change signals to subscriptions."""

    def __init__(self, queue_size: int = 64):
        self._queue_size = queue_size
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, record_set: str, filters: Optional[Mapping[str, Any]] = None) -> Subscription:
        """Subscribe the running event loop to signals on ``record_set``."""
        if record_set not in RECORD_SETS:
            raise ValueError(f"Unknown record set: {record_set}")
        filters = dict(filters or {})
        unknown = set(filters) - set(FILTER_KEYS)
        if unknown:
            raise ValueError(f"Unsupported filter keys: {sorted(unknown)}")
        if "email" in filters:
            filters["email"] = (filters["email"] or "").strip().lower()
        sub = Subscription(self, record_set, filters, asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._subscriptions.add(sub)
        logger.debug("Subscribed to %s %s", record_set, filters)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, signal: ChangeSignal) -> int:
        """Deliver ``signal`` to every matching subscription; returns the count."""
        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(signal)]
        delivered = 0
        for sub in targets:
            try:
                sub._deliver(signal)
                delivered += 1
            except RuntimeError:
                logger.info("Dropping subscription on closed loop (%s)", sub.record_set)
                self._remove(sub)
        return delivered


class RefetchCoalescer:
    """Collapse bursts of signals into single-flight re-fetches.

    At most one ``refetch`` runs at a time. Signals that arrive during the
    debounce window or while a re-fetch is in flight produce exactly one
    follow-up re-fetch.
    """

    def __init__(self, refetch: Callable[[], Awaitable[Any]], debounce: float = 0.05):
        self._refetch = refetch
        self._debounce = debounce
        self._pending = asyncio.Event()
        self.refetch_count = 0

    def notify(self) -> None:
        self._pending.set()

    async def _worker(self) -> None:
        while True:
            await self._pending.wait()
            if self._debounce:
                await asyncio.sleep(self._debounce)
            self._pending.clear()
            try:
                await self._refetch()
            except asyncio.CancelledError:
                raise
            except Exception:
                # the next signal or fetch heals a failed refresh
                logger.exception("Re-fetch after change signal failed")
            self.refetch_count += 1

    async def run(self, subscription: Subscription) -> None:
        """Consume ``subscription`` until it is closed or the task is cancelled."""
        worker = asyncio.create_task(self._worker())
        try:
            async for _signal in subscription:
                self.notify()
        finally:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass


notifier = ChangeNotifier(queue_size=settings.CHANGE_QUEUE_SIZE)


# ---------------------------------------------------------------------------
# Session hooks
# ---------------------------------------------------------------------------
def _signal_for(obj, action: str) -> Optional[ChangeSignal]:
    if isinstance(obj, Group):
        return ChangeSignal("groups", action, obj.group_id, {"group_id": obj.group_id})
    if isinstance(obj, GroupMember):
        return ChangeSignal("memberships", action, obj.membership_id,
                            {"group_id": obj.group_id, "user_id": obj.user_id})
    if isinstance(obj, GroupInvitation):
        return ChangeSignal("invitations", action, obj.invitation_id,
                            {"group_id": obj.group_id, "email": obj.email})
    return None


def note_change(session: Session, signal: ChangeSignal) -> None:
    """Queue a signal to be published when ``session`` commits."""
    session.info.setdefault(_PENDING_KEY, []).append(signal)


def _after_flush(session, flush_context):
    for action, objs in (("insert", session.new), ("update", session.dirty), ("delete", session.deleted)):
        for obj in objs:
            if action == "update" and not session.is_modified(obj):
                continue
            signal = _signal_for(obj, action)
            if signal is not None:
                note_change(session, signal)


def _after_commit(session):
    signals = session.info.pop(_PENDING_KEY, [])
    for signal in signals:
        notifier.publish(signal)


def _after_rollback(session):
    session.info.pop(_PENDING_KEY, None)


def install_session_hooks(target=Session) -> None:
    """Attach the publish hooks to a Session class or sessionmaker (idempotent)."""
    for name, fn in (("after_flush", _after_flush),
                     ("after_commit", _after_commit),
                     ("after_rollback", _after_rollback)):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
