"""
Change-stream listener.

One pump task owns the active subscription and pushes parsed events onto a
queue; the store drains that queue from a single consumer task, so only one
writer ever touches the cache. Switching projects tears the old
subscription down before the new one is opened.
"""
import asyncio
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

import structlog

from ..config import settings
from ..errors import TransportError
from .events import ChangeEvent, WATCHED_TABLES, channel_name, parse_change
from .transport import ChangeTransport, Subscription


logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    idle = "idle"
    connecting = "connecting"
    subscribed = "subscribed"
    closed = "closed"
    error = "error"


class SubscriptionHandle:
    def __init__(self, project_id: str, channel: str, subscription: Subscription) -> None:
        self.project_id = project_id
        self.channel = channel
        self.subscription = subscription
        self.active = True
        self.task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"SubscriptionHandle(project_id={self.project_id!r}, active={self.active})"


StateCallback = Callable[[ConnectionState, Optional[str]], None]


class ChangeStreamListener:
    def __init__(
        self,
        transport: ChangeTransport,
        *,
        tables: Iterable[str] = WATCHED_TABLES,
        channel_prefix: Optional[str] = None,
        queue_size: Optional[int] = None,
    ) -> None:
        self.transport = transport
        self.tables: FrozenSet[str] = frozenset(tables)
        self.channel_prefix = channel_prefix or settings.realtime_channel_prefix
        size = settings.realtime_queue_size if queue_size is None else queue_size
        self.events: "asyncio.Queue[Tuple[SubscriptionHandle, ChangeEvent]]" = asyncio.Queue(maxsize=size)
        self.state = ConnectionState.idle
        self.last_error: Optional[str] = None
        self._handle: Optional[SubscriptionHandle] = None
        self._callbacks: List[StateCallback] = []
        self._switch_lock = asyncio.Lock()

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def project_id(self) -> Optional[str]:
        return self._handle.project_id if self._handle else None

    def on_state_change(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def _set_state(self, state: ConnectionState, error: Optional[str] = None) -> None:
        self.state = state
        self.last_error = error
        for cb in list(self._callbacks):
            cb(state, error)

    async def subscribe(self, project_id: str) -> SubscriptionHandle:
        """Subscribe to ``project_id``, replacing any current subscription."""
        async with self._switch_lock:
            if self._handle is not None:
                if self._handle.project_id == project_id and self._handle.active:
                    return self._handle
                await self._teardown(self._handle)

            channel = channel_name(self.channel_prefix, project_id)
            self._set_state(ConnectionState.connecting)
            try:
                subscription = await self.transport.connect(channel, project_id, self.tables)
            except TransportError as e:
                logger.error("realtime.error", project_id=project_id, channel=channel, error=str(e))
                self._set_state(ConnectionState.error, str(e))
                raise

            handle = SubscriptionHandle(project_id, channel, subscription)
            handle.task = asyncio.create_task(self._pump(handle), name=f"realtime:{channel}")
            self._handle = handle
            logger.info("realtime.subscribed", project_id=project_id, channel=channel)
            self._set_state(ConnectionState.subscribed)
            return handle

    async def unsubscribe(self, handle: Optional[SubscriptionHandle] = None) -> None:
        async with self._switch_lock:
            handle = handle or self._handle
            if handle is None:
                return
            await self._teardown(handle)

    async def close(self) -> None:
        await self.unsubscribe()

    async def _teardown(self, handle: SubscriptionHandle) -> None:
        if not handle.active:
            return
        handle.active = False
        task = handle.task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await handle.subscription.aclose()
        if self._handle is handle:
            self._handle = None
            self._set_state(ConnectionState.closed)
        logger.info("realtime.closed", project_id=handle.project_id, channel=handle.channel)

    async def _pump(self, handle: SubscriptionHandle) -> None:
        try:
            async for payload in handle.subscription:
                if not handle.active:
                    break
                event = parse_change(payload)
                if event is None:
                    continue
                if event.project_id != handle.project_id:
                    logger.debug(
                        "realtime.foreign_event_discarded",
                        subscribed=handle.project_id,
                        event_project=event.project_id,
                        table=event.table,
                    )
                    continue
                await self.events.put((handle, event))
        except TransportError as e:
            logger.error("realtime.error", project_id=handle.project_id, error=str(e))
            if self._handle is handle:
                self._set_state(ConnectionState.error, str(e))
            return
        if handle.active and self._handle is handle:
            # stream ended from the server side
            logger.warning("realtime.closed_by_server", project_id=handle.project_id)
            self._set_state(ConnectionState.closed)
