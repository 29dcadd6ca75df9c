import asyncio
from typing import Any, Dict, FrozenSet, Optional, Set

import structlog


logger = structlog.get_logger(__name__)


class HubSubscription:
    def __init__(self, project_id: str, tables: FrozenSet[str], maxsize: int = 0) -> None:
        self.project_id = project_id
        self.tables = tables
        self.queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(maxsize=maxsize)

    def matches(self, project_id: Optional[str], table: str) -> bool:
        return project_id == self.project_id and (not self.tables or table in self.tables)


class ChangeHub:
    """In-process fan-out of row changes to per-project subscribers."""

    def __init__(self, maxsize: int = 0) -> None:
        # channel -> subscriptions
        self._channels: Dict[str, Set[HubSubscription]] = {}
        self._lock = asyncio.Lock()
        self._maxsize = maxsize

    async def connect(self, channel: str, project_id: str, tables: FrozenSet[str]) -> HubSubscription:
        sub = HubSubscription(project_id, tables, maxsize=self._maxsize)
        async with self._lock:
            self._channels.setdefault(channel, set()).add(sub)
        return sub

    async def disconnect(self, channel: str, sub: HubSubscription) -> None:
        async with self._lock:
            subs = self._channels.get(channel)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    self._channels.pop(channel, None)
        # wake the reader so it can finish; a full queue means it is awake already
        try:
            sub.queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.debug("hub.disconnect_queue_full", project_id=sub.project_id)

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        if channel is not None:
            return len(self._channels.get(channel, ()))
        return sum(len(s) for s in self._channels.values())

    def publish(self, payload: Dict[str, Any]) -> int:
        """Deliver a change payload to every matching subscription.

        Synchronous so it can be called right after a database commit.
        Returns the number of subscriptions that received it.
        """
        row = payload.get("new") or payload.get("old") or {}
        project_id = row.get("project_id")
        project_id = str(project_id) if project_id is not None else None
        table = payload.get("table", "")
        delivered = 0
        for subs in list(self._channels.values()):
            for sub in list(subs):
                if not sub.matches(project_id, table):
                    continue
                try:
                    sub.queue.put_nowait(payload)
                    delivered += 1
                except asyncio.QueueFull:
                    # best-effort; the subscriber is not keeping up
                    logger.warning("hub.queue_full", project_id=sub.project_id, table=table)
        return delivered
