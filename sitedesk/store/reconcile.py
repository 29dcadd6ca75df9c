"""
Reconciliation engine: the only code that writes to the cache.

Events are applied by entity id. Inserts and updates both replace the whole
cached value (an update for an unknown id inserts it, a repeated insert
replaces it), deletes of unknown ids are no-ops. Without the stale guard,
the last applied event for an id wins.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ..realtime.events import ChangeEvent, ChangeType
from ..services.audit import changed_fields


logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class EntityCollection(Generic[T]):
    def __init__(self, name: str, parse: Callable[[Dict[str, Any]], T]) -> None:
        self.name = name
        self.parse = parse
        self._items: Dict[str, T] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def get(self, entity_id: str) -> Optional[T]:
        return self._items.get(entity_id)

    def all(self) -> List[T]:
        return list(self._items.values())

    def put(self, entity: T) -> Optional[T]:
        previous = self._items.get(entity.id)
        self._items[entity.id] = entity
        return previous

    def pop(self, entity_id: str) -> Optional[T]:
        return self._items.pop(entity_id, None)

    def clear(self) -> None:
        self._items.clear()


ChangeCallback = Callable[[str, ChangeEvent], None]


class Reconciler:
    def __init__(self, collections: Dict[str, EntityCollection], *, drop_stale: bool = False) -> None:
        self.collections = collections
        self.drop_stale = drop_stale
        self._callbacks: List[ChangeCallback] = []

    def on_change(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one event; returns True when the cache changed."""
        collection = self.collections.get(event.table)
        if collection is None:
            logger.debug("reconcile.unwatched_table", table=event.table)
            return False
        entity_id = event.entity_id
        if entity_id is None:
            logger.warning("reconcile.missing_id", table=event.table, type=event.type.value)
            return False

        if event.type == ChangeType.delete:
            removed = collection.pop(entity_id)
            if removed is None:
                return False
            logger.debug("reconcile.deleted", table=event.table, id=entity_id)
            self._notify(event)
            return True

        try:
            entity = collection.parse(event.new or {})
        except ValidationError as e:
            logger.warning("reconcile.unparseable", table=event.table, id=entity_id, error=str(e))
            return False

        existing = collection.get(entity_id)
        if existing is not None and self.drop_stale and _is_older(entity, existing):
            logger.info("reconcile.stale_dropped", table=event.table, id=entity_id)
            return False

        collection.put(entity)
        if existing is None:
            logger.debug("reconcile.inserted", table=event.table, id=entity_id, type=event.type.value)
        else:
            logger.debug(
                "reconcile.replaced",
                table=event.table,
                id=entity_id,
                type=event.type.value,
                fields=changed_fields(existing.model_dump(mode="json"), entity.model_dump(mode="json")),
            )
        self._notify(event)
        return True

    def _notify(self, event: ChangeEvent) -> None:
        for cb in list(self._callbacks):
            cb(event.table, event)


def _is_older(incoming: BaseModel, cached: BaseModel) -> bool:
    new_ts = getattr(incoming, "updated_at", None)
    old_ts = getattr(cached, "updated_at", None)
    if not isinstance(new_ts, datetime) or not isinstance(old_ts, datetime):
        return False
    if (new_ts.tzinfo is None) != (old_ts.tzinfo is None):
        return False
    return new_ts < old_ts
