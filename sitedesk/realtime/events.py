from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ChangeType(str, Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


class WatchedTable(str, Enum):
    daily_logs = "project_daily_logs"
    shifts = "project_shifts"
    shift_workers = "shift_workers"
    documents = "received_documents"
    folders = "project_folders"
    subcontractors = "project_subcontractors"


WATCHED_TABLES = tuple(t.value for t in WatchedTable)


class ChangeEvent(BaseModel):
    type: ChangeType
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def row(self) -> Dict[str, Any]:
        """The row the event is about: the prior values for deletes."""
        if self.type == ChangeType.delete:
            return self.old or {}
        return self.new or {}

    @property
    def entity_id(self) -> Optional[str]:
        value = self.row.get("id")
        return str(value) if value is not None else None

    @property
    def project_id(self) -> Optional[str]:
        value = self.row.get("project_id")
        if value is None and self.type != ChangeType.delete:
            value = (self.old or {}).get("project_id")
        return str(value) if value is not None else None


def parse_change(payload: Dict[str, Any]) -> Optional[ChangeEvent]:
    """Build an event from a change-stream payload.

    Accepts both ``{type, new, old}`` and the postgres-changes spelling
    ``{eventType, record, old_record}``. Heartbeats and unknown event types
    return None.
    """
    kind = payload.get("type") or payload.get("eventType")
    if not isinstance(kind, str):
        return None
    try:
        change_type = ChangeType(kind.lower())
    except ValueError:
        return None
    new = payload.get("new", payload.get("record"))
    old = payload.get("old", payload.get("old_record"))
    table = payload.get("table") or ""
    return ChangeEvent(type=change_type, table=table, new=new or None, old=old or None)


def channel_name(prefix: str, project_id: str) -> str:
    return f"{prefix}-{project_id}"
