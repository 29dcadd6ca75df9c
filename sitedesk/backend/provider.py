"""
Data-access interface.

Implementations provide the table primitives; the entity-level calls the
store uses are built on top of them here, so every backend returns the same
canonical rows (plain dicts as the relational store persisted them).

Filters map a column to a value for equality, or ``column__op`` to a value
for ``op`` in ``gte``, ``lte``, ``in`` and ``is`` (``is`` accepts None).
"""
from datetime import date
from typing import Any, Dict, List, Optional

from ..realtime.events import WatchedTable


PROJECTS = "supervisor_projects"
CONTACTS = "supervisor_contacts"
DAILY_LOGS = WatchedTable.daily_logs.value
SHIFTS = WatchedTable.shifts.value
SHIFT_WORKERS = WatchedTable.shift_workers.value
DOCUMENTS = WatchedTable.documents.value
FOLDERS = WatchedTable.folders.value
SUBCONTRACTORS = WatchedTable.subcontractors.value

Row = Dict[str, Any]


class DataBackend:
    # Primitives

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        raise NotImplementedError

    async def insert(self, table: str, row: Row) -> Row:
        raise NotImplementedError

    async def insert_many(self, table: str, rows: List[Row]) -> List[Row]:
        raise NotImplementedError

    async def update(self, table: str, row_id: str, changes: Row) -> Row:
        raise NotImplementedError

    async def update_many(self, table: str, row_ids: List[str], changes: Row) -> List[Row]:
        raise NotImplementedError

    async def delete(self, table: str, row_id: str) -> Row:
        raise NotImplementedError

    async def invoke(self, function: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Call a server-side function (notifications, document reprocessing)."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    # Projects

    async def fetch_projects(self) -> List[Row]:
        return await self.select(PROJECTS, order_by="created_at", descending=True)

    async def create_project(self, row: Row) -> Row:
        return await self.insert(PROJECTS, row)

    async def update_project(self, project_id: str, changes: Row) -> Row:
        return await self.update(PROJECTS, project_id, changes)

    async def fetch_folders(self, project_id: str) -> List[Row]:
        return await self.select(FOLDERS, {"project_id": project_id}, order_by="sort_order")

    async def create_folders(self, rows: List[Row]) -> List[Row]:
        if not rows:
            return []
        return await self.insert_many(FOLDERS, rows)

    # Daily logs

    async def fetch_daily_logs(self, project_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None) -> List[Row]:
        filters: Dict[str, Any] = {"project_id": project_id}
        if date_from is not None:
            filters["log_date__gte"] = date_from.isoformat()
        if date_to is not None:
            filters["log_date__lte"] = date_to.isoformat()
        return await self.select(DAILY_LOGS, filters, order_by="created_at", descending=True)

    async def create_daily_log(self, row: Row) -> Row:
        return await self.insert(DAILY_LOGS, row)

    async def update_daily_log(self, log_id: str, changes: Row) -> Row:
        return await self.update(DAILY_LOGS, log_id, changes)

    async def delete_daily_log(self, log_id: str) -> Row:
        return await self.delete(DAILY_LOGS, log_id)

    # Shifts

    async def fetch_shifts(self, project_id: str) -> List[Row]:
        return await self.select(SHIFTS, {"project_id": project_id}, order_by="scheduled_date", descending=True)

    async def create_shift(self, row: Row) -> Row:
        return await self.insert(SHIFTS, row)

    async def update_shift(self, shift_id: str, changes: Row) -> Row:
        return await self.update(SHIFTS, shift_id, changes)

    async def delete_shift(self, shift_id: str) -> Row:
        return await self.delete(SHIFTS, shift_id)

    async def fetch_shift_workers(self, project_id: str) -> List[Row]:
        return await self.select(SHIFT_WORKERS, {"project_id": project_id}, order_by="created_at")

    async def add_shift_worker(self, row: Row) -> Row:
        return await self.insert(SHIFT_WORKERS, row)

    async def update_shift_worker(self, worker_id: str, changes: Row) -> Row:
        return await self.update(SHIFT_WORKERS, worker_id, changes)

    async def remove_shift_worker(self, worker_id: str) -> Row:
        return await self.delete(SHIFT_WORKERS, worker_id)

    async def send_shift_notifications(self, shift_id: str) -> Dict[str, Any]:
        return await self.invoke("send-shift-notifications", {"shift_id": shift_id})

    # Documents

    async def fetch_documents(self, project_id: str) -> List[Row]:
        return await self.select(DOCUMENTS, {"project_id": project_id}, order_by="received_at", descending=True)

    async def update_document(self, document_id: str, changes: Row) -> Row:
        return await self.update(DOCUMENTS, document_id, changes)

    async def update_documents(self, document_ids: List[str], changes: Row) -> List[Row]:
        return await self.update_many(DOCUMENTS, document_ids, changes)

    async def reprocess_documents(self, project_id: str) -> Dict[str, Any]:
        return await self.invoke("reprocess-documents", {"project_id": project_id})

    # Contacts and subcontractors

    async def fetch_contacts(self, supervisor_id: Optional[str] = None) -> List[Row]:
        filters = {"supervisor_id": supervisor_id} if supervisor_id else None
        return await self.select(CONTACTS, filters, order_by="name")

    async def create_contact(self, row: Row) -> Row:
        return await self.insert(CONTACTS, row)

    async def delete_contact(self, contact_id: str) -> Row:
        return await self.delete(CONTACTS, contact_id)

    async def fetch_subcontractors(self, project_id: str) -> List[Row]:
        return await self.select(SUBCONTRACTORS, {"project_id": project_id}, order_by="company_name")

    async def create_subcontractor(self, row: Row) -> Row:
        return await self.insert(SUBCONTRACTORS, row)

    async def update_subcontractor(self, subcontractor_id: str, changes: Row) -> Row:
        return await self.update(SUBCONTRACTORS, subcontractor_id, changes)

    async def delete_subcontractor(self, subcontractor_id: str) -> Row:
        return await self.delete(SUBCONTRACTORS, subcontractor_id)
