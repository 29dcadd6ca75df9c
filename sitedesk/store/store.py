"""
Project store: the UI-facing cache of one supervisor's current project.

Actions validate first, then call the backend, then hand the canonical row
the backend returned to the reconciler, the same path stream events take.
A failed write leaves the cache untouched, records ``error`` and re-raises.
Responses for a project that is no longer current are dropped.
"""
import asyncio
import secrets
import string
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog
from slugify import slugify

from ..backend.provider import (
    CONTACTS,
    DAILY_LOGS,
    DOCUMENTS,
    DataBackend,
    FOLDERS,
    PROJECTS,
    Row,
    SHIFTS,
    SHIFT_WORKERS,
    SUBCONTRACTORS,
)
from ..config import settings
from ..errors import (
    DomainValidationError,
    InvalidTransitionError,
    NoProjectSelectedError,
    NotFoundError,
    StaleResponseError,
    TransportError,
    WriteError,
)
from ..realtime.events import ChangeEvent, ChangeType
from ..realtime.listener import ChangeStreamListener, ConnectionState, SubscriptionHandle
from ..schemas.daily_logs import (
    CreateDailyLogInput,
    DailyLogType,
    SiteIssueStatus,
    UpdateDailyLogInput,
    parse_daily_log,
)
from ..schemas.documents import (
    DiscoveredSubcontractor,
    DiscoveredWorker,
    DocumentStatus,
    ReceivedDocument,
    ReprocessResult,
)
from ..schemas.projects import (
    Contact,
    CreateContactInput,
    CreateProjectInput,
    CreateSubcontractorInput,
    Project,
    ProjectFolder,
    Subcontractor,
    UpdateSubcontractorInput,
    find_folder_preset,
)
from ..schemas.shifts import (
    AddShiftWorkerInput,
    CloseoutChecklistItem,
    CloseoutShiftInput,
    CreateShiftInput,
    DEFAULT_CLOSEOUT_CHECKLIST,
    NotificationStatus,
    ShiftRecord,
    ShiftStatus,
    ShiftWorker,
    UpdateShiftInput,
    UpdateShiftWorkerInput,
)
from ..services import daily_log as log_rules
from ..services import discovery
from ..services import shift_lifecycle as lifecycle
from .reconcile import EntityCollection, Reconciler


logger = structlog.get_logger(__name__)

PROJECT_SCOPED = (DAILY_LOGS, SHIFTS, SHIFT_WORKERS, DOCUMENTS, FOLDERS, SUBCONTRACTORS)

# manual overrides written over the classifier's extraction
METADATA_OVERRIDE_KEYS = {
    "worker_name": "workerNameManual",
    "company_name": "companyNameManual",
    "document_date": "documentDateManual",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _suffix(length: int = 4) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_processing_email(project_name: str, domain: Optional[str] = None) -> str:
    slug = slugify(project_name, max_length=30, word_boundary=False).strip("-") or "project"
    return f"{slug}-{_suffix()}@{domain or settings.processing_email_domain}"


class ProjectStore:
    def __init__(
        self,
        backend: DataBackend,
        listener: Optional[ChangeStreamListener] = None,
        *,
        user_id: Optional[str] = None,
        drop_stale: Optional[bool] = None,
        email_domain: Optional[str] = None,
    ) -> None:
        self.backend = backend
        self.listener = listener
        self.user_id = user_id
        self.email_domain = email_domain

        self.projects: EntityCollection[Project] = EntityCollection(PROJECTS, Project.model_validate)
        self.contacts: EntityCollection[Contact] = EntityCollection(CONTACTS, Contact.model_validate)
        self.daily_log_entries = EntityCollection(DAILY_LOGS, parse_daily_log)
        self.shift_records: EntityCollection[ShiftRecord] = EntityCollection(SHIFTS, ShiftRecord.model_validate)
        self.workers: EntityCollection[ShiftWorker] = EntityCollection(SHIFT_WORKERS, ShiftWorker.model_validate)
        self.documents: EntityCollection[ReceivedDocument] = EntityCollection(DOCUMENTS, ReceivedDocument.model_validate)
        self.folders: EntityCollection[ProjectFolder] = EntityCollection(FOLDERS, ProjectFolder.model_validate)
        self.subcontractors: EntityCollection[Subcontractor] = EntityCollection(SUBCONTRACTORS, Subcontractor.model_validate)

        collections = [
            self.projects,
            self.contacts,
            self.daily_log_entries,
            self.shift_records,
            self.workers,
            self.documents,
            self.folders,
            self.subcontractors,
        ]
        stale = settings.reconcile_drop_stale if drop_stale is None else drop_stale
        self.reconciler = Reconciler({c.name: c for c in collections}, drop_stale=stale)

        self.current_project_id: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None
        self._consumer: Optional[asyncio.Task] = None
        # ids deleted while a snapshot is in flight; the snapshot must not revive them
        self._deleted_while_loading: Dict[str, Set[str]] = {name: set() for name in PROJECT_SCOPED}

    # Lifecycle

    async def start(self) -> None:
        """Start the single task that reconciles streamed events."""
        if self.listener is not None and self._consumer is None:
            self._consumer = asyncio.create_task(self._consume(), name="store:reconcile")

    async def close(self) -> None:
        if self.listener is not None:
            await self.listener.close()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

    async def _consume(self) -> None:
        queue = self.listener.events
        while True:
            handle, event = await queue.get()
            try:
                self._apply_stream_event(handle, event)
            finally:
                queue.task_done()

    async def drain(self) -> int:
        """Apply every event queued so far; returns how many were taken."""
        if self.listener is None:
            return 0
        # let the pump move whatever the transport already delivered
        for _ in range(3):
            await asyncio.sleep(0)
        queue = self.listener.events
        taken = 0
        while not queue.empty():
            handle, event = queue.get_nowait()
            try:
                self._apply_stream_event(handle, event)
            finally:
                queue.task_done()
            taken += 1
        return taken

    def _apply_stream_event(self, handle: SubscriptionHandle, event: ChangeEvent) -> None:
        if not handle.active or handle.project_id != self.current_project_id:
            logger.debug("store.event_dropped", subscribed=handle.project_id, current=self.current_project_id, table=event.table)
            return
        self._apply(event)

    def _apply(self, event: ChangeEvent) -> None:
        if self.loading and event.type == ChangeType.delete and event.table in self._deleted_while_loading:
            entity_id = event.entity_id
            if entity_id is not None:
                self._deleted_while_loading[event.table].add(entity_id)
        self.reconciler.apply(event)

    @property
    def connection_state(self) -> ConnectionState:
        if self.listener is None:
            return ConnectionState.idle
        return self.listener.state

    @property
    def connection_error(self) -> Optional[str]:
        return self.listener.last_error if self.listener is not None else None

    # Reconciling results

    def _accept(self, kind: ChangeType, table: str, row: Row) -> bool:
        if table in PROJECT_SCOPED:
            project_id = row.get("project_id")
            if project_id is None or str(project_id) != self.current_project_id:
                logger.info("store.stale_response", table=table, project_id=project_id, current=self.current_project_id)
                return False
        if kind == ChangeType.delete:
            event = ChangeEvent(type=kind, table=table, old=row)
        else:
            event = ChangeEvent(type=kind, table=table, new=row)
        self._apply(event)
        return True

    def _accept_many(self, kind: ChangeType, table: str, rows: Iterable[Row]) -> None:
        for row in rows:
            self._accept(kind, table, row)

    def _canonical(self, collection: EntityCollection, row: Row):
        """The cached entity for a row an action just accepted."""
        entity = collection.get(str(row["id"]))
        if entity is None:
            raise StaleResponseError(collection.name, row.get("project_id"), self.current_project_id)
        return entity

    async def _write(self, action: str, coro):
        try:
            return await coro
        except WriteError as e:
            logger.error("store.action_failed", action=action, error=str(e), status_code=e.status_code)
            self.error = str(e)
            raise

    def clear_error(self) -> None:
        self.error = None

    def _require_project(self, action: str) -> str:
        if self.current_project_id is None:
            raise NoProjectSelectedError(action)
        return self.current_project_id

    def _require(self, collection: EntityCollection, entity_id: str, action: str):
        entity = collection.get(entity_id)
        if entity is None:
            raise NotFoundError(action, collection.name, entity_id)
        return entity

    # Projects

    async def fetch_projects(self) -> List[Project]:
        rows = await self._write("fetch_projects", self.backend.fetch_projects())
        for row in rows:
            self._accept(ChangeType.insert, PROJECTS, row)
        return self.project_list()

    def project_list(self, include_archived: bool = False) -> List[Project]:
        items = [p for p in self.projects if include_archived or p.is_active]
        return sorted(items, key=lambda p: p.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    @property
    def current_project(self) -> Optional[Project]:
        if self.current_project_id is None:
            return None
        return self.projects.get(self.current_project_id)

    async def create_project(self, data: CreateProjectInput) -> Project:
        email = generate_processing_email(data.name, self.email_domain)
        row = await self._write(
            "create_project",
            self.backend.create_project(
                {
                    "supervisor_id": self.user_id,
                    "name": data.name,
                    "site_address": data.site_address,
                    "processing_email": email,
                    "is_active": True,
                }
            ),
        )
        self._accept(ChangeType.insert, PROJECTS, row)

        folders = []
        for index, name in enumerate(data.folder_presets):
            preset = find_folder_preset(name)
            folders.append(
                {
                    "project_id": row["id"],
                    "folder_name": name,
                    "ai_classification_hint": preset.hint if preset else None,
                    "color": preset.color if preset else "#6B7280",
                    "sort_order": index,
                }
            )
        created = await self._write("create_folders", self.backend.create_folders(folders))
        if row["id"] == self.current_project_id:
            self._accept_many(ChangeType.insert, FOLDERS, created)
        logger.info("store.project_created", project_id=row["id"], folders=len(created))
        return self._canonical(self.projects, row)

    async def archive_project(self, project_id: str) -> Project:
        self._require(self.projects, project_id, "archive_project")
        row = await self._write("archive_project", self.backend.update_project(project_id, {"is_active": False}))
        self._accept(ChangeType.update, PROJECTS, row)
        return self._canonical(self.projects, row)

    async def set_current_project(self, project_id: Optional[str]) -> None:
        """Switch the cache to ``project_id``.

        The new subscription is opened before the snapshot is read so no
        change between the two is missed. Rows already present when the
        snapshot lands came from the stream and are kept.
        """
        if project_id == self.current_project_id:
            return
        previous = self.current_project_id
        self.current_project_id = project_id
        for name in PROJECT_SCOPED:
            self.reconciler.collections[name].clear()
            self._deleted_while_loading[name].clear()
        self.error = None
        logger.info("store.project_switched", previous=previous, project_id=project_id)

        if project_id is None:
            self.loading = False
            if self.listener is not None:
                await self.listener.unsubscribe()
            return

        self.loading = True
        try:
            if self.listener is not None:
                try:
                    await self.listener.subscribe(project_id)
                except TransportError as e:
                    # surfaced through the listener state; the snapshot still loads
                    logger.warning("store.subscribe_failed", project_id=project_id, error=str(e))
            await self._load_snapshot(project_id)
        finally:
            # a later switch owns the flag and the tombstones now
            if self.current_project_id == project_id:
                self.loading = False
                for deleted in self._deleted_while_loading.values():
                    deleted.clear()

    async def _load_snapshot(self, project_id: str) -> None:
        results = await self._write(
            "load_project",
            asyncio.gather(
                self.backend.fetch_daily_logs(project_id),
                self.backend.fetch_shifts(project_id),
                self.backend.fetch_shift_workers(project_id),
                self.backend.fetch_documents(project_id),
                self.backend.fetch_folders(project_id),
                self.backend.fetch_subcontractors(project_id),
            ),
        )
        if project_id != self.current_project_id:
            logger.info("store.stale_response", table="snapshot", project_id=project_id, current=self.current_project_id)
            return
        for table, rows in zip((DAILY_LOGS, SHIFTS, SHIFT_WORKERS, DOCUMENTS, FOLDERS, SUBCONTRACTORS), results):
            collection = self.reconciler.collections[table]
            for row in rows:
                entity_id = str(row.get("id"))
                if entity_id in collection or entity_id in self._deleted_while_loading[table]:
                    continue
                self._accept(ChangeType.insert, table, row)

    # Daily logs: queries

    def daily_logs(self, log_date: Optional[date] = None, log_type: Optional[str] = None) -> List:
        items = [
            e
            for e in self.daily_log_entries
            if (log_date is None or e.log_date == log_date) and (log_type is None or e.log_type == log_type)
        ]
        return sorted(items, key=lambda e: (e.log_date, e.created_at or datetime.min.replace(tzinfo=timezone.utc)), reverse=True)

    def logs_by_date(self) -> "OrderedDict[date, List]":
        grouped: "OrderedDict[date, List]" = OrderedDict()
        for entry in self.daily_logs():
            grouped.setdefault(entry.log_date, []).append(entry)
        return grouped

    def logs_by_type(self, log_date: Optional[date] = None) -> Dict[str, List]:
        grouped: Dict[str, List] = {t.value: [] for t in DailyLogType}
        for entry in self.daily_logs(log_date=log_date):
            grouped[entry.log_type].append(entry)
        return grouped

    def manpower_logs(self, log_date: Optional[date] = None) -> List:
        return self.daily_logs(log_date=log_date, log_type=DailyLogType.manpower.value)

    def site_issues(self, status: Optional[str] = None) -> List:
        issues = self.daily_logs(log_type=DailyLogType.site_issue.value)
        if status is not None:
            issues = [i for i in issues if i.status == status]
        return issues

    def open_site_issues(self) -> List:
        return self.site_issues(status=SiteIssueStatus.active.value)

    def unresolved_site_issues(self) -> List:
        """Active and continued issues together, for the tracker's open total."""
        return [i for i in self.site_issues() if i.status != SiteIssueStatus.resolved.value]

    def site_issues_by_status(self) -> Dict[str, List]:
        grouped: Dict[str, List] = {s.value: [] for s in SiteIssueStatus}
        for issue in self.site_issues():
            grouped[issue.status].append(issue)
        return grouped

    # Daily logs: actions

    async def fetch_daily_logs(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> List:
        project_id = self._require_project("fetch_daily_logs")
        rows = await self._write("fetch_daily_logs", self.backend.fetch_daily_logs(project_id, date_from, date_to))
        self._accept_many(ChangeType.insert, DAILY_LOGS, rows)
        return [e for e in self.daily_logs() if (date_from is None or e.log_date >= date_from) and (date_to is None or e.log_date <= date_to)]

    async def add_daily_log(self, data: CreateDailyLogInput, today: Optional[date] = None):
        project_id = self._require_project("add_daily_log")
        metadata = log_rules.validate_metadata(data.log_type, data.metadata)
        row = await self._write(
            "add_daily_log",
            self.backend.create_daily_log(
                {
                    "project_id": project_id,
                    "log_date": log_rules.resolve_log_date(data.log_date, today).isoformat(),
                    "log_type": data.log_type,
                    "content": data.content,
                    "metadata": metadata.model_dump(mode="json", exclude_none=True),
                    "status": log_rules.initial_status(data.log_type, data.status),
                    "created_by": self.user_id,
                }
            ),
        )
        self._accept(ChangeType.insert, DAILY_LOGS, row)
        return self._canonical(self.daily_log_entries, row)

    async def update_daily_log(self, log_id: str, data: UpdateDailyLogInput):
        entry = self._require(self.daily_log_entries, log_id, "update_daily_log")
        changes: Row = {}
        if data.content is not None:
            changes["content"] = data.content
        if data.metadata is not None:
            changes["metadata"] = log_rules.validate_metadata(entry.log_type, data.metadata).model_dump(mode="json", exclude_none=True)
        if data.status is not None:
            changes["status"] = log_rules.check_status_transition(entry.log_type, entry.status, data.status)
        if not changes:
            return entry
        row = await self._write("update_daily_log", self.backend.update_daily_log(log_id, changes))
        self._accept(ChangeType.update, DAILY_LOGS, row)
        return self._canonical(self.daily_log_entries, row)

    async def toggle_status(self, log_id: str, status: str):
        entry = self._require(self.daily_log_entries, log_id, "toggle_status")
        target = log_rules.check_status_transition(entry.log_type, entry.status, status)
        if target == entry.status:
            return entry
        row = await self._write("toggle_status", self.backend.update_daily_log(log_id, {"status": target}))
        self._accept(ChangeType.update, DAILY_LOGS, row)
        return self._canonical(self.daily_log_entries, row)

    async def delete_daily_log(self, log_id: str) -> None:
        self._require(self.daily_log_entries, log_id, "delete_daily_log")
        row = await self._write("delete_daily_log", self.backend.delete_daily_log(log_id))
        self._accept(ChangeType.delete, DAILY_LOGS, row)

    # Shifts: queries

    def _with_stats(self, shift: ShiftRecord) -> ShiftRecord:
        worker_count, forms_submitted = lifecycle.roster_stats(self.shift_workers(shift.id))
        return shift.model_copy(update={"worker_count": worker_count, "forms_submitted": forms_submitted})

    def shifts(self, status: Optional[str] = None, date_from: Optional[date] = None, date_to: Optional[date] = None) -> List[ShiftRecord]:
        items = [
            self._with_stats(s)
            for s in self.shift_records
            if (status is None or s.status == status)
            and (date_from is None or s.scheduled_date >= date_from)
            and (date_to is None or s.scheduled_date <= date_to)
        ]
        return sorted(items, key=lambda s: (s.scheduled_date, s.start_time is not None, s.start_time), reverse=True)

    def shift(self, shift_id: str) -> Optional[ShiftRecord]:
        shift = self.shift_records.get(shift_id)
        return self._with_stats(shift) if shift is not None else None

    def shift_workers(self, shift_id: str) -> List[ShiftWorker]:
        workers = [w for w in self.workers if w.shift_id == shift_id]
        return sorted(workers, key=lambda w: w.created_at or datetime.min.replace(tzinfo=timezone.utc))

    def default_closeout_checklist(self) -> List[CloseoutChecklistItem]:
        return [item.model_copy() for item in DEFAULT_CLOSEOUT_CHECKLIST]

    def shift_categories(self, shift_id: str):
        shift = self._require(self.shift_records, shift_id, "shift_categories")
        return lifecycle.all_categories(shift.custom_categories)

    # Shifts: actions

    async def create_shift(self, data: CreateShiftInput) -> ShiftRecord:
        project_id = self._require_project("create_shift")
        if not data.name.strip():
            raise DomainValidationError("Shift name is required")
        row = await self._write(
            "create_shift",
            self.backend.create_shift(
                {
                    "project_id": project_id,
                    "name": data.name.strip(),
                    "scheduled_date": data.scheduled_date.isoformat(),
                    "start_time": data.start_time.isoformat() if data.start_time else None,
                    "end_time": data.end_time.isoformat() if data.end_time else None,
                    "notes": data.notes,
                    "status": ShiftStatus.draft.value,
                    "shift_tasks": [t.model_dump(mode="json") for t in data.shift_tasks],
                    "shift_notes": [n.model_dump(mode="json") for n in data.shift_notes],
                    "custom_categories": [c.model_dump(mode="json") for c in data.custom_categories],
                    "closeout_checklist": [],
                    "created_by": self.user_id,
                }
            ),
        )
        self._accept(ChangeType.insert, SHIFTS, row)
        return self._with_stats(self._canonical(self.shift_records, row))

    async def update_shift(self, shift_id: str, data: UpdateShiftInput) -> ShiftRecord:
        shift = self._require(self.shift_records, shift_id, "update_shift")
        lifecycle.ensure_editable(shift)
        changes = data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return self.shift(shift_id)
        return await self._update_shift("update_shift", shift_id, changes)

    async def _update_shift(self, action: str, shift_id: str, changes: Row) -> ShiftRecord:
        row = await self._write(action, self.backend.update_shift(shift_id, changes))
        self._accept(ChangeType.update, SHIFTS, row)
        return self._with_stats(self._canonical(self.shift_records, row))

    async def delete_shift(self, shift_id: str) -> None:
        shift = self._require(self.shift_records, shift_id, "delete_shift")
        if not lifecycle.can_delete(shift):
            raise InvalidTransitionError("shift", shift.status, "deleted")
        workers = self.shift_workers(shift_id)
        row = await self._write("delete_shift", self.backend.delete_shift(shift_id))
        # the backend removes the roster with the shift
        for worker in workers:
            self._accept(ChangeType.delete, SHIFT_WORKERS, worker.model_dump(mode="json"))
        self._accept(ChangeType.delete, SHIFTS, row)

    async def activate_shift(self, shift_id: str) -> ShiftRecord:
        shift = self._require(self.shift_records, shift_id, "activate_shift")
        return await self._update_shift("activate_shift", shift_id, lifecycle.activate(shift))

    async def closeout_shift(self, shift_id: str, data: CloseoutShiftInput, closed_by: Optional[str] = None) -> ShiftRecord:
        shift = self._require(self.shift_records, shift_id, "closeout_shift")
        worker_count, forms_submitted = lifecycle.roster_stats(self.shift_workers(shift_id))
        changes = lifecycle.closeout(
            shift,
            worker_count=worker_count,
            forms_submitted=forms_submitted,
            checklist=data.closeout_checklist,
            closeout_notes=data.closeout_notes,
            incomplete_reason=data.incomplete_reason,
            closed_by=closed_by or self.user_id,
        )
        logger.info("store.shift_closeout", shift_id=shift_id, worker_count=worker_count, forms_submitted=forms_submitted)
        return await self._update_shift("closeout_shift", shift_id, changes)

    async def cancel_shift(self, shift_id: str, cancelled_by: Optional[str] = None) -> ShiftRecord:
        shift = self._require(self.shift_records, shift_id, "cancel_shift")
        return await self._update_shift("cancel_shift", shift_id, lifecycle.cancel(shift, cancelled_by=cancelled_by or self.user_id))

    # Shift roster

    async def add_shift_worker(self, shift_id: str, data: AddShiftWorkerInput) -> ShiftWorker:
        shift = self._require(self.shift_records, shift_id, "add_shift_worker")
        lifecycle.ensure_roster_mutable(shift)
        if not data.name.strip():
            raise DomainValidationError("Worker name is required")
        row = await self._write(
            "add_shift_worker",
            self.backend.add_shift_worker(
                {
                    "shift_id": shift_id,
                    "project_id": shift.project_id,
                    **data.model_dump(mode="json"),
                    "name": data.name.strip(),
                    "notification_status": NotificationStatus.pending.value,
                    "form_submitted": False,
                }
            ),
        )
        self._accept(ChangeType.insert, SHIFT_WORKERS, row)
        return self._canonical(self.workers, row)

    def _worker_and_shift(self, worker_id: str, action: str):
        worker = self._require(self.workers, worker_id, action)
        return worker, self._require(self.shift_records, worker.shift_id, action)

    async def update_shift_worker(self, worker_id: str, data: UpdateShiftWorkerInput) -> ShiftWorker:
        worker, shift = self._worker_and_shift(worker_id, "update_shift_worker")
        lifecycle.ensure_roster_mutable(shift)
        changes = data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return worker
        return await self._update_worker("update_shift_worker", worker_id, changes)

    async def _update_worker(self, action: str, worker_id: str, changes: Row) -> ShiftWorker:
        row = await self._write(action, self.backend.update_shift_worker(worker_id, changes))
        self._accept(ChangeType.update, SHIFT_WORKERS, row)
        return self._canonical(self.workers, row)

    async def remove_shift_worker(self, worker_id: str) -> None:
        _worker, shift = self._worker_and_shift(worker_id, "remove_shift_worker")
        lifecycle.ensure_roster_mutable(shift)
        row = await self._write("remove_shift_worker", self.backend.remove_shift_worker(worker_id))
        self._accept(ChangeType.delete, SHIFT_WORKERS, row)

    async def record_notification_status(self, worker_id: str, status: str, error: Optional[str] = None) -> ShiftWorker:
        """Record a notifier callback for one worker; repeats are no-ops."""
        worker = self._require(self.workers, worker_id, "record_notification_status")
        changes = lifecycle.notification_changes(worker, status, error)
        if changes is None:
            return worker
        return await self._update_worker("record_notification_status", worker_id, changes)

    async def mark_form_submitted(self, worker_id: str, document_id: Optional[str] = None) -> ShiftWorker:
        worker = self._require(self.workers, worker_id, "mark_form_submitted")
        changes = lifecycle.form_submission_changes(worker, document_id)
        if changes is None:
            return worker
        return await self._update_worker("mark_form_submitted", worker_id, changes)

    async def send_shift_notifications(self, shift_id: str) -> Dict[str, Any]:
        shift = self._require(self.shift_records, shift_id, "send_shift_notifications")
        lifecycle.ensure_roster_mutable(shift)
        result = await self._write("send_shift_notifications", self.backend.send_shift_notifications(shift_id))
        logger.info("store.notifications_requested", shift_id=shift_id, result=result)
        return result

    # Shift tasks, notes and categories

    def _editable_shift(self, shift_id: str, action: str) -> ShiftRecord:
        shift = self._require(self.shift_records, shift_id, action)
        lifecycle.ensure_editable(shift)
        return shift

    @staticmethod
    def _content(content: str, what: str) -> str:
        if not (content or "").strip():
            raise DomainValidationError(f"{what} content is required")
        return content

    async def add_shift_task(self, shift_id: str, category: str, content: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "add_shift_task")
        changes = lifecycle.with_task_added(shift, category, self._content(content, "Task"))
        return await self._update_shift("add_shift_task", shift_id, changes)

    async def toggle_shift_task(self, shift_id: str, task_id: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "toggle_shift_task")
        return await self._update_shift("toggle_shift_task", shift_id, lifecycle.with_task_toggled(shift, task_id))

    async def remove_shift_task(self, shift_id: str, task_id: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "remove_shift_task")
        return await self._update_shift("remove_shift_task", shift_id, lifecycle.with_task_removed(shift, task_id))

    async def add_shift_note(self, shift_id: str, category: str, content: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "add_shift_note")
        changes = lifecycle.with_note_added(shift, category, self._content(content, "Note"))
        return await self._update_shift("add_shift_note", shift_id, changes)

    async def update_shift_note(self, shift_id: str, note_id: str, content: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "update_shift_note")
        changes = lifecycle.with_note_updated(shift, note_id, self._content(content, "Note"))
        return await self._update_shift("update_shift_note", shift_id, changes)

    async def remove_shift_note(self, shift_id: str, note_id: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "remove_shift_note")
        return await self._update_shift("remove_shift_note", shift_id, lifecycle.with_note_removed(shift, note_id))

    async def add_custom_category(self, shift_id: str, name: str, color: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "add_custom_category")
        if not (name or "").strip():
            raise DomainValidationError("Category name is required")
        changes = lifecycle.with_custom_category_added(shift, name, color)
        return await self._update_shift("add_custom_category", shift_id, changes)

    async def remove_custom_category(self, shift_id: str, category_id: str) -> ShiftRecord:
        shift = self._editable_shift(shift_id, "remove_custom_category")
        changes = lifecycle.with_custom_category_removed(shift, category_id)
        return await self._update_shift("remove_custom_category", shift_id, changes)

    # Documents: queries

    def _live_documents(self) -> List[ReceivedDocument]:
        docs = [d for d in self.documents if d.status != DocumentStatus.rejected.value]
        return sorted(docs, key=lambda d: d.received_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    def unsorted_documents(self) -> List[ReceivedDocument]:
        return [d for d in self._live_documents() if d.folder_id is None]

    def documents_in_folder(self, folder_id: str) -> List[ReceivedDocument]:
        return [d for d in self._live_documents() if d.folder_id == folder_id]

    def documents_for_shift(self, shift_id: str) -> List[ReceivedDocument]:
        return [d for d in self._live_documents() if d.shift_id == shift_id]

    def document_count(self, folder_id: Optional[str]) -> int:
        """Live documents in ``folder_id``; None counts the unsorted ones."""
        return sum(1 for d in self._live_documents() if d.folder_id == folder_id)

    def document_counts(self) -> Dict[Optional[str], int]:
        counts: Dict[Optional[str], int] = {f.id: 0 for f in self.folders}
        counts[None] = 0
        for doc in self._live_documents():
            counts[doc.folder_id] = counts.get(doc.folder_id, 0) + 1
        return counts

    def document_counts_by_subcontractor(self) -> Dict[str, int]:
        return discovery.count_by_subcontractor(self.documents, self.subcontractors)

    def filter_documents(self, status: Optional[str] = None, search: Optional[str] = None) -> List[ReceivedDocument]:
        needle = (search or "").strip().lower()
        docs = self._live_documents() if status is None else [d for d in self.documents if d.status == status]
        if not needle:
            return docs
        return [
            d
            for d in docs
            if needle in (d.original_filename or "").lower()
            or needle in (d.ai_summary or "").lower()
            or needle in (d.ai_classification or "").lower()
        ]

    def folder_list(self) -> List[ProjectFolder]:
        return sorted(self.folders, key=lambda f: (f.sort_order, f.folder_name.lower()))

    def discover_workers(self) -> List[DiscoveredWorker]:
        return discovery.discover_workers(self.documents, self.contacts)

    def discover_subcontractors(self) -> List[DiscoveredSubcontractor]:
        return discovery.discover_subcontractors(self.documents, self.subcontractors)

    # Documents: review actions

    def _review_stamp(self) -> Row:
        return {"reviewed_by": self.user_id, "reviewed_at": _now().isoformat()}

    def _check_folder(self, folder_id: str, action: str) -> None:
        self._require(self.folders, folder_id, action)

    async def move_document(self, document_id: str, folder_id: str) -> ReceivedDocument:
        self._require(self.documents, document_id, "move_document")
        self._check_folder(folder_id, "move_document")
        changes = {"folder_id": folder_id, "status": DocumentStatus.filed.value, **self._review_stamp()}
        row = await self._write("move_document", self.backend.update_document(document_id, changes))
        self._accept(ChangeType.update, DOCUMENTS, row)
        return self._canonical(self.documents, row)

    async def move_documents(self, document_ids: List[str], folder_id: str) -> List[ReceivedDocument]:
        self._check_folder(folder_id, "move_documents")
        changes = {"folder_id": folder_id, "status": DocumentStatus.filed.value, **self._review_stamp()}
        rows = await self._write("move_documents", self.backend.update_documents(list(document_ids), changes))
        self._accept_many(ChangeType.update, DOCUMENTS, rows)
        return [self.documents.get(str(r["id"])) for r in rows if str(r["id"]) in self.documents]

    async def update_document_metadata(self, document_id: str, overrides: Dict[str, Any], folder_id: Optional[str] = None) -> ReceivedDocument:
        """Merge supervisor corrections over the extracted data.

        ``overrides`` may use the plain names (``worker_name``,
        ``company_name``, ``document_date``), which are stored under their
        manual keys; any other key is merged as given.
        """
        doc = self._require(self.documents, document_id, "update_document_metadata")
        merged = dict(doc.ai_extracted_data or {})
        for key, value in overrides.items():
            merged[METADATA_OVERRIDE_KEYS.get(key, key)] = value
        changes: Row = {"ai_extracted_data": merged, **self._review_stamp()}
        if folder_id:
            self._check_folder(folder_id, "update_document_metadata")
            changes["folder_id"] = folder_id
            changes["status"] = DocumentStatus.filed.value
        row = await self._write("update_document_metadata", self.backend.update_document(document_id, changes))
        self._accept(ChangeType.update, DOCUMENTS, row)
        return self._canonical(self.documents, row)

    async def reject_document(self, document_id: str, reason: Optional[str] = None) -> ReceivedDocument:
        self._require(self.documents, document_id, "reject_document")
        changes = {"status": DocumentStatus.rejected.value, "rejection_reason": reason, **self._review_stamp()}
        row = await self._write("reject_document", self.backend.update_document(document_id, changes))
        self._accept(ChangeType.update, DOCUMENTS, row)
        return self._canonical(self.documents, row)

    async def reject_documents(self, document_ids: List[str], reason: Optional[str] = None) -> None:
        changes = {"status": DocumentStatus.rejected.value, "rejection_reason": reason, **self._review_stamp()}
        rows = await self._write("reject_documents", self.backend.update_documents(list(document_ids), changes))
        self._accept_many(ChangeType.update, DOCUMENTS, rows)

    async def reprocess_documents(self) -> ReprocessResult:
        project_id = self._require_project("reprocess_documents")
        body = await self._write("reprocess_documents", self.backend.reprocess_documents(project_id))
        result = ReprocessResult.model_validate({"success": True, **(body or {})})
        logger.info("store.documents_reprocessed", project_id=project_id, processed=result.processed, filed=result.filed)
        return result

    # Contacts

    async def fetch_contacts(self) -> List[Contact]:
        rows = await self._write("fetch_contacts", self.backend.fetch_contacts(self.user_id))
        self._accept_many(ChangeType.insert, CONTACTS, rows)
        return self.contact_list()

    def contact_list(self) -> List[Contact]:
        return sorted(self.contacts, key=lambda c: c.name.lower())

    async def create_contact(self, data: CreateContactInput) -> Contact:
        if not data.name.strip():
            raise DomainValidationError("Contact name is required")
        row = await self._write(
            "create_contact",
            self.backend.create_contact({"supervisor_id": self.user_id, **data.model_dump(mode="json"), "name": data.name.strip()}),
        )
        self._accept(ChangeType.insert, CONTACTS, row)
        return self._canonical(self.contacts, row)

    async def delete_contact(self, contact_id: str) -> None:
        # log entries keep their own copy of the name
        self._require(self.contacts, contact_id, "delete_contact")
        row = await self._write("delete_contact", self.backend.delete_contact(contact_id))
        self._accept(ChangeType.delete, CONTACTS, row)

    # Subcontractors

    def subcontractor_list(self, include_inactive: bool = True) -> List[Subcontractor]:
        items = [s for s in self.subcontractors if include_inactive or s.status == "active"]
        return sorted(items, key=lambda s: s.company_name.lower())

    async def create_subcontractor(self, data: CreateSubcontractorInput) -> Subcontractor:
        project_id = self._require_project("create_subcontractor")
        if not data.company_name.strip():
            raise DomainValidationError("Company name is required")
        row = await self._write(
            "create_subcontractor",
            self.backend.create_subcontractor({"project_id": project_id, **data.model_dump(mode="json"), "company_name": data.company_name.strip()}),
        )
        self._accept(ChangeType.insert, SUBCONTRACTORS, row)
        return self._canonical(self.subcontractors, row)

    async def update_subcontractor(self, subcontractor_id: str, data: UpdateSubcontractorInput) -> Subcontractor:
        sub = self._require(self.subcontractors, subcontractor_id, "update_subcontractor")
        changes = data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return sub
        row = await self._write("update_subcontractor", self.backend.update_subcontractor(subcontractor_id, changes))
        self._accept(ChangeType.update, SUBCONTRACTORS, row)
        return self._canonical(self.subcontractors, row)

    async def delete_subcontractor(self, subcontractor_id: str) -> None:
        self._require(self.subcontractors, subcontractor_id, "delete_subcontractor")
        row = await self._write("delete_subcontractor", self.backend.delete_subcontractor(subcontractor_id))
        self._accept(ChangeType.delete, SUBCONTRACTORS, row)
