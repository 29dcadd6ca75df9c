"""
Shift lifecycle rules.

draft -> active -> completed, and draft|active -> cancelled. Completed and
cancelled are terminal. Every function here is pure: it checks a rule and
returns the column changes to send to the backend, so a rule violation
fails before any network call.
"""
import uuid
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..errors import (
    ChecklistRequiredError,
    IncompleteClosingError,
    InvalidTransitionError,
    NotificationRegressionError,
    RosterLockedError,
    ShiftReadOnlyError,
)
from ..schemas.shifts import (
    CloseoutChecklistItem,
    CustomCategory,
    CUSTOM_CATEGORY_TEXT_COLOR,
    NotificationStatus,
    SHIFT_CATEGORY_PRESETS,
    ShiftCategory,
    ShiftNote,
    ShiftRecord,
    ShiftStatus,
    ShiftTask,
    ShiftWorker,
)


SHIFT_TRANSITIONS: Dict[ShiftStatus, FrozenSet[ShiftStatus]] = {
    ShiftStatus.draft: frozenset({ShiftStatus.active, ShiftStatus.cancelled}),
    ShiftStatus.active: frozenset({ShiftStatus.completed, ShiftStatus.cancelled}),
    ShiftStatus.completed: frozenset(),
    ShiftStatus.cancelled: frozenset(),
}

TERMINAL_STATUSES = frozenset({ShiftStatus.completed, ShiftStatus.cancelled})

NOTIFICATION_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    NotificationStatus.pending: frozenset({NotificationStatus.sent, NotificationStatus.delivered, NotificationStatus.failed}),
    NotificationStatus.sent: frozenset({NotificationStatus.delivered, NotificationStatus.failed}),
    NotificationStatus.delivered: frozenset(),
    NotificationStatus.failed: frozenset(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def check_shift_transition(current: str, target: str) -> ShiftStatus:
    current_status = ShiftStatus(current)
    target_status = ShiftStatus(target)
    if target_status not in SHIFT_TRANSITIONS[current_status]:
        raise InvalidTransitionError("shift", current_status.value, target_status.value)
    return target_status


def activate(shift: ShiftRecord) -> Dict:
    check_shift_transition(shift.status, ShiftStatus.active)
    return {"status": ShiftStatus.active.value}


def closeout(
    shift: ShiftRecord,
    *,
    worker_count: int,
    forms_submitted: int,
    checklist: Optional[List[CloseoutChecklistItem]],
    closeout_notes: Optional[str] = None,
    incomplete_reason: Optional[str] = None,
    closed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """Validate a closeout and return the completed-shift changes.

    When fewer forms were submitted than workers were rostered, a non-blank
    ``incomplete_reason`` is mandatory.
    """
    check_shift_transition(shift.status, ShiftStatus.completed)
    if not checklist:
        raise ChecklistRequiredError(shift.id)
    reason = (incomplete_reason or "").strip()
    if forms_submitted < worker_count and not reason:
        raise IncompleteClosingError(worker_count, forms_submitted)
    return {
        "status": ShiftStatus.completed.value,
        "closeout_checklist": [item.model_dump(mode="json") for item in checklist],
        "closeout_notes": closeout_notes or None,
        "incomplete_reason": reason or None,
        "closed_at": (now or _now()).isoformat(),
        "closed_by": closed_by,
    }


def cancel(shift: ShiftRecord, *, cancelled_by: Optional[str] = None, now: Optional[datetime] = None) -> Dict:
    check_shift_transition(shift.status, ShiftStatus.cancelled)
    return {
        "status": ShiftStatus.cancelled.value,
        "closed_at": (now or _now()).isoformat(),
        "closed_by": cancelled_by,
    }


def ensure_roster_mutable(shift: ShiftRecord) -> None:
    if shift.status == ShiftStatus.cancelled.value:
        raise RosterLockedError(shift.id, shift.status)


def ensure_editable(shift: ShiftRecord) -> None:
    if ShiftStatus(shift.status) in TERMINAL_STATUSES:
        raise ShiftReadOnlyError(shift.id, shift.status)


def can_delete(shift: ShiftRecord) -> bool:
    return shift.status == ShiftStatus.draft.value


def notification_changes(worker: ShiftWorker, reported: str, error: Optional[str] = None, now: Optional[datetime] = None) -> Optional[Dict]:
    """Changes for a notifier callback, or None when it repeats the current status."""
    current = NotificationStatus(worker.notification_status)
    target = NotificationStatus(reported)
    if target == current:
        return None
    if target not in NOTIFICATION_TRANSITIONS[current]:
        raise NotificationRegressionError(current.value, target.value)
    changes: Dict = {"notification_status": target.value}
    if target == NotificationStatus.sent:
        changes["notification_sent_at"] = (now or _now()).isoformat()
    if target == NotificationStatus.failed:
        changes["notification_error"] = error or "Notification failed"
    return changes


def form_submission_changes(worker: ShiftWorker, document_id: Optional[str] = None, now: Optional[datetime] = None) -> Optional[Dict]:
    if worker.form_submitted:
        return None
    return {
        "form_submitted": True,
        "form_submitted_at": (now or _now()).isoformat(),
        "document_id": document_id,
    }


def roster_stats(workers: Iterable[ShiftWorker]) -> Tuple[int, int]:
    worker_count = 0
    forms_submitted = 0
    for w in workers:
        worker_count += 1
        if w.form_submitted:
            forms_submitted += 1
    return worker_count, forms_submitted


# Tasks, notes and categories

def category_info(category_id: str, custom_categories: Optional[List[CustomCategory]] = None) -> ShiftCategory:
    for preset in SHIFT_CATEGORY_PRESETS:
        if preset.id == category_id:
            return preset
    for custom in custom_categories or []:
        if custom.id == category_id:
            return ShiftCategory(id=custom.id, name=custom.name, type="custom", color=custom.color, text_color=CUSTOM_CATEGORY_TEXT_COLOR)
    return ShiftCategory(id=category_id, name=category_id, type="custom", color="#F3F4F6", text_color="#374151")


def all_categories(custom_categories: Optional[List[CustomCategory]] = None) -> List[ShiftCategory]:
    customs = [category_info(c.id, custom_categories) for c in custom_categories or []]
    return list(SHIFT_CATEGORY_PRESETS) + customs


def _dump(items) -> List[Dict]:
    return [i.model_dump(mode="json") for i in items]


def with_task_added(shift: ShiftRecord, category: str, content: str, now: Optional[datetime] = None) -> Dict:
    ensure_editable(shift)
    task = ShiftTask(id=str(uuid.uuid4()), category=category, content=content.strip(), created_at=now or _now())
    return {"shift_tasks": _dump(list(shift.shift_tasks) + [task])}


def with_task_toggled(shift: ShiftRecord, task_id: str) -> Dict:
    ensure_editable(shift)
    tasks = [t.model_copy(update={"checked": not t.checked}) if t.id == task_id else t for t in shift.shift_tasks]
    return {"shift_tasks": _dump(tasks)}


def with_task_removed(shift: ShiftRecord, task_id: str) -> Dict:
    ensure_editable(shift)
    return {"shift_tasks": _dump([t for t in shift.shift_tasks if t.id != task_id])}


def with_note_added(shift: ShiftRecord, category: str, content: str, now: Optional[datetime] = None) -> Dict:
    ensure_editable(shift)
    note = ShiftNote(id=str(uuid.uuid4()), category=category, content=content.strip(), created_at=now or _now())
    return {"shift_notes": _dump(list(shift.shift_notes) + [note])}


def with_note_updated(shift: ShiftRecord, note_id: str, content: str) -> Dict:
    ensure_editable(shift)
    notes = [n.model_copy(update={"content": content.strip()}) if n.id == note_id else n for n in shift.shift_notes]
    return {"shift_notes": _dump(notes)}


def with_note_removed(shift: ShiftRecord, note_id: str) -> Dict:
    ensure_editable(shift)
    return {"shift_notes": _dump([n for n in shift.shift_notes if n.id != note_id])}


def with_custom_category_added(shift: ShiftRecord, name: str, color: str) -> Dict:
    ensure_editable(shift)
    category = CustomCategory(id=f"custom-{uuid.uuid4().hex[:8]}", name=name.strip(), color=color)
    return {"custom_categories": _dump(list(shift.custom_categories) + [category])}


def with_custom_category_removed(shift: ShiftRecord, category_id: str) -> Dict:
    # Tasks and notes keep the id and fall back to neutral styling
    ensure_editable(shift)
    return {"custom_categories": _dump([c for c in shift.custom_categories if c.id != category_id])}
