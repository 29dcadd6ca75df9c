from datetime import date, datetime, time
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .projects import Row


class ShiftStatus(str, Enum):
    draft = "draft"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class WorkerType(str, Enum):
    registered = "registered"
    adhoc = "adhoc"


class NotificationMethod(str, Enum):
    sms = "sms"
    email = "email"
    both = "both"


class NotificationStatus(str, Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    failed = "failed"


class ShiftCategory(BaseModel):
    id: str
    name: str
    type: str
    color: str
    text_color: str


SHIFT_CATEGORY_PRESETS: List[ShiftCategory] = [
    ShiftCategory(id="safety", name="Safety", type="safety", color="#FEF3C7", text_color="#B45309"),
    ShiftCategory(id="quality", name="Quality", type="quality", color="#DBEAFE", text_color="#1D4ED8"),
    ShiftCategory(id="production", name="Production", type="production", color="#D1FAE5", text_color="#047857"),
    ShiftCategory(id="general", name="General", type="general", color="#F3F4F6", text_color="#374151"),
]

CUSTOM_CATEGORY_TEXT_COLOR = "#6D28D9"


class CustomCategory(BaseModel):
    id: str
    name: str
    color: str


class ShiftTask(BaseModel):
    id: str
    category: str
    content: str
    checked: bool = False
    created_at: Optional[datetime] = None


class ShiftNote(BaseModel):
    id: str
    category: str
    content: str
    created_at: Optional[datetime] = None


class CloseoutChecklistItem(BaseModel):
    id: str
    label: str
    checked: bool = False


DEFAULT_CLOSEOUT_CHECKLIST: List[CloseoutChecklistItem] = [
    CloseoutChecklistItem(id="forms", label="All required safety forms collected"),
    CloseoutChecklistItem(id="equipment", label="Equipment returned/secured"),
    CloseoutChecklistItem(id="site", label="Site conditions acceptable for next shift"),
]


class ShiftRecord(Row):
    project_id: str
    name: str
    scheduled_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    status: ShiftStatus = ShiftStatus.draft
    notes: Optional[str] = None  # pre-shift notes sent to workers

    shift_tasks: List[ShiftTask] = []
    shift_notes: List[ShiftNote] = []
    custom_categories: List[CustomCategory] = []

    closeout_checklist: List[CloseoutChecklistItem] = []
    closeout_notes: Optional[str] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    incomplete_reason: Optional[str] = None

    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Populated by stats queries
    worker_count: int = 0
    forms_submitted: int = 0


class ShiftWorker(Row):
    shift_id: str
    project_id: Optional[str] = None
    worker_type: WorkerType = WorkerType.adhoc
    user_id: Optional[str] = None
    subcontractor_id: Optional[str] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None

    notification_method: NotificationMethod = NotificationMethod.sms
    notification_status: NotificationStatus = NotificationStatus.pending
    notification_sent_at: Optional[datetime] = None
    notification_error: Optional[str] = None

    form_submitted: bool = False
    form_submitted_at: Optional[datetime] = None
    document_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Inputs
class CreateShiftInput(BaseModel):
    name: str
    scheduled_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    notes: Optional[str] = None
    shift_tasks: List[ShiftTask] = []
    shift_notes: List[ShiftNote] = []
    custom_categories: List[CustomCategory] = []


class UpdateShiftInput(BaseModel):
    """Plain field edits; status changes go through the lifecycle actions."""
    name: Optional[str] = None
    scheduled_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    notes: Optional[str] = None


class AddShiftWorkerInput(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    worker_type: WorkerType
    name: str
    user_id: Optional[str] = None
    subcontractor_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notification_method: NotificationMethod = NotificationMethod.sms


class UpdateShiftWorkerInput(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notification_method: Optional[NotificationMethod] = None
    subcontractor_id: Optional[str] = None


class CloseoutShiftInput(BaseModel):
    closeout_checklist: List[CloseoutChecklistItem]
    closeout_notes: Optional[str] = None
    incomplete_reason: Optional[str] = None
