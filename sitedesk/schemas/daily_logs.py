"""
Daily log entries.

An entry is a tagged variant: ``log_type`` selects the shape of
``metadata``. Each variant is its own model with a literal ``log_type`` so
the union below is discriminated and an entry can never hold metadata of
another type.
"""
from datetime import date, datetime
from typing import Annotated, Dict, List, Literal, Optional, Type, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .projects import Row


class DailyLogType(str, Enum):
    visitor = "visitor"
    delivery = "delivery"
    site_issue = "site_issue"
    manpower = "manpower"
    schedule_delay = "schedule_delay"
    observation = "observation"
    note = "note"
    meeting_minutes = "meeting_minutes"


class SiteIssueStatus(str, Enum):
    active = "active"
    resolved = "resolved"
    continued = "continued"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class DelayType(str, Enum):
    weather = "weather"
    material = "material"
    labor = "labor"
    inspection = "inspection"
    other = "other"


class NoteCategory(str, Enum):
    phone = "phone"
    email = "email"
    conversation = "conversation"
    reminder = "reminder"
    general = "general"
    other = "other"


class MeetingType(str, Enum):
    general = "general"
    safety = "safety"
    coordination = "coordination"
    progress = "progress"
    toolbox = "toolbox"
    other = "other"


class LogMetadata(BaseModel):
    model_config = ConfigDict(extra="allow", use_enum_values=True)


class VisitorMetadata(LogMetadata):
    name: str = ""
    company: Optional[str] = None
    purpose: Optional[str] = None
    time_in: Optional[str] = None  # HH:MM
    time_out: Optional[str] = None  # HH:MM
    badge_number: Optional[str] = None


class DeliveryMetadata(LogMetadata):
    supplier: Optional[str] = None
    items: Optional[str] = None
    received_by: Optional[str] = None
    delivery_time: Optional[str] = None  # HH:MM
    po_number: Optional[str] = None


class ManpowerPersonnelEntry(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: Literal["worker", "subcontractor"]
    # Denormalized so history survives deletion of the referenced contact
    name: str
    id: Optional[str] = None
    hours: Optional[float] = None


class ManpowerMetadata(LogMetadata):
    company: Optional[str] = None
    trade: Optional[str] = None
    count: Optional[int] = None
    hours: Optional[float] = None
    personnel: List[ManpowerPersonnelEntry] = []


class SiteIssueMetadata(LogMetadata):
    priority: Optional[Priority] = None
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None


class ScheduleDelayMetadata(LogMetadata):
    delay_type: Optional[DelayType] = None
    impact_hours: Optional[float] = None
    affected_areas: Optional[str] = None


class ObservationMetadata(LogMetadata):
    location: Optional[str] = None
    area: Optional[str] = None
    photo_url: Optional[str] = None
    photo_storage_path: Optional[str] = None


class NoteMetadata(LogMetadata):
    category: Optional[NoteCategory] = None
    priority: Optional[Priority] = None
    related_to: Optional[str] = None


class MeetingMinutesMetadata(LogMetadata):
    meeting_type: Optional[MeetingType] = None
    custom_type: Optional[str] = None
    meeting_title: Optional[str] = None
    attendees: List[str] = []
    meeting_time: Optional[str] = None  # HH:MM
    location: Optional[str] = None
    duration_minutes: Optional[int] = None


class DailyLogBase(Row):
    project_id: str
    log_date: date
    content: str = ""
    status: SiteIssueStatus = SiteIssueStatus.active
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VisitorLog(DailyLogBase):
    log_type: Literal["visitor"]
    metadata: VisitorMetadata = VisitorMetadata()


class DeliveryLog(DailyLogBase):
    log_type: Literal["delivery"]
    metadata: DeliveryMetadata = DeliveryMetadata()


class SiteIssueLog(DailyLogBase):
    log_type: Literal["site_issue"]
    metadata: SiteIssueMetadata = SiteIssueMetadata()


class ManpowerLog(DailyLogBase):
    log_type: Literal["manpower"]
    metadata: ManpowerMetadata = ManpowerMetadata()


class ScheduleDelayLog(DailyLogBase):
    log_type: Literal["schedule_delay"]
    metadata: ScheduleDelayMetadata = ScheduleDelayMetadata()


class ObservationLog(DailyLogBase):
    log_type: Literal["observation"]
    metadata: ObservationMetadata = ObservationMetadata()


class NoteLog(DailyLogBase):
    log_type: Literal["note"]
    metadata: NoteMetadata = NoteMetadata()


class MeetingMinutesLog(DailyLogBase):
    log_type: Literal["meeting_minutes"]
    metadata: MeetingMinutesMetadata = MeetingMinutesMetadata()


DailyLogEntry = Annotated[
    Union[
        VisitorLog,
        DeliveryLog,
        SiteIssueLog,
        ManpowerLog,
        ScheduleDelayLog,
        ObservationLog,
        NoteLog,
        MeetingMinutesLog,
    ],
    Field(discriminator="log_type"),
]

daily_log_adapter: TypeAdapter = TypeAdapter(DailyLogEntry)

METADATA_MODELS: Dict[DailyLogType, Type[LogMetadata]] = {
    DailyLogType.visitor: VisitorMetadata,
    DailyLogType.delivery: DeliveryMetadata,
    DailyLogType.site_issue: SiteIssueMetadata,
    DailyLogType.manpower: ManpowerMetadata,
    DailyLogType.schedule_delay: ScheduleDelayMetadata,
    DailyLogType.observation: ObservationMetadata,
    DailyLogType.note: NoteMetadata,
    DailyLogType.meeting_minutes: MeetingMinutesMetadata,
}


def parse_daily_log(row: dict):
    return daily_log_adapter.validate_python(row)


# Inputs
class CreateDailyLogInput(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    log_type: DailyLogType
    content: str
    log_date: Optional[date] = None  # defaults to today
    metadata: Dict = {}
    status: SiteIssueStatus = SiteIssueStatus.active


class UpdateDailyLogInput(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    content: Optional[str] = None
    metadata: Optional[Dict] = None
    status: Optional[SiteIssueStatus] = None


class StatusChangeInput(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: SiteIssueStatus
