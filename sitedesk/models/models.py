import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Time,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[str]:
    # String ids so SQLite and Postgres hand back the same canonical value
    return mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SupervisorProject(Base):
    __tablename__ = "supervisor_projects"

    id: Mapped[str] = uuid_pk()
    supervisor_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    site_address: Mapped[Optional[str]] = mapped_column(String(500))
    processing_email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ProjectFolder(Base):
    __tablename__ = "project_folders"

    id: Mapped[str] = uuid_pk()
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("supervisor_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(1000))
    ai_classification_hint: Mapped[Optional[str]] = mapped_column(String(1000))
    color: Mapped[str] = mapped_column(String(20), default="#6B7280")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ProjectSubcontractor(Base):
    __tablename__ = "project_subcontractors"

    id: Mapped[str] = uuid_pk()
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("supervisor_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active|inactive
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class SupervisorContact(Base):
    """Supervisor-wide contact list; log entries only copy names from it."""
    __tablename__ = "supervisor_contacts"

    id: Mapped[str] = uuid_pk()
    supervisor_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(20), default="manual")  # manual|discovered
    recent_project_id: Mapped[Optional[str]] = mapped_column(String(36))
    recent_project_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ProjectDailyLog(Base):
    __tablename__ = "project_daily_logs"

    id: Mapped[str] = uuid_pk()
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("supervisor_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    log_date: Mapped[date] = mapped_column(Date, nullable=False)
    log_type: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active|resolved|continued
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_daily_logs_project_date", "project_id", "log_date"),
    )


class ProjectShift(Base):
    __tablename__ = "project_shifts"

    id: Mapped[str] = uuid_pk()
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("supervisor_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[Optional[time]] = mapped_column(Time(timezone=False))
    end_time: Mapped[Optional[time]] = mapped_column(Time(timezone=False))
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft|active|completed|cancelled
    notes: Mapped[Optional[str]] = mapped_column(Text)
    shift_tasks: Mapped[list] = mapped_column(JSON, default=list)
    shift_notes: Mapped[list] = mapped_column(JSON, default=list)
    custom_categories: Mapped[list] = mapped_column(JSON, default=list)
    closeout_checklist: Mapped[list] = mapped_column(JSON, default=list)
    closeout_notes: Mapped[Optional[str]] = mapped_column(Text)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[Optional[str]] = mapped_column(String(36))
    incomplete_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_shifts_project_date", "project_id", "scheduled_date"),
    )


class ShiftWorker(Base):
    __tablename__ = "shift_workers"

    id: Mapped[str] = uuid_pk()
    shift_id: Mapped[str] = mapped_column(String(36), ForeignKey("project_shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Denormalized so change-stream filters can scope worker rows by project
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    worker_type: Mapped[str] = mapped_column(String(20), default="adhoc")  # registered|adhoc
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    subcontractor_id: Mapped[Optional[str]] = mapped_column(String(36))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    notification_method: Mapped[str] = mapped_column(String(10), default="sms")  # sms|email|both
    notification_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|delivered|failed
    notification_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notification_error: Mapped[Optional[str]] = mapped_column(Text)
    form_submitted: Mapped[bool] = mapped_column(Boolean, default=False)
    form_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    document_id: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ReceivedDocument(Base):
    """Written by the classification pipeline, reviewed by supervisors."""
    __tablename__ = "received_documents"

    id: Mapped[str] = uuid_pk()
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("supervisor_projects.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("project_folders.id", ondelete="SET NULL"))
    shift_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("project_shifts.id", ondelete="SET NULL"))
    original_filename: Mapped[Optional[str]] = mapped_column(String(500))
    storage_path: Mapped[str] = mapped_column(String(1000), default="")
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255))
    source_email: Mapped[Optional[str]] = mapped_column(String(255))
    email_subject: Mapped[Optional[str]] = mapped_column(String(500))
    ai_classification: Mapped[Optional[str]] = mapped_column(String(255))
    ai_extracted_data: Mapped[dict] = mapped_column(JSON, default=dict)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|processing|filed|needs_review|rejected
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(36))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


TABLE_MODELS = {
    model.__tablename__: model
    for model in (
        SupervisorProject,
        ProjectFolder,
        ProjectSubcontractor,
        SupervisorContact,
        ProjectDailyLog,
        ProjectShift,
        ShiftWorker,
        ReceivedDocument,
    )
}
