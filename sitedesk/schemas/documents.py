from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel

from .projects import Row


class DocumentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    filed = "filed"
    needs_review = "needs_review"
    rejected = "rejected"


class ReceivedDocument(Row):
    project_id: str
    folder_id: Optional[str] = None
    shift_id: Optional[str] = None
    original_filename: Optional[str] = None
    storage_path: str = ""
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    source_email: Optional[str] = None
    email_subject: Optional[str] = None
    ai_classification: Optional[str] = None
    ai_extracted_data: Dict[str, Any] = {}
    ai_summary: Optional[str] = None
    confidence_score: Optional[float] = None
    status: DocumentStatus = DocumentStatus.pending
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    received_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EffectiveMetadata(BaseModel):
    worker_name: Optional[str] = None
    company_name: Optional[str] = None
    document_date: Optional[str] = None


def effective_metadata(data: Optional[Dict[str, Any]]) -> EffectiveMetadata:
    """Supervisor overrides (the ``*Manual`` keys) win over AI extraction."""
    data = data or {}

    def pick(manual_key: str, ai_key: str) -> Optional[str]:
        value = data.get(manual_key)
        if value is None:
            value = data.get(ai_key)
        return value

    return EffectiveMetadata(
        worker_name=pick("workerNameManual", "workerName"),
        company_name=pick("companyNameManual", "companyName"),
        document_date=pick("documentDateManual", "documentDate"),
    )


class ReprocessResult(BaseModel):
    success: bool
    processed: int = 0
    filed: int = 0
    message: str = ""


class DiscoveredWorker(BaseModel):
    name: str
    email: Optional[str] = None
    company_name: Optional[str] = None
    document_count: int = 0
    last_seen: Optional[datetime] = None


class DiscoveredSubcontractor(BaseModel):
    company_name: str
    document_count: int = 0
    last_seen: Optional[datetime] = None
    worker_names: List[str] = []
