from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class Row(BaseModel):
    """Base for cached rows; unknown server columns are carried through."""
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: str


class Project(Row):
    supervisor_id: Optional[str] = None
    name: str
    site_address: Optional[str] = None
    processing_email: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectFolder(Row):
    project_id: str
    folder_name: str
    description: Optional[str] = None
    ai_classification_hint: Optional[str] = None
    color: str = "#6B7280"
    sort_order: int = 0
    created_at: Optional[datetime] = None


class SubcontractorStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class Subcontractor(Row):
    project_id: str
    company_name: str
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    status: SubcontractorStatus = SubcontractorStatus.active
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactSource(str, Enum):
    manual = "manual"
    discovered = "discovered"


class Contact(Row):
    supervisor_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    notes: Optional[str] = None
    source: ContactSource = ContactSource.manual
    recent_project_id: Optional[str] = None
    recent_project_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Inputs
class CreateProjectInput(BaseModel):
    name: str
    site_address: Optional[str] = None
    folder_presets: List[str] = []

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Project name is required")
        return v


class CreateSubcontractorInput(BaseModel):
    company_name: str
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None


class UpdateSubcontractorInput(BaseModel):
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[SubcontractorStatus] = None


class CreateContactInput(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    notes: Optional[str] = None
    source: ContactSource = ContactSource.manual
    recent_project_id: Optional[str] = None


class FolderPreset(BaseModel):
    name: str
    hint: str
    color: str


# Form types offered when a project is set up; each becomes a folder whose
# hint steers the document classifier.
FOLDER_PRESETS: List[FolderPreset] = [
    FolderPreset(name="FLRA", hint="Field Level Risk Assessment, hazard identification, job safety analysis", color="#3B82F6"),
    FolderPreset(name="Hot Work Permit", hint="Welding, cutting, grinding, open flame work permits", color="#EF4444"),
    FolderPreset(name="Equipment Inspection", hint="Crane, forklift, scaffold, ladder inspection checklists", color="#F59E0B"),
    FolderPreset(name="Confined Space Entry", hint="Permit required confined space, atmospheric testing", color="#8B5CF6"),
    FolderPreset(name="Daily Safety Report", hint="Daily site safety checklist, toolbox talks, site conditions", color="#10B981"),
    FolderPreset(name="Incident Report", hint="Near miss, injury, property damage reports", color="#DC2626"),
    FolderPreset(name="Excavation Permit", hint="Trenching, shoring, excavation safety permits", color="#78716C"),
    FolderPreset(name="Lockout/Tagout", hint="Energy isolation, LOTO procedures", color="#0EA5E9"),
]


def find_folder_preset(name: str) -> Optional[FolderPreset]:
    for preset in FOLDER_PRESETS:
        if preset.name == name:
            return preset
    return None
