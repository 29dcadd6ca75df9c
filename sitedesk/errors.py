"""
Error taxonomy for the sync core.

Transport errors concern the change stream, write errors concern the data
API, and validation errors are raised before any network call is made.
Stale or duplicate events are never errors; the reconciler absorbs them.
"""
from typing import Optional


class SiteDeskError(Exception):
    """Base class for every error raised by the sync core."""


class TransportError(SiteDeskError):
    """The change-stream subscription failed or closed unexpectedly."""

    def __init__(self, message: str, project_id: Optional[str] = None):
        super().__init__(message)
        self.project_id = project_id


class WriteError(SiteDeskError):
    """A remote write was rejected; the cache was left untouched."""

    def __init__(self, action: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.action = action
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.action}: {self.message}"


class NotFoundError(WriteError):
    def __init__(self, action: str, entity: str, entity_id: str):
        super().__init__(action, f"{entity} {entity_id} not found", status_code=404)
        self.entity = entity
        self.entity_id = entity_id


class DomainValidationError(SiteDeskError):
    """A lifecycle or shape rule was violated; nothing was sent."""


class IncompleteClosingError(DomainValidationError):
    def __init__(self, worker_count: int, forms_submitted: int):
        missing = worker_count - forms_submitted
        super().__init__(
            f"{missing} of {worker_count} workers have not submitted forms; "
            "an incomplete reason is required to close out the shift"
        )
        self.worker_count = worker_count
        self.forms_submitted = forms_submitted


class InvalidTransitionError(DomainValidationError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity} cannot move from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class RosterLockedError(DomainValidationError):
    def __init__(self, shift_id: str, status: str):
        super().__init__(f"Shift {shift_id} is {status}; its roster can no longer change")
        self.shift_id = shift_id
        self.status = status


class MetadataShapeError(DomainValidationError):
    def __init__(self, log_type: str, detail: str):
        super().__init__(f"Metadata does not match log type {log_type}: {detail}")
        self.log_type = log_type
        self.detail = detail


class NotificationRegressionError(DomainValidationError):
    def __init__(self, current: str, reported: str):
        super().__init__(f"Notification status cannot go from {current} to {reported}")
        self.current = current
        self.reported = reported


class ShiftReadOnlyError(DomainValidationError):
    def __init__(self, shift_id: str, status: str):
        super().__init__(f"Shift {shift_id} is {status}; its tasks and notes are read-only")
        self.shift_id = shift_id
        self.status = status


class ChecklistRequiredError(DomainValidationError):
    def __init__(self, shift_id: str):
        super().__init__(f"Shift {shift_id} cannot be closed out without a checklist")
        self.shift_id = shift_id


class NoProjectSelectedError(DomainValidationError):
    def __init__(self, action: str):
        super().__init__(f"{action} needs a current project")
        self.action = action


class StaleResponseError(SiteDeskError):
    """The write went through, but for a project that is no longer current."""

    def __init__(self, entity: str, project_id: Optional[str], current_project_id: Optional[str]):
        super().__init__(f"{entity} result for project {project_id} was dropped; current project is {current_project_id}")
        self.entity = entity
        self.project_id = project_id
        self.current_project_id = current_project_id
