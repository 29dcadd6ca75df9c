"""
Daily log rules.

Only site issues have a live status. Their transition table is fully
connected: any status may move to any other by supervisor action, including
reopening a resolved issue. Every other log type stays ``active``.
"""
from datetime import date
from typing import Dict, FrozenSet, Optional

from pydantic import ValidationError

from ..errors import DomainValidationError, InvalidTransitionError, MetadataShapeError
from ..schemas.daily_logs import (
    DailyLogType,
    METADATA_MODELS,
    LogMetadata,
    SiteIssueStatus,
    VisitorMetadata,
    ManpowerMetadata,
)


SITE_ISSUE_TRANSITIONS: Dict[SiteIssueStatus, FrozenSet[SiteIssueStatus]] = {
    SiteIssueStatus.active: frozenset({SiteIssueStatus.resolved, SiteIssueStatus.continued}),
    SiteIssueStatus.resolved: frozenset({SiteIssueStatus.active, SiteIssueStatus.continued}),
    SiteIssueStatus.continued: frozenset({SiteIssueStatus.active, SiteIssueStatus.resolved}),
}


def validate_metadata(log_type: str, metadata: Optional[Dict]) -> LogMetadata:
    """Validate ``metadata`` against the shape owned by ``log_type``.

    Raises MetadataShapeError for unknown types, wrong field types, and the
    few required values the forms enforce (a visitor needs a name, counts
    and hours cannot be negative).
    """
    try:
        kind = DailyLogType(log_type)
    except ValueError:
        raise MetadataShapeError(str(log_type), "unknown log type")

    model = METADATA_MODELS[kind]
    try:
        parsed = model.model_validate(metadata or {})
    except ValidationError as e:
        raise MetadataShapeError(kind.value, _first_error(e))

    if isinstance(parsed, VisitorMetadata) and not parsed.name.strip():
        raise MetadataShapeError(kind.value, "visitor name is required")
    if isinstance(parsed, ManpowerMetadata):
        if parsed.count is not None and parsed.count < 0:
            raise MetadataShapeError(kind.value, "count cannot be negative")
        if parsed.hours is not None and parsed.hours < 0:
            raise MetadataShapeError(kind.value, "hours cannot be negative")
        for person in parsed.personnel:
            if not person.name.strip():
                raise MetadataShapeError(kind.value, "personnel entries need a name")
    return parsed


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def _site_issue_status(value: str) -> SiteIssueStatus:
    try:
        return SiteIssueStatus(value)
    except ValueError:
        raise DomainValidationError(f"Unknown status {value!r}") from None


def initial_status(log_type: str, requested: Optional[str] = None) -> str:
    if log_type == DailyLogType.site_issue.value and requested:
        return _site_issue_status(requested).value
    return SiteIssueStatus.active.value


def check_status_transition(log_type: str, current: str, target: str) -> str:
    """Return the target status if the move is allowed."""
    target_status = _site_issue_status(target)
    if log_type != DailyLogType.site_issue.value:
        if target_status != SiteIssueStatus.active:
            raise InvalidTransitionError(f"{log_type} log", current, target_status.value)
        return target_status.value
    current_status = _site_issue_status(current)
    if target_status == current_status:
        return target_status.value
    if target_status not in SITE_ISSUE_TRANSITIONS[current_status]:
        raise InvalidTransitionError("site issue", current_status.value, target_status.value)
    return target_status.value


def resolve_log_date(log_date: Optional[date], today: Optional[date] = None) -> date:
    return log_date or today or date.today()
