"""Tests for daily log metadata shapes and the site issue status machine."""
from datetime import date

import pytest

from sitedesk.errors import DomainValidationError, InvalidTransitionError, MetadataShapeError
from sitedesk.schemas.daily_logs import (
    DailyLogType,
    ManpowerMetadata,
    MeetingMinutesLog,
    SiteIssueLog,
    SiteIssueStatus,
    VisitorMetadata,
    parse_daily_log,
)
from sitedesk.services.daily_log import (
    SITE_ISSUE_TRANSITIONS,
    check_status_transition,
    initial_status,
    resolve_log_date,
    validate_metadata,
)


class TestValidateMetadata:
    def test_manpower(self):
        meta = validate_metadata("manpower", {"company": "Acme", "count": 4, "hours": 8})
        assert isinstance(meta, ManpowerMetadata)
        assert meta.count == 4

    def test_manpower_personnel(self):
        meta = validate_metadata(
            "manpower",
            {"company": "Acme", "personnel": [{"type": "worker", "name": "Ana Ruiz", "hours": 8}]},
        )
        assert meta.personnel[0].name == "Ana Ruiz"

    def test_visitor_requires_name(self):
        with pytest.raises(MetadataShapeError):
            validate_metadata("visitor", {"company": "City inspections"})
        assert isinstance(validate_metadata("visitor", {"name": "J. Ortiz"}), VisitorMetadata)

    def test_wrong_field_type(self):
        with pytest.raises(MetadataShapeError) as exc:
            validate_metadata("manpower", {"count": "a few"})
        assert exc.value.log_type == "manpower"

    def test_negative_count(self):
        with pytest.raises(MetadataShapeError):
            validate_metadata("manpower", {"count": -1})

    def test_unknown_log_type(self):
        with pytest.raises(MetadataShapeError):
            validate_metadata("weather", {})

    def test_unknown_priority(self):
        with pytest.raises(MetadataShapeError):
            validate_metadata("site_issue", {"priority": "urgent"})

    def test_every_type_accepts_empty_metadata_except_visitor(self):
        for log_type in DailyLogType:
            if log_type == DailyLogType.visitor:
                continue
            validate_metadata(log_type.value, {})


class TestParse:
    def test_discriminates_on_log_type(self):
        entry = parse_daily_log(
            {
                "id": "l1",
                "project_id": "p1",
                "log_date": "2024-05-01",
                "log_type": "meeting_minutes",
                "metadata": {"meeting_type": "safety", "attendees": ["Ana", "Luis"]},
            }
        )
        assert isinstance(entry, MeetingMinutesLog)
        assert entry.metadata.attendees == ["Ana", "Luis"]

    def test_site_issue_defaults_active(self):
        entry = parse_daily_log({"id": "l2", "project_id": "p1", "log_date": "2024-05-01", "log_type": "site_issue"})
        assert isinstance(entry, SiteIssueLog)
        assert entry.status == "active"


class TestSiteIssueStatus:
    def test_round_trip_ends_active(self):
        status = "active"
        status = check_status_transition("site_issue", status, "resolved")
        status = check_status_transition("site_issue", status, "active")
        assert status == "active"

    def test_transitions_are_unrestricted(self):
        for current in SiteIssueStatus:
            for target in SiteIssueStatus:
                assert check_status_transition("site_issue", current.value, target.value) == target.value
        assert all(len(targets) == 2 for targets in SITE_ISSUE_TRANSITIONS.values())

    def test_other_types_stay_active(self):
        assert check_status_transition("delivery", "active", "active") == "active"
        with pytest.raises(InvalidTransitionError):
            check_status_transition("delivery", "active", "resolved")

    def test_unknown_status(self):
        with pytest.raises(DomainValidationError):
            check_status_transition("site_issue", "active", "closed")
        with pytest.raises(DomainValidationError):
            initial_status("site_issue", "closed")

    def test_initial_status(self):
        assert initial_status("site_issue", "continued") == "continued"
        assert initial_status("note", "resolved") == "active"


def test_resolve_log_date():
    assert resolve_log_date(None, today=date(2024, 5, 1)) == date(2024, 5, 1)
    assert resolve_log_date(date(2024, 4, 30), today=date(2024, 5, 1)) == date(2024, 4, 30)
