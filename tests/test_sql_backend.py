"""Tests for the SQLAlchemy backend and the change payloads it publishes."""
import pytest

from sitedesk.errors import NotFoundError, WriteError


async def _collect(hub, project_id, tables=frozenset()):
    return await hub.connect(f"project-{project_id}", project_id, frozenset(tables))


def _queued(sub):
    items = []
    while not sub.queue.empty():
        items.append(sub.queue.get_nowait())
    return items


class TestRows:
    @pytest.mark.asyncio
    async def test_insert_returns_canonical_row(self, backend, make_project):
        project = await make_project()
        row = await backend.create_daily_log(
            {"project_id": project["id"], "log_date": "2024-05-01", "log_type": "manpower", "metadata": {"count": 4}}
        )
        assert row["id"]
        assert row["log_date"] == "2024-05-01"
        assert row["metadata"] == {"count": 4}
        assert row["status"] == "active"
        assert row["created_at"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_unknown_columns_are_ignored(self, backend, make_project):
        project = await make_project()
        row = await backend.create_shift(
            {"project_id": project["id"], "name": "Prep", "scheduled_date": "2024-05-02", "start_time": "07:00:00", "worker_count": 9}
        )
        assert row["start_time"] == "07:00:00"
        assert "worker_count" not in row

    @pytest.mark.asyncio
    async def test_filters(self, backend, make_project):
        project = await make_project()
        for day in ("2024-05-01", "2024-05-02", "2024-05-03"):
            await backend.create_daily_log({"project_id": project["id"], "log_date": day, "log_type": "note"})
        rows = await backend.select(
            "project_daily_logs",
            {"project_id": project["id"], "log_date__gte": "2024-05-02", "log_date__lte": "2024-05-03"},
            order_by="log_date",
        )
        assert [r["log_date"] for r in rows] == ["2024-05-02", "2024-05-03"]
        rows = await backend.fetch_daily_logs(project["id"])
        assert len(rows) == 3
        rows = await backend.select("project_daily_logs", {"created_by__is": None, "log_date__in": ["2024-05-01"]})
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_update_stamps_updated_at(self, backend, make_project):
        project = await make_project()
        row = await backend.create_daily_log({"project_id": project["id"], "log_date": "2024-05-01", "log_type": "note"})
        updated = await backend.update_daily_log(row["id"], {"content": "Edited"})
        assert updated["content"] == "Edited"
        assert updated["updated_at"] >= row["updated_at"]

    @pytest.mark.asyncio
    async def test_missing_rows(self, backend):
        with pytest.raises(NotFoundError):
            await backend.update_daily_log("missing", {"content": "x"})
        with pytest.raises(NotFoundError):
            await backend.delete_daily_log("missing")

    @pytest.mark.asyncio
    async def test_bad_filter(self, backend):
        with pytest.raises(WriteError):
            await backend.select("project_daily_logs", {"log_date__like": "2024%"})
        with pytest.raises(WriteError):
            await backend.select("no_such_table")

    @pytest.mark.asyncio
    async def test_unknown_function(self, backend):
        with pytest.raises(WriteError):
            await backend.send_shift_notifications("s1")


class TestPublishing:
    @pytest.mark.asyncio
    async def test_mutations_are_published(self, backend, hub, make_project):
        project = await make_project()
        sub = await _collect(hub, project["id"])
        row = await backend.create_daily_log({"project_id": project["id"], "log_date": "2024-05-01", "log_type": "note"})
        await backend.update_daily_log(row["id"], {"content": "Edited"})
        await backend.delete_daily_log(row["id"])

        payloads = _queued(sub)
        assert [p["type"] for p in payloads] == ["insert", "update", "delete"]
        assert payloads[1]["old"]["content"] == ""
        assert payloads[1]["new"]["content"] == "Edited"
        assert payloads[2]["new"] is None
        assert payloads[2]["old"]["id"] == row["id"]

    @pytest.mark.asyncio
    async def test_other_projects_not_published(self, backend, hub, make_project):
        p1 = await make_project("Tower A")
        p2 = await make_project("Tower B")
        sub = await _collect(hub, p1["id"])
        await backend.create_daily_log({"project_id": p2["id"], "log_date": "2024-05-01", "log_type": "note"})
        assert _queued(sub) == []

    @pytest.mark.asyncio
    async def test_shift_delete_cascades_workers(self, backend, hub, make_project):
        project = await make_project()
        shift = await backend.create_shift({"project_id": project["id"], "name": "Prep", "scheduled_date": "2024-05-02"})
        worker = await backend.add_shift_worker({"shift_id": shift["id"], "project_id": project["id"], "name": "Ana"})
        sub = await _collect(hub, project["id"])
        await backend.delete_shift(shift["id"])

        payloads = _queued(sub)
        assert [(p["table"], p["type"]) for p in payloads] == [("shift_workers", "delete"), ("project_shifts", "delete")]
        assert payloads[0]["old"]["id"] == worker["id"]
        assert await backend.fetch_shift_workers(project["id"]) == []

    @pytest.mark.asyncio
    async def test_contact_delete_leaves_logs(self, backend, make_project):
        project = await make_project()
        contact = await backend.create_contact({"name": "Ana Ruiz"})
        await backend.create_daily_log(
            {
                "project_id": project["id"],
                "log_date": "2024-05-01",
                "log_type": "meeting_minutes",
                "metadata": {"attendees": ["Ana Ruiz"]},
            }
        )
        await backend.delete_contact(contact["id"])
        rows = await backend.fetch_daily_logs(project["id"])
        assert rows[0]["metadata"]["attendees"] == ["Ana Ruiz"]
