"""Shared fixtures: a fresh in-memory database, change hub and store per test."""
import asyncio

import pytest
import pytest_asyncio

from sitedesk.backend.sql_backend import SqlBackend
from sitedesk.db import create_db_engine, create_session_factory, init_db
from sitedesk.errors import TransportError
from sitedesk.realtime.hub import ChangeHub
from sitedesk.realtime.listener import ChangeStreamListener
from sitedesk.realtime.transport import ChangeTransport, HubTransport, Subscription
from sitedesk.store.store import ProjectStore


class ScriptedSubscription(Subscription):
    """Yields a fixed list of payloads, then stays open until closed."""

    def __init__(self, payloads, hold_open=True):
        self._payloads = list(payloads)
        self._hold_open = hold_open
        self._closed = asyncio.Event()
        self.closed = False

    async def payloads(self):
        for payload in self._payloads:
            yield payload
        if self._hold_open:
            await self._closed.wait()

    async def aclose(self):
        self.closed = True
        self._closed.set()


class ScriptedTransport(ChangeTransport):
    """Transport without server-side filtering, scripted per project."""

    def __init__(self, hold_open=True):
        self.scripts = {}
        self.opened = []
        self.hold_open = hold_open
        self.fail_with = None

    async def connect(self, channel, project_id, tables):
        if self.fail_with is not None:
            raise TransportError(self.fail_with, project_id=project_id)
        sub = ScriptedSubscription(self.scripts.get(project_id, []), hold_open=self.hold_open)
        self.opened.append((channel, sub))
        return sub


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def hub():
    return ChangeHub()


@pytest.fixture
def backend(engine, hub):
    return SqlBackend(create_session_factory(engine), hub)


@pytest_asyncio.fixture
async def listener(hub):
    listener = ChangeStreamListener(HubTransport(hub), channel_prefix="project", queue_size=0)
    yield listener
    await listener.close()


@pytest_asyncio.fixture
async def store(backend, listener):
    store = ProjectStore(backend, listener, user_id="user-1", drop_stale=False, email_domain="intake.test")
    yield store
    await store.close()


@pytest_asyncio.fixture
async def make_project(backend):
    async def _make(name="Tower A"):
        return await backend.create_project({"name": name, "supervisor_id": "user-1", "is_active": True})

    return _make


@pytest.fixture
def settle():
    async def _settle(rounds=5):
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def scripted_transport():
    return ScriptedTransport()
