"""
Shared fixtures for the wedding invitation API tests

The services talk to Motor's async collection API. Tests run them against
mongomock (which enforces the same unique and partial unique indexes) through
a thin awaitable wrapper, so no MongoDB server is needed.
"""
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_NAME", "wedding_invitations_test")

import asyncio
from contextlib import asynccontextmanager

import mongomock
import pytest
from fastapi.testclient import TestClient

from core.database import create_database_indexes
from server import create_app
from services.auth import create_access_token
from services.reconciler import CounterReconciler


class AsyncCursor:
    """Awaitable view over a mongomock cursor (sort/skip/limit/to_list/async for)"""

    def __init__(self, cursor):
        self._cursor = cursor
        self._iterator = None

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        docs = list(self._cursor)
        return docs if length is None else docs[:length]

    def __aiter__(self):
        self._iterator = iter(self._cursor)
        return self

    async def __anext__(self):
        try:
            return next(self._iterator)
        except StopIteration:
            raise StopAsyncIteration


class AsyncCollection:
    def __init__(self, collection, yield_control=False):
        self._collection = collection
        self._yield_control = yield_control

    def find(self, *args, **kwargs):
        return AsyncCursor(self._collection.find(*args, **kwargs))

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not callable(attr):
            return attr

        async def call(*args, **kwargs):
            # mongomock rejects sessions, so record the call on ours instead
            session = kwargs.pop("session", None)
            if self._yield_control:
                await asyncio.sleep(0)
            if session is not None:
                session.operations.append(name)
            return attr(*args, **kwargs)
        return call


class AsyncSession:
    """Records what ran inside it and whether the transaction committed"""

    def __init__(self):
        self.operations = []
        self.committed = False
        self.aborted = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @asynccontextmanager
    async def start_transaction(self):
        try:
            yield self
        except BaseException:
            self.aborted = True
            raise
        self.committed = True


class AsyncClient:
    def __init__(self):
        self.sessions = []

    async def start_session(self):
        session = AsyncSession()
        self.sessions.append(session)
        return session


class AsyncDatabase:
    """
    Motor-shaped handle over a mongomock database. With yield_control every
    call first yields to the event loop, so coroutines run with asyncio.gather
    interleave between storage calls the way concurrent requests do.
    """

    def __init__(self, database, yield_control=False):
        self._database = database
        self._yield_control = yield_control
        self._collections = {}
        self.client = AsyncClient()

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = AsyncCollection(self._database[name], self._yield_control)
        return self._collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


@pytest.fixture
def mongo():
    """Synchronous mongomock database, for arranging and inspecting state"""
    return mongomock.MongoClient()["wedding_invitations_test"]


@pytest.fixture
def db(mongo):
    """Async database handle with the production indexes"""
    database = AsyncDatabase(mongo)
    asyncio.run(create_database_indexes(database))
    return database


@pytest.fixture
def yielding_db(db, mongo):
    """Same data as `db`, but every storage call yields to the event loop first"""
    return AsyncDatabase(mongo, yield_control=True)


@pytest.fixture
def reconciler(db):
    """Reconciles inline so counters are exact when a request returns"""
    return CounterReconciler(db, debounce_seconds=0)


@pytest.fixture
def client(db, reconciler):
    app = create_app(database=db, reconciler=reconciler, run_background_tasks=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def owner_headers():
    token = create_access_token({"sub": "user-owner-1", "email": "owner@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers():
    token = create_access_token({"sub": "user-other-2", "email": "other@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def wedding_payload():
    """Minimal wedding that can be published"""
    return {
        "title": "J&J Wedding",
        "slug": "j-and-j-2026",
        "couple": {"partner1": {"first": "Jay"}, "partner2": {"first": "Jo"}},
        "event": {
            "title": "Ceremony",
            "date": "2026-06-20",
            "venue_name": "Hall",
            "venue_address": "1 Rd",
        },
        "rsvp": {"max_plus_ones": 2},
    }


@pytest.fixture
def published_wedding(client, owner_headers, wedding_payload):
    """A published, public wedding owned by owner_headers"""
    response = client.post("/api/v1/weddings", json=wedding_payload, headers=owner_headers)
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.text}"
    wedding = response.json()
    response = client.post(f"/api/v1/weddings/{wedding['id']}/publish", headers=owner_headers)
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.text}"
    return response.json()


@pytest.fixture
def rsvp_payload():
    return {
        "first_name": "Alex",
        "last_name": "Lee",
        "email": "a@l.com",
        "status": "attending",
        "attendance_count": 1,
        "plus_ones": [{"first_name": "Kim", "last_name": "Lee"}],
    }
