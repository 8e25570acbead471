"""Shared pytest fixtures for the portal data-layer test suite.

Provides:
- db_engine / session_factory: in-memory SQLite async engine for ownership rows
- store: in-memory emulation of the tabular store, mounted via httpx.MockTransport
- identity: a StaticIdentity signed in as "user-a"
- sleeps: recorder standing in for asyncio.sleep (no real waiting)
- portal: a fully wired Portal over all of the above
"""

import asyncio
import json
from collections import defaultdict

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from src.auth.identity import StaticIdentity
from src.config.settings import Settings
from src.db.session import Base, create_session_factory, unit_of_work
from src.portal import Portal
from src.repositories.ownership import OwnershipRepository
import src.db.tables  # noqa: F401  registers ORM models on Base.metadata

BASE_URL = "https://noco.test/api/v1/db/data/noco/base"
BASE_PATH = "/api/v1/db/data/noco/base"

TABLES = {
    "TABLE_SPACES": "tbl_spaces",
    "TABLE_SUB_PROJECTS": "tbl_spaces",
    "TABLE_TASKS": "tbl_tasks",
    "TABLE_INTERNAL_TASKS": "tbl_internal",
    "TABLE_MILESTONES": "tbl_milestones",
    "TABLE_INVOICES": "tbl_invoices",
    "TABLE_PROSPECTS": "tbl_prospects",
}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Fake tabular store
# ---------------------------------------------------------------------------


def _matches(row: dict, where: str) -> bool:
    for clause in where.split("~and"):
        field, op, value = clause.strip("()").split(",", 2)
        actual = "" if row.get(field) is None else str(row.get(field))
        if op == "eq" and actual != value:
            return False
        if op == "in" and actual not in value.split(","):
            return False
    return True


class FakeNocoStore:
    """Just enough of the store's REST surface to exercise the data layer.

    ``script`` queues responses served before normal handling: an int is an
    HTTP status (200 falls through to normal handling), an exception is
    raised as a network failure. ``fail_tables`` maps a table id to a status
    returned for every call touching it. ``fail_all`` fails every call.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict]] = defaultdict(dict)
        self.requests: list[httpx.Request] = []
        self.script: list[int | Exception] = []
        self.fail_tables: dict[str, int] = {}
        self.fail_all: int | None = None
        self.latency = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 1000

    # ----- Seeding / inspection -----

    def seed(self, table: str, *rows: dict) -> list[dict]:
        stored = []
        for row in rows:
            row = dict(row)
            if "Id" not in row:
                row["Id"] = self._new_id()
            self.tables[table][str(row["Id"])] = row
            stored.append(row)
        return stored

    def calls(self, method: str | None = None, table: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method)
            and (table is None or self._split(r)[0] == table)
        ]

    def reset_calls(self) -> None:
        self.requests.clear()

    # ----- Handler -----

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            return self._respond(request)
        finally:
            self.in_flight -= 1

    def _respond(self, request: httpx.Request) -> httpx.Response:
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            if item != 200:
                return httpx.Response(item, json={"msg": f"scripted {item}"})

        table, record_id = self._split(request)
        status = self.fail_all or self.fail_tables.get(table)
        if status:
            return httpx.Response(status, json={"msg": "failure"})

        rows = self.tables[table]
        if request.method == "GET" and record_id is None:
            return httpx.Response(200, json=self._list(rows, request.url.params))
        if request.method == "GET":
            if record_id not in rows:
                return httpx.Response(404, json={"msg": "Record not found"})
            return httpx.Response(200, json=rows[record_id])
        if request.method == "POST":
            row = {"Id": self._new_id(), **json.loads(request.content)}
            rows[str(row["Id"])] = row
            return httpx.Response(200, json=row)
        if request.method == "PATCH":
            if record_id not in rows:
                return httpx.Response(404, json={"msg": "Record not found"})
            rows[record_id].update(json.loads(request.content))
            return httpx.Response(200, json=rows[record_id])
        if request.method == "DELETE":
            if rows.pop(record_id, None) is None:
                return httpx.Response(404, json={"msg": "Record not found"})
            return httpx.Response(200, json=1)
        return httpx.Response(405)

    def _list(self, rows: dict[str, dict], params: httpx.QueryParams) -> dict:
        matched = list(rows.values())
        if "where" in params:
            matched = [r for r in matched if _matches(r, params["where"])]
        total = len(matched)
        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", 25))
        page = matched[offset:offset + limit]
        if "fields" in params:
            keep = params["fields"].split(",")
            page = [{k: r[k] for k in keep if k in r} for r in page]
        return {"list": page, "pageInfo": {"totalRows": total}}

    @staticmethod
    def _split(request: httpx.Request) -> tuple[str, str | None]:
        parts = request.url.path[len(BASE_PATH):].strip("/").split("/")
        return parts[0], (parts[1] if len(parts) > 1 else None)

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def store() -> FakeNocoStore:
    return FakeNocoStore()


@pytest.fixture
def identity() -> StaticIdentity:
    return StaticIdentity("user-a")


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        NOCODB_BASE_URL=BASE_URL,
        NOCODB_API_TOKEN="test-token",
        CACHE_TTL_SECONDS=30,
        MAX_RETRIES=1,
        PAGE_SIZE=1000,
        **TABLES,
    )


@pytest.fixture
async def portal(settings, identity, session_factory, store, sleeps):
    p = Portal.from_settings(
        settings,
        identity,
        session_factory=session_factory,
        http_transport=httpx.MockTransport(store.handler),
        sleep=sleeps,
    )
    yield p
    await p.aclose()


@pytest.fixture
def grant(session_factory):
    """Insert ownership rows directly: ``await grant("user-a", "10", "20")``."""

    async def _grant(user_id: str, *space_ids: str) -> None:
        async with unit_of_work(session_factory) as session:
            repo = OwnershipRepository(session)
            for space_id in space_ids:
                await repo.upsert(user_id, space_id)

    return _grant
