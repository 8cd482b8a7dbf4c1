"""
HTTP end-to-end tests for the progress, quiz, purchase and timeline routes.

Runs the FastAPI app in-process over a temporary SQLite file with a manual
clock and a deterministic five-question bank.
"""

import os
import tempfile
import uuid
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tests.conftest import write_bank

# File-based SQLite so every session sees the same database
_tmp_dir = Path(tempfile.mkdtemp())
TEST_DB_PATH = _tmp_dir / "test.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["QUIZ_BANK_PATH"] = str(write_bank(_tmp_dir / "quiz_bank.json", "marathon", 5))
os.environ["QUIZ_BONUS_QUESTION_MAX"] = "0"
from history_engine.config import get_settings  # noqa: E402

get_settings.cache_clear()

from history_engine.api.deps import get_clock, get_question_bank  # noqa: E402
from history_engine.database import get_db  # noqa: E402
from history_engine.engines.quiz.clock import ManualClock  # noqa: E402
from history_engine.kernel.models import Base  # noqa: E402
from history_engine.main import app  # noqa: E402

get_question_bank.cache_clear()

TEST_ENGINE = create_async_engine(f"sqlite+aiosqlite:///{TEST_DB_PATH}", echo=False)
TEST_SESSION_MAKER = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

EVENT = "marathon"


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TEST_SESSION_MAKER() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest_asyncio.fixture
async def client(clock: ManualClock):
    """Async client with test DB and a manual clock."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def user_id() -> str:
    return f"learner-{uuid.uuid4().hex[:8]}"


def _base(user_id: str) -> str:
    return f"/api/v1/users/{user_id}/events/{EVENT}"


async def _read_dossier(client: AsyncClient, user_id: str) -> None:
    r = await client.post(f"{_base(user_id)}/reading", json={"read_ratio": 0.9})
    assert r.status_code == 200, r.text


async def _answer(client: AsyncClient, user_id: str, state: dict, option: int):
    """Answer the question shown in ``state``."""
    return await client.post(
        f"{_base(user_id)}/quiz/answer",
        json={"question_id": state["question"]["id"], "option_index": option},
    )


async def _run_quiz(client: AsyncClient, user_id: str, option: int) -> dict:
    r = await client.post(f"{_base(user_id)}/quiz/start")
    assert r.status_code == 200, r.text
    for _ in range(r.json()["total_questions"]):
        r = await _answer(client, user_id, r.json(), option)
        assert r.status_code == 200, r.text
        r = await client.post(f"{_base(user_id)}/quiz/continue")
        assert r.status_code == 200, r.text
    return r.json()


@pytest.mark.asyncio
async def test_health_and_root(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["database"] == "connected"
    assert r.headers.get("X-Request-ID")

    r = await client.get("/")
    assert r.json()["api"]["v1"] == "/api/v1"


@pytest.mark.asyncio
async def test_reading_opens_the_gate(client: AsyncClient, user_id: str, clock: ManualClock):
    r = await client.get(f"{_base(user_id)}/progress")
    assert r.status_code == 200
    assert r.json()["read_ratio"] == 0.0

    r = await client.get(f"{_base(user_id)}/launch-gate")
    assert r.json()["allowed"] is False
    assert r.json()["reason"] == "read_insufficient"

    r = await client.post(f"{_base(user_id)}/quiz/start")
    assert r.status_code == 409
    assert r.json()["detail"]["reason"] == "read_insufficient"

    await _read_dossier(client, user_id)
    r = await client.get(f"{_base(user_id)}/progress")
    assert r.json()["read_ratio"] == 0.9
    assert r.json()["completed_at"] is not None

    r = await client.get(f"{_base(user_id)}/launch-gate")
    assert r.json()["allowed"] is True
    assert r.json()["attempts_remaining"] == 2


@pytest.mark.asyncio
async def test_passing_quiz(client: AsyncClient, user_id: str):
    await _read_dossier(client, user_id)
    r = await client.post(f"{_base(user_id)}/quiz/start")
    body = r.json()
    assert body["phase"] == "in_progress"
    assert body["total_questions"] == 5
    assert "answer_index" not in body["question"]

    r = await _answer(client, user_id, body, 0)
    assert r.json()["feedback"]["is_correct"] is True
    assert r.json()["phase"] == "awaiting_advance"
    r = await client.post(f"{_base(user_id)}/quiz/continue")

    for _ in range(4):
        await _answer(client, user_id, r.json(), 0)
        r = await client.post(f"{_base(user_id)}/quiz/continue")

    result = r.json()["result"]
    assert r.json()["phase"] == "completed"
    assert result["score"] == 100
    assert result["stars"] == result["max_stars"] == 12
    assert result["passed"] is True
    assert result["next_event_id"] == "alexander-babylon"

    r = await client.post(f"{_base(user_id)}/quiz/tick")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_lockout_and_attempt_pack(client: AsyncClient, user_id: str):
    await _read_dossier(client, user_id)

    first = await _run_quiz(client, user_id, option=1)
    assert first["result"]["passed"] is False
    assert first["result"]["locked"] is False
    assert first["result"]["failed_attempts"] == 1

    second = await _run_quiz(client, user_id, option=1)
    assert second["result"]["locked"] is True
    assert second["result"]["best_score"] == 0

    r = await client.get(f"{_base(user_id)}/launch-gate")
    assert r.json()["reason"] == "time_locked_purchasable"
    assert r.json()["locked_until"] is not None

    r = await client.post(
        f"/api/v1/users/{user_id}/purchases/pending",
        json={"product_id": "attempt-pack-10", "event_id": EVENT, "event_title": "Battle of Marathon"},
    )
    assert r.status_code == 200, r.text

    result = {"status": "success", "product_id": "attempt-pack-10", "order_id": f"ord-{user_id}"}
    r = await client.post(f"/api/v1/users/{user_id}/purchases/result", json=result)
    body = r.json()
    assert body["granted"] is True
    assert body["event_id"] == EVENT
    assert body["quantity"] == 10
    assert body["locked_until"] is None

    r = await client.post(f"/api/v1/users/{user_id}/purchases/result", json=result)
    assert r.json()["disposition"] == "already_applied"

    r = await client.get(f"{_base(user_id)}/progress")
    assert r.json()["extra_attempts"] == 10
    assert r.json()["is_locked"] is False


@pytest.mark.asyncio
async def test_timeout_via_tick(client: AsyncClient, user_id: str, clock: ManualClock):
    await _read_dossier(client, user_id)
    await client.post(f"{_base(user_id)}/quiz/start")
    clock.advance(seconds=200)
    r = await client.post(f"{_base(user_id)}/quiz/tick")
    assert r.status_code == 200
    assert r.json()["result"]["forced"] is True
    assert r.json()["result"]["score"] == 0


@pytest.mark.asyncio
async def test_abandon(client: AsyncClient, user_id: str):
    await _read_dossier(client, user_id)
    await client.post(f"{_base(user_id)}/quiz/start")
    r = await client.delete(f"{_base(user_id)}/quiz")
    assert r.status_code == 204

    r = await client.delete(f"{_base(user_id)}/quiz")
    assert r.status_code == 404

    r = await client.get(f"{_base(user_id)}/progress")
    assert r.json()["attempts"] == []


@pytest.mark.asyncio
async def test_timeline(client: AsyncClient, user_id: str):
    r = await client.get(f"/api/v1/users/{user_id}/phases/antiquity/timeline", params={"current": "fall-of-rome"})
    assert r.status_code == 200
    body = r.json()
    assert [e["event"]["id"] for e in body["events"]] == [
        "marathon",
        "alexander-babylon",
        "caesar-rubicon",
        "fall-of-rome",
    ]
    assert [e["accessible"] for e in body["events"]] == [True, False, False, False]
    assert body["current_event_id"] == "marathon"

    r = await client.get(f"/api/v1/users/{user_id}/phases/medieval/timeline")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_validation_errors(client: AsyncClient, user_id: str):
    r = await client.post(f"{_base(user_id)}/reading", json={"read_ratio": 1.5})
    assert r.status_code == 422
    assert r.json()["errors"][0]["field"] == "body.read_ratio"

    r = await client.post(f"{_base(user_id)}/quiz/answer", json={"question_id": "q", "option_index": 0})
    assert r.status_code == 404

    await _read_dossier(client, user_id)
    await client.post(f"{_base(user_id)}/quiz/start")
    r = await client.post(f"{_base(user_id)}/quiz/answer", json={"option_index": 0})
    assert r.status_code == 422
    assert r.json()["errors"][0]["field"] == "body.question_id"


@pytest.mark.asyncio
async def test_abandon_after_countdown_records_timeout(client: AsyncClient, user_id: str, clock: ManualClock):
    await _read_dossier(client, user_id)
    await _run_quiz(client, user_id, option=1)

    await client.post(f"{_base(user_id)}/quiz/start")
    clock.advance(hours=1)
    r = await client.delete(f"{_base(user_id)}/quiz")
    assert r.status_code == 204

    r = await client.get(f"{_base(user_id)}/progress")
    body = r.json()
    assert len(body["attempts"]) == 2
    assert body["is_locked"] is True

    r = await client.delete(f"{_base(user_id)}/quiz")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_refused_relaunch_keeps_expired_attempt(client: AsyncClient, user_id: str, clock: ManualClock):
    await _read_dossier(client, user_id)
    await client.post(f"{_base(user_id)}/quiz/start")
    clock.advance(hours=1)
    r = await client.post(f"{_base(user_id)}/quiz/start")
    assert r.json()["attempt_number"] == 2

    clock.advance(hours=1)
    r = await client.post(f"{_base(user_id)}/quiz/start")
    assert r.status_code == 409
    assert r.json()["detail"]["reason"] == "time_locked_purchasable"

    r = await client.get(f"{_base(user_id)}/progress")
    assert [a["attempt_number"] for a in r.json()["attempts"]] == [1, 2]
    assert r.json()["is_locked"] is True


@pytest.mark.asyncio
async def test_late_duplicate_answer_is_ignored(client: AsyncClient, user_id: str, clock: ManualClock):
    await _read_dossier(client, user_id)
    first = (await client.post(f"{_base(user_id)}/quiz/start")).json()
    await _answer(client, user_id, first, 0)
    clock.advance(milliseconds=900)

    r = await _answer(client, user_id, first, 2)
    assert r.status_code == 200
    body = r.json()
    assert body["current_index"] == 1
    assert body["phase"] == "in_progress"
    assert body["feedback"] is None


@pytest.mark.asyncio
async def test_model_error_in_handler_is_a_server_error(client: AsyncClient):
    class Strict(BaseModel):
        count: int

    async def broken():
        return Strict(count="many")

    path = f"/_checks/{uuid.uuid4().hex[:8]}"
    app.add_api_route(path, broken)
    r = await client.get(path)
    assert r.status_code == 500
    assert r.json()["detail"] == "Internal server error"
    assert r.json()["request_id"]


class _UnreachableSession:
    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def rollback(self):
        return None

    async def commit(self):
        return None


async def _unreachable_db():
    yield _UnreachableSession()


@pytest.mark.asyncio
async def test_health_reports_unreachable_database(client: AsyncClient):
    app.dependency_overrides[get_db] = _unreachable_db
    r = await client.get("/health")
    assert r.status_code == 503
    assert r.json()["status"] == "degraded"
    assert r.json()["database"] == "unavailable"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient, user_id: str):
    r = await client.get(f"{_base(user_id)}/progress", headers={"X-Request-ID": "req-42"})
    assert r.headers["X-Request-ID"] == "req-42"
