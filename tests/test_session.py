"""Tests for the checker session controller and persisted auth state."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest

from interaction_checker.backend_client import BackendAuthError, BackendClient
from interaction_checker.models import Candidate, Category, CheckerMode
from interaction_checker.orchestrator import CheckCycleState
from interaction_checker.search import CandidateSearch
from interaction_checker.session import AuthState, AuthStore, CheckerSession, SessionRegistry

EMPTY_RESULT: dict[str, list[Any]] = {"drug_drug": [], "drug_food": [], "drug_complementary": []}


class FakeBackend:
    """Records check requests and answers with a configurable body."""

    def __init__(self, check_body: Any = None, status: int = 200) -> None:
        self.check_body = check_body if check_body is not None else EMPTY_RESULT
        self.status = status
        self.check_requests: list[dict[str, Any]] = []
        self.auth_headers: list[str | None] = []
        self.release: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/login"):
            body = json.loads(request.content)
            if body["password"] != "secret":
                return httpx.Response(401, json={"error": "Invalid credentials"})
            return httpx.Response(200, json={"token": "jwt-token", "user": {"role": "admin"}})
        if request.url.path.endswith("/interactions/check"):
            self.check_requests.append(json.loads(request.content))
            self.auth_headers.append(request.headers.get("authorization"))
            if self.release is not None:
                await self.release.wait()
            return httpx.Response(self.status, json=self.check_body)
        return httpx.Response(404)


async def _search_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"hits": [{"document": {"medication_id": 1, "name": "Aspirin"}}]})


def _make_session(backend: FakeBackend, auth_store: AuthStore | None = None, **kwargs: Any) -> CheckerSession:
    client = BackendClient(
        base_url="http://backend.test/api",
        http=httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)),
    )
    search = CandidateSearch(
        base_url="http://search.test",
        http=httpx.AsyncClient(transport=httpx.MockTransport(_search_handler)),
    )
    return CheckerSession(client, search, auth_store=auth_store, **kwargs)


# --- AuthStore ---


class TestAuthStore:
    def test_missing_file_means_logged_out(self, tmp_path: Path) -> None:
        store = AuthStore(tmp_path / "session.json")
        assert store.load() == AuthState()
        assert store.load().logged_in is False

    def test_round_trip_and_clear(self, tmp_path: Path) -> None:
        store = AuthStore(tmp_path / "nested" / "session.json")
        store.save(AuthState(token="abc", is_admin=True))
        assert store.load() == AuthState(token="abc", is_admin=True)

        store.clear()
        assert not store.path.exists()
        store.clear()  # already gone

    def test_corrupt_file_means_logged_out(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        assert AuthStore(path).load() == AuthState()


# --- Selection and mode ---


class TestSelectionAndMode:
    def test_mode_switch_clears_selection(self) -> None:
        session = _make_session(FakeBackend())
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)

        assert session.set_mode(CheckerMode.DRUG_FOOD) is True
        assert len(session.selection) == 0
        assert session.mode is CheckerMode.DRUG_FOOD

    def test_same_mode_keeps_selection(self) -> None:
        session = _make_session(FakeBackend())
        session.add("1", "Aspirin", Category.DRUG)
        assert session.set_mode(CheckerMode.DRUG_DRUG) is False
        assert len(session.selection) == 1

    def test_remove_invalid_index_raises(self) -> None:
        session = _make_session(FakeBackend())
        with pytest.raises(IndexError):
            session.remove_item(0)

    @pytest.mark.asyncio
    async def test_selection_change_invalidates_result(self) -> None:
        session = _make_session(FakeBackend())
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        await session.check()
        assert session.orchestrator.state is CheckCycleState.SUCCESS

        session.add("3", "Ibuprofen", Category.DRUG)
        assert session.orchestrator.state is CheckCycleState.IDLE
        assert session.orchestrator.result is None

    @pytest.mark.asyncio
    async def test_search_candidates(self) -> None:
        session = _make_session(FakeBackend())
        assert await session.search_candidates(Category.DRUG, "asp") == [Candidate(id="1", label="Aspirin")]
        assert await session.search_candidates(Category.DRUG, "a") == []


# --- Checking ---


class TestCheck:
    @pytest.mark.asyncio
    async def test_check_sends_request_and_resets_flag(self) -> None:
        backend = FakeBackend()
        session = _make_session(backend)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)

        outcome = await session.check()

        assert backend.check_requests == [{"drug_ids": ["1", "2"], "food_ids": [], "comp_ids": []}]
        assert outcome is not None and outcome.state is CheckCycleState.SUCCESS
        assert session.check_requested is False
        assert session.snapshot()["summary"]["no_interactions"] is True

    @pytest.mark.asyncio
    async def test_coarse_gate_blocks_single_item(self) -> None:
        backend = FakeBackend()
        session = _make_session(backend)
        session.add("1", "Aspirin", Category.DRUG)

        assert session.can_check is False
        assert await session.check() is None
        assert backend.check_requests == []
        assert session.check_requested is False

    @pytest.mark.asyncio
    async def test_deficiency_bounce_resets_flag_without_call(self) -> None:
        backend = FakeBackend()
        session = _make_session(backend, mode=CheckerMode.DRUG_FOOD)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)

        outcome = await session.check()

        assert backend.check_requests == []
        assert outcome is not None and outcome.state is CheckCycleState.ERROR
        assert session.check_requested is False
        assert session.snapshot()["error"] == "Select at least one food item to check for drug-food interactions."

    @pytest.mark.asyncio
    async def test_run_check_needs_trigger_flag(self) -> None:
        backend = FakeBackend()
        session = _make_session(backend)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)

        assert await session.run_check() is None
        assert session.request_check() is True
        assert await session.run_check() is not None
        assert len(backend.check_requests) == 1

    @pytest.mark.asyncio
    async def test_retry_reissues_same_request(self) -> None:
        backend = FakeBackend(check_body={"message": "Database unavailable"}, status=503)
        session = _make_session(backend, mode=CheckerMode.DRUG_FOOD)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("9", "Grapefruit", Category.FOOD)

        first = await session.check()
        assert first is not None and first.error == "Database unavailable"

        backend.status = 200
        backend.check_body = EMPTY_RESULT
        second = await session.retry()

        assert second is not None and second.state is CheckCycleState.SUCCESS
        assert backend.check_requests[0] == backend.check_requests[1]
        assert backend.check_requests[0] == {"drug_ids": ["1"], "food_ids": ["9"], "comp_ids": []}


# --- Changes while a check is pending ---

BLEEDING = {
    "drug_drug": [
        {
            "medication1_id": 1,
            "medication2_id": 2,
            "medication1_name": "Aspirin",
            "medication2_name": "Warfarin",
            "severity": "Major",
            "description": "Bleeding risk",
        }
    ],
    "drug_food": [],
    "drug_complementary": [],
}


async def _start_blocked_check(backend: FakeBackend, session: CheckerSession) -> asyncio.Task[Any]:
    backend.release = asyncio.Event()
    task = asyncio.create_task(session.check())
    while not backend.check_requests:
        await asyncio.sleep(0)
    assert session.orchestrator.is_pending
    return task


class TestPendingCheckInvalidation:
    @pytest.mark.asyncio
    async def test_mode_switch_discards_landing_result(self) -> None:
        backend = FakeBackend(check_body=BLEEDING)
        session = _make_session(backend)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        task = await _start_blocked_check(backend, session)

        session.set_mode(CheckerMode.DRUG_FOOD)
        assert backend.release is not None
        backend.release.set()
        await task

        snapshot = session.snapshot()
        assert snapshot["mode"] == "drug-food"
        assert snapshot["items"] == []
        assert snapshot["state"] == "idle"
        assert snapshot["summary"] is None
        assert snapshot["check_requested"] is False

    @pytest.mark.asyncio
    async def test_selection_change_discards_landing_result(self) -> None:
        backend = FakeBackend(check_body=BLEEDING)
        session = _make_session(backend)
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        task = await _start_blocked_check(backend, session)

        session.add("3", "Ibuprofen", Category.DRUG)
        assert backend.release is not None
        backend.release.set()
        await task

        assert session.orchestrator.state is CheckCycleState.IDLE
        assert session.orchestrator.result is None

        # The next cycle is kept as usual.
        backend.release = None
        await session.check()
        assert session.snapshot()["summary"]["total"] == 1

    @pytest.mark.asyncio
    async def test_logout_discards_landing_result(self) -> None:
        backend = FakeBackend(check_body=BLEEDING)
        session = _make_session(backend)
        await session.login("admin@example.org", "secret")
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        task = await _start_blocked_check(backend, session)

        session.logout()
        assert backend.release is not None
        backend.release.set()
        await task

        snapshot = session.snapshot()
        assert snapshot["logged_in"] is False
        assert snapshot["summary"] is None
        assert snapshot["error"] is None
        assert snapshot["state"] == "idle"


# --- Auth ---


class TestAuth:
    @pytest.mark.asyncio
    async def test_login_persists_and_authorizes(self, tmp_path: Path) -> None:
        backend = FakeBackend()
        store = AuthStore(tmp_path / "session.json")
        session = _make_session(backend, auth_store=store)

        auth = await session.login("admin@example.org", "secret")
        assert auth == AuthState(token="jwt-token", is_admin=True)
        assert store.load() == auth

        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        await session.check()
        assert backend.auth_headers == ["Bearer jwt-token"]

    @pytest.mark.asyncio
    async def test_bad_credentials_raise(self, tmp_path: Path) -> None:
        store = AuthStore(tmp_path / "session.json")
        session = _make_session(FakeBackend(), auth_store=store)
        with pytest.raises(BackendAuthError, match="Invalid credentials"):
            await session.login("admin@example.org", "wrong")
        assert session.logged_in is False
        assert not store.path.exists()

    def test_startup_reads_persisted_token(self, tmp_path: Path) -> None:
        store = AuthStore(tmp_path / "session.json")
        store.save(AuthState(token="saved-token", is_admin=False))
        session = _make_session(FakeBackend(), auth_store=store)
        assert session.logged_in is True
        assert session.client.token == "saved-token"

    @pytest.mark.asyncio
    async def test_logout_tears_everything_down(self, tmp_path: Path) -> None:
        store = AuthStore(tmp_path / "session.json")
        session = _make_session(FakeBackend(), auth_store=store)
        await session.login("admin@example.org", "secret")
        session.add("1", "Aspirin", Category.DRUG)
        session.add("2", "Warfarin", Category.DRUG)
        await session.check()

        session.logout()

        assert len(session.selection) == 0
        assert session.orchestrator.state is CheckCycleState.IDLE
        assert session.client.token == ""
        assert session.logged_in is False
        assert not store.path.exists()


# --- Registry ---


class TestSessionRegistry:
    def test_create_get_delete(self) -> None:
        registry = SessionRegistry(BackendClient(base_url="http://backend.test/api"), CandidateSearch())
        session = registry.create(CheckerMode.DRUG_COMP)

        assert registry.get(session.session_id) is session
        assert session.mode is CheckerMode.DRUG_COMP
        assert session.client is not registry.client
        assert registry.delete(session.session_id) is True
        assert registry.get(session.session_id) is None
        assert registry.delete(session.session_id) is False

    def test_idle_sessions_expire(self) -> None:
        registry = SessionRegistry(
            BackendClient(base_url="http://backend.test/api"),
            CandidateSearch(),
            ttl=timedelta(minutes=5),
        )
        old = registry.create()
        old.updated_at = datetime.now() - timedelta(minutes=10)

        registry.create()

        assert registry.get(old.session_id) is None
        assert len(registry.sessions) == 1
