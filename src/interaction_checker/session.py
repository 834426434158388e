"""Checker sessions: the controller that owns one checking panel.

A CheckerSession is constructed when a user session starts and torn down
at logout. It owns the selection, the active mode, the "check requested"
trigger flag and the orchestrator, so nothing about a user's work lives in
module-level globals.

Auth state (bearer token + admin flag) is persisted client-side by
AuthStore, a small JSON file read back at startup to decide whether the
user is still logged in.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from interaction_checker.backend_client import BackendClient
from interaction_checker.config import SESSION_FILE, SESSION_TTL_MINUTES
from interaction_checker.eligibility import can_request_check, deficiency_message, is_eligible
from interaction_checker.models import Candidate, Category, CheckerMode, SelectedItem
from interaction_checker.orchestrator import CheckOrchestrator, CheckOutcome
from interaction_checker.presentation import empty_state_message, panel_title, summarize
from interaction_checker.search import CandidateSearch
from interaction_checker.selection import Selection

logger = logging.getLogger(__name__)


# --- Client-local auth state ---


@dataclass
class AuthState:
    token: str = ""
    is_admin: bool = False

    @property
    def logged_in(self) -> bool:
        return bool(self.token)


class AuthStore:
    """Persist AuthState in a JSON file."""

    def __init__(self, path: Path = SESSION_FILE) -> None:
        self.path = path

    def load(self) -> AuthState:
        """Read the saved state; a missing or unreadable file means logged out."""
        if not self.path.exists():
            return AuthState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return AuthState(token=str(data.get("token", "")), is_admin=bool(data.get("is_admin", False)))
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return AuthState()

    def save(self, state: AuthState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(state)), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# --- The panel controller ---


class CheckerSession:
    """Selection, mode and check cycle for one user."""

    def __init__(
        self,
        client: BackendClient,
        search: CandidateSearch,
        auth_store: AuthStore | None = None,
        mode: CheckerMode = CheckerMode.DRUG_DRUG,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.client = client
        self.search = search
        self.auth_store = auth_store
        self.mode = mode
        self.selection = Selection()
        self.orchestrator = CheckOrchestrator(client)
        self.check_requested = False
        self._stale_cycle = False

        self.auth = auth_store.load() if auth_store is not None else AuthState()
        if self.auth.token:
            client.token = self.auth.token

        self.created_at = datetime.now()
        self.updated_at = self.created_at

    # --- Auth ---

    @property
    def logged_in(self) -> bool:
        return self.auth.logged_in

    async def login(self, email: str, password: str) -> AuthState:
        """Log in against the backend and persist the token.

        Raises:
            BackendAuthError: If the backend rejects the credentials.
        """
        result = await self.client.login(email, password)
        self.auth = AuthState(token=result.token, is_admin=result.is_admin)
        if self.auth_store is not None:
            self.auth_store.save(self.auth)
        self._touch()
        return self.auth

    def logout(self) -> None:
        """Forget the user: selection, results, trigger flag and token."""
        self.selection.clear()
        self._selection_changed()
        self.client.logout()
        self.auth = AuthState()
        if self.auth_store is not None:
            self.auth_store.clear()
        logger.info("Session %s logged out", self.session_id)
        self._touch()

    # --- Mode and selection ---

    def set_mode(self, mode: CheckerMode) -> bool:
        """Switch mode; the selection never carries over. Returns True on change."""
        if mode is self.mode:
            return False
        logger.info("Session %s: %s -> %s", self.session_id, self.mode.value, mode.value)
        self.mode = mode
        self.selection.clear()
        self._selection_changed()
        return True

    def add_item(self, item: SelectedItem) -> bool:
        changed = self.selection.add(item)
        if changed:
            self._selection_changed()
        return changed

    def add(self, item_id: str, name: str, category: Category) -> bool:
        return self.add_item(SelectedItem(id=item_id, name=name, category=category))

    def remove_item(self, index: int) -> SelectedItem:
        """Raises IndexError for a position that is not selected."""
        removed = self.selection.remove(index)
        self._selection_changed()
        return removed

    def clear_all(self) -> None:
        self.selection.clear()
        self._selection_changed()

    def _selection_changed(self) -> None:
        # A finished result no longer describes the selection. A pending
        # cycle runs to completion and is discarded when it lands.
        if self.orchestrator.is_pending:
            self._stale_cycle = True
        else:
            self.orchestrator.reset()
            self.check_requested = False
        self._touch()

    # --- Search ---

    async def search_candidates(self, category: Category, query_text: str) -> list[Candidate]:
        return await self.search.search(category, query_text)

    # --- Checking ---

    @property
    def can_check(self) -> bool:
        """Whether the Check action is enabled (coarse, mode-agnostic)."""
        return can_request_check(self.selection)

    def request_check(self) -> bool:
        """Set the trigger flag if the Check action is enabled and idle."""
        if not self.can_check or self.orchestrator.is_pending:
            return False
        self.check_requested = True
        return True

    async def run_check(self) -> CheckOutcome | None:
        """Run a cycle if the trigger flag is set; None if nothing ran."""
        if not self.check_requested:
            return None
        self._touch()
        return await self.orchestrator.trigger(
            self.selection.items,
            self.mode,
            on_complete=self._on_check_complete,
        )

    async def check(self) -> CheckOutcome | None:
        """Press "Check": set the flag and run the cycle."""
        if not self.request_check():
            return None
        return await self.run_check()

    async def retry(self) -> CheckOutcome | None:
        """Manual retry; the request is rebuilt from the current selection."""
        return await self.check()

    def _on_check_complete(self, outcome: CheckOutcome) -> None:
        self.check_requested = False
        if self._stale_cycle:
            logger.info("Session %s: discarding check result for a changed selection", self.session_id)
            self._stale_cycle = False
            self.orchestrator.reset()
        self._touch()

    # --- Views ---

    def _touch(self) -> None:
        self.updated_at = datetime.now()

    def snapshot(self) -> dict[str, Any]:
        """Current state as JSON-ready values for the HTTP layer."""
        result = self.orchestrator.result
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "title": panel_title(self.mode),
            "empty_state": empty_state_message(self.mode),
            "items": [item.model_dump(mode="json") for item in self.selection],
            "can_check": self.can_check,
            "eligible": is_eligible(self.selection, self.mode),
            "deficiency": deficiency_message(self.selection, self.mode),
            "check_requested": self.check_requested,
            "state": self.orchestrator.state.value,
            "error": self.orchestrator.error,
            "summary": summarize(result) if result is not None else None,
            "logged_in": self.logged_in,
            "is_admin": self.auth.is_admin,
        }


class SessionRegistry:
    """In-memory checker sessions for the HTTP service, expired when idle."""

    def __init__(
        self,
        client: BackendClient,
        search: CandidateSearch,
        ttl: timedelta = timedelta(minutes=SESSION_TTL_MINUTES),
    ) -> None:
        self.client = client
        self.search = search
        self.ttl = ttl
        self.sessions: dict[str, CheckerSession] = {}
        self.lock = threading.Lock()

    def create(self, mode: CheckerMode = CheckerMode.DRUG_DRUG) -> CheckerSession:
        # Each session gets its own backend client so tokens never mix;
        # the search index is shared.
        client = self.client.fork()
        session = CheckerSession(client, self.search, mode=mode)
        with self.lock:
            self._cleanup_expired()
            self.sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> CheckerSession | None:
        return self.sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self.lock:
            return self.sessions.pop(session_id, None) is not None

    def _cleanup_expired(self) -> None:
        now = datetime.now()
        expired = [
            sid for sid, session in self.sessions.items()
            if now - session.updated_at > self.ttl and not session.orchestrator.is_pending
        ]
        for sid in expired:
            del self.sessions[sid]
        if expired:
            logger.info("Expired %d idle checker session(s)", len(expired))
