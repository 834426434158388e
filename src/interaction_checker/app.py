"""FastAPI server: the HTTP entry point for checker sessions.

Each session holds one user's checking panel (mode, selection, check
cycle). The Streamlit frontend, or any other client, drives it through
these endpoints:

- GET    /health                            Liveness check
- GET    /search/{category}?q=...           Candidate suggestions
- POST   /sessions                          Start a session
- GET    /sessions/{id}                     Current panel state
- DELETE /sessions/{id}                     End a session
- PUT    /sessions/{id}/mode                Switch checker mode (clears items)
- POST   /sessions/{id}/items               Add a selected item
- DELETE /sessions/{id}/items/{index}       Remove one item
- DELETE /sessions/{id}/items               Clear all items
- POST   /sessions/{id}/check               Run (or retry) an interaction check
- POST   /sessions/{id}/login               Log in against the backend
- POST   /sessions/{id}/logout              Log out and clear the panel

Run locally with:
    uvicorn interaction_checker.app:app --reload
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from interaction_checker.backend_client import BackendAuthError, BackendClient
from interaction_checker.models import Candidate, Category, CheckerMode
from interaction_checker.search import CandidateSearch
from interaction_checker.session import CheckerSession, SessionRegistry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    registry: SessionRegistry | None = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.client.close()
        await registry.search.close()


app = FastAPI(
    title="Medication Interaction Checker",
    description="Select drugs, food items and complementary medicines and check them for known interactions",
    version="0.1.0",
    lifespan=lifespan,
)


class CreateSessionRequest(BaseModel):
    mode: CheckerMode = CheckerMode.DRUG_DRUG


class ModeRequest(BaseModel):
    mode: CheckerMode


class AddItemRequest(BaseModel):
    id: str
    name: str
    category: Category


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionView(BaseModel):
    """What every session endpoint sends back."""

    session_id: str
    mode: CheckerMode
    title: str
    empty_state: str
    items: list[dict[str, Any]]
    can_check: bool
    eligible: bool
    deficiency: str
    check_requested: bool
    state: str
    error: str | None = None
    summary: dict[str, Any] | None = None
    logged_in: bool
    is_admin: bool


# --- Dependencies ---


def get_registry(request: Request) -> SessionRegistry:
    """The process-wide session registry, created on first use."""
    registry: SessionRegistry | None = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = SessionRegistry(BackendClient(), CandidateSearch())
        request.app.state.registry = registry
    return registry


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> CheckerSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _view(session: CheckerSession) -> SessionView:
    return SessionView(**session.snapshot())


# --- Endpoints ---


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok"}


@app.get("/search/{category}", response_model=list[Candidate])
async def search(category: Category, q: str = "", registry: SessionRegistry = Depends(get_registry)) -> list[Candidate]:
    """Suggestions for a partial name; empty when q is shorter than two characters."""
    return await registry.search.search(category, q)


@app.post("/sessions", response_model=SessionView)
async def create_session(
    request: CreateSessionRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionView:
    mode = request.mode if request is not None else CheckerMode.DRUG_DRUG
    return _view(registry.create(mode))


@app.get("/sessions/{session_id}", response_model=SessionView)
async def get_session_state(session: CheckerSession = Depends(get_session)) -> SessionView:
    return _view(session)


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> dict[str, bool]:
    if not registry.delete(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"deleted": True}


@app.put("/sessions/{session_id}/mode", response_model=SessionView)
async def set_mode(request: ModeRequest, session: CheckerSession = Depends(get_session)) -> SessionView:
    session.set_mode(request.mode)
    return _view(session)


@app.post("/sessions/{session_id}/items", response_model=SessionView)
async def add_item(request: AddItemRequest, session: CheckerSession = Depends(get_session)) -> SessionView:
    session.add(request.id, request.name, request.category)
    return _view(session)


@app.delete("/sessions/{session_id}/items/{index}", response_model=SessionView)
async def remove_item(index: int, session: CheckerSession = Depends(get_session)) -> SessionView:
    try:
        session.remove_item(index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _view(session)


@app.delete("/sessions/{session_id}/items", response_model=SessionView)
async def clear_items(session: CheckerSession = Depends(get_session)) -> SessionView:
    session.clear_all()
    return _view(session)


@app.post("/sessions/{session_id}/check", response_model=SessionView)
async def check(session: CheckerSession = Depends(get_session)) -> SessionView:
    """Run one check cycle.

    Returns 409 while the Check action is disabled (fewer than two items)
    or a cycle is already pending. A selection that fails the mode's own
    rule still runs a cycle, which ends in the error state with the
    deficiency message and no backend call.
    """
    if session.orchestrator.is_pending:
        raise HTTPException(status_code=409, detail="An interaction check is already in progress")
    if not session.can_check:
        raise HTTPException(status_code=409, detail=session.snapshot()["empty_state"])
    await session.check()
    return _view(session)


@app.post("/sessions/{session_id}/login", response_model=SessionView)
async def login(request: LoginRequest, session: CheckerSession = Depends(get_session)) -> SessionView:
    try:
        await session.login(request.email, request.password)
    except BackendAuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return _view(session)


@app.post("/sessions/{session_id}/logout", response_model=SessionView)
async def logout(session: CheckerSession = Depends(get_session)) -> SessionView:
    session.logout()
    return _view(session)
