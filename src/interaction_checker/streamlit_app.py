"""Streamlit frontend for the interaction checker.

How it works:
- Streamlit re-runs this entire script on every user interaction
- st.session_state keeps the server-side checker session id between reruns
- Every action (search, add, remove, check, switch mode) is an HTTP call
  to the FastAPI service in app.py, which owns the actual panel state

Run locally with:
    streamlit run src/interaction_checker/streamlit_app.py

The FastAPI service must be running at CHECKER_API_URL.
"""

from typing import Any

import requests
import streamlit as st

from interaction_checker.config import CHECKER_API_URL
from interaction_checker.models import Category, CheckerMode
from interaction_checker.presentation import (
    KIND_LABELS,
    KIND_ORDER,
    NO_INTERACTIONS_MESSAGE,
    SEVERITY_LEGEND,
)

TIMEOUT = 30

# Which search boxes each mode shows.
MODE_CATEGORIES: dict[CheckerMode, list[Category]] = {
    CheckerMode.DRUG_DRUG: [Category.DRUG],
    CheckerMode.DRUG_FOOD: [Category.DRUG, Category.FOOD],
    CheckerMode.DRUG_COMP: [Category.DRUG, Category.COMPLEMENTARY],
}

CATEGORY_LABELS = {
    Category.DRUG: "medications",
    Category.FOOD: "food items",
    Category.COMPLEMENTARY: "complementary medicines",
}

SEVERITY_ICONS = {"Major": "\U0001f534", "Moderate": "\U0001f7e0", "Minor": "\U0001f535", "Unknown": "⚪"}


def _call(method: str, path: str, **kwargs: Any) -> Any:
    """Call the checker API; show the error and return None on failure."""
    try:
        resp = requests.request(method, f"{CHECKER_API_URL}{path}", timeout=TIMEOUT, **kwargs)
    except requests.exceptions.ConnectionError:
        st.error(f"Could not connect to the backend. Is the FastAPI server running at {CHECKER_API_URL}?")
        return None
    except requests.exceptions.Timeout:
        st.error("The request timed out. Please try again.")
        return None
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        st.warning(str(detail))
        return None
    return resp.json()


def _ensure_session() -> dict[str, Any] | None:
    session_id = st.session_state.get("session_id")
    if session_id:
        state = _call("GET", f"/sessions/{session_id}")
        if state is not None:
            return state
    state = _call("POST", "/sessions", json={"mode": CheckerMode.DRUG_DRUG.value})
    if state is not None:
        st.session_state.session_id = state["session_id"]
    return state


# --- Page config ---
st.set_page_config(page_title="Medication Interaction Checker", page_icon="\U0001f48a", layout="wide")
st.title("Medication Interaction Checker")

state = _ensure_session()
if state is None:
    st.stop()
session_path = f"/sessions/{state['session_id']}"

# --- Login ---
if not state["logged_in"]:
    with st.form("login"):
        st.subheader("Login")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        if st.form_submit_button("Log in"):
            if not email or not password:
                st.warning("Please enter both email and password")
            elif _call("POST", f"{session_path}/login", json={"email": email, "password": password}):
                st.rerun()
    st.stop()

# --- Header: mode switch, clear, logout ---
check_modes = list(MODE_CATEGORIES)
current_mode = CheckerMode(state["mode"])
mode = st.radio(
    "Checker",
    check_modes,
    index=check_modes.index(current_mode) if current_mode in check_modes else 0,
    format_func=lambda m: m.value.replace("-", " ").title(),
    horizontal=True,
)
if mode != current_mode:
    state = _call("PUT", f"{session_path}/mode", json={"mode": mode.value}) or state

header_left, header_right = st.columns([1, 1])
if header_left.button("Clear All"):
    state = _call("DELETE", f"{session_path}/items") or state
if header_right.button("Logout"):
    _call("POST", f"{session_path}/logout")
    st.rerun()

left, right = st.columns(2)

# --- Left: search and selection ---
with left:
    st.subheader("Select Items")
    for category in MODE_CATEGORIES[CheckerMode(state["mode"])]:
        query = st.text_input(f"Search {CATEGORY_LABELS[category]}...", key=f"q-{category.value}")
        candidates = _call("GET", f"/search/{category.value}", params={"q": query}) if query else []
        if candidates:
            choice = st.selectbox(
                "Suggestions",
                candidates,
                format_func=lambda c: c["label"],
                key=f"pick-{category.value}",
            )
            if st.button("Add", key=f"add-{category.value}"):
                state = _call(
                    "POST",
                    f"{session_path}/items",
                    json={"id": choice["id"], "name": choice["label"], "category": category.value},
                ) or state
        elif query and len(query.strip()) >= 2:
            st.caption("No results found")

    if not state["items"]:
        st.caption("Nothing selected. Search and add items to check interactions.")
    for index, item in enumerate(state["items"]):
        name_col, remove_col = st.columns([4, 1])
        name_col.markdown(f"**{item['name']}** ({item['category']})")
        if remove_col.button("Remove", key=f"remove-{index}-{item['category']}-{item['id']}"):
            state = _call("DELETE", f"{session_path}/items/{index}") or state
            st.rerun()

    if state["can_check"] and st.button("Check Interactions", type="primary"):
        state = _call("POST", f"{session_path}/check") or state

# --- Right: results ---
with right:
    st.subheader(state["title"])
    if not state["can_check"]:
        st.info(state["empty_state"])
    elif state["state"] == "error":
        st.error(state["error"])
        if st.button("Retry"):
            state = _call("POST", f"{session_path}/check") or state
            st.rerun()
    elif state["summary"] is None:
        st.info(
            f"You have selected {len(state['items'])} items. "
            'Click "Check Interactions" to see potential interactions.'
        )
    else:
        summary = state["summary"]
        counts = summary["severity_counts"]
        c1, c2, c3 = st.columns(3)
        c1.metric("Major", counts["major"])
        c2.metric("Moderate", counts["moderate"])
        c3.metric("Minor", counts["minor"])

        if summary["no_interactions"]:
            st.success("No Known Interactions")
            st.caption(NO_INTERACTIONS_MESSAGE)
        else:
            tabs = st.tabs(
                [f"All ({summary['total']})"]
                + [f"{KIND_LABELS[kind]} ({summary['kind_counts'][kind.value]})" for kind in KIND_ORDER]
            )
            groups = [None] + [kind.value for kind in KIND_ORDER]
            for tab, kind in zip(tabs, groups):
                with tab:
                    for interaction in summary["interactions"]:
                        if kind is not None and interaction["kind"] != kind:
                            continue
                        icon = SEVERITY_ICONS.get(interaction["severity"], SEVERITY_ICONS["Unknown"])
                        with st.container(border=True):
                            st.markdown(f"{icon} **{interaction['title']}** `{interaction['severity']}`")
                            st.write(interaction["description"])
                            if interaction["recommendation"]:
                                st.caption(f"Recommendation: {interaction['recommendation']}")

    with st.expander("Drug Interaction Classification"):
        for level, text in SEVERITY_LEGEND.items():
            st.markdown(f"{SEVERITY_ICONS[level.value]} **{level.value}**: {text}")
    st.caption(
        "This information is for educational purposes only. Always verify with multiple sources "
        "and consult with a licensed pharmacist or healthcare provider."
    )
