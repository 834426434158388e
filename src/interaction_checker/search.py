"""Candidate search against the Typesense index.

API endpoints used:
- GET /collections/{collection}/documents/search  (Typesense REST API)

CandidateSearch turns a partial query into at most one page of
{id, label} suggestions for one category. It never raises: a failed
query is logged and returns an empty list.

DebouncedSearch drives one search box. Each keystroke restarts a timer;
only when input has been idle for the debounce interval is a query sent.
Every query is tagged with a sequence number and a response is applied
only if its number is still the latest, so a slow answer for old text
can never overwrite suggestions for newer text.
It is for frontends that see every keystroke inside an event loop. The
Streamlit UI and the /search endpoint query once per submitted text, so
they call CandidateSearch directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx

from interaction_checker.config import (
    SEARCH_API_KEY,
    SEARCH_BASE_URL,
    SEARCH_DEBOUNCE_SECONDS,
    SEARCH_MIN_QUERY_LENGTH,
    SEARCH_PAGE_SIZE,
    SEARCH_TIMEOUT_SECONDS,
)
from interaction_checker.models import Candidate, Category

logger = logging.getLogger(__name__)

# Index collection and primary-key field for each category.
COLLECTIONS: dict[Category, tuple[str, str]] = {
    Category.DRUG: ("medications", "medication_id"),
    Category.FOOD: ("food_items", "food_id"),
    Category.COMPLEMENTARY: ("complementary_medicines", "compl_med_id"),
}


class CandidateSearch:
    """Query the search index for suggestions in one category at a time."""

    def __init__(
        self,
        base_url: str = SEARCH_BASE_URL,
        api_key: str = SEARCH_API_KEY,
        page_size: int = SEARCH_PAGE_SIZE,
        min_query_length: int = SEARCH_MIN_QUERY_LENGTH,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.page_size = page_size
        self.min_query_length = min_query_length
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        await self._http.aclose()

    def is_searchable(self, query_text: str) -> bool:
        return len(query_text.strip()) >= self.min_query_length

    async def search(self, category: Category, query_text: str) -> list[Candidate]:
        """Return ranked candidates for query_text, capped at page_size.

        Short or empty queries return [] without touching the index.
        """
        if not self.is_searchable(query_text):
            return []

        collection, id_field = COLLECTIONS[category]
        url = f"{self.base_url}/collections/{collection}/documents/search"
        params: dict[str, Any] = {
            "q": query_text.strip(),
            "query_by": "name",
            "per_page": self.page_size,
        }

        try:
            response = await self._http.get(
                url,
                params=params,
                headers={"X-TYPESENSE-API-KEY": self.api_key},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Search in %s for %r failed: %s", collection, query_text, exc)
            return []

        hits = body.get("hits") if isinstance(body, dict) else None
        if not isinstance(hits, list):
            logger.warning("Search in %s returned no hit list", collection)
            return []

        candidates: list[Candidate] = []
        for hit in hits:
            candidate = _hit_to_candidate(hit, id_field)
            if candidate is not None:
                candidates.append(candidate)
            if len(candidates) == self.page_size:
                break
        return candidates


def _hit_to_candidate(hit: Any, id_field: str) -> Candidate | None:
    """Map one search hit to a candidate, skipping hits without id or name."""
    document = hit.get("document") if isinstance(hit, dict) else None
    if not isinstance(document, dict):
        return None
    raw_id = document.get(id_field, document.get("id"))
    name = document.get("name")
    if raw_id is None or not name:
        return None
    return Candidate(id=str(raw_id), label=str(name))


class DebouncedSearch:
    """Debounced, last-input-wins driver for one search box.

    Call update() on every keystroke from inside the event loop. The latest
    suggestions are kept on .candidates and also passed to on_results.
    """

    def __init__(
        self,
        search: CandidateSearch,
        category: Category,
        delay: float = SEARCH_DEBOUNCE_SECONDS,
        on_results: Callable[[list[Candidate]], None] | None = None,
    ) -> None:
        self.search = search
        self.category = category
        self.delay = delay
        self.text = ""
        self.candidates: list[Candidate] = []
        self._on_results = on_results
        self._seq = 0
        self._task: asyncio.Task[None] | None = None

    def update(self, text: str) -> None:
        """Record new input and (re)start the debounce timer."""
        self.text = text
        self._seq += 1
        self.cancel()

        if not self.search.is_searchable(text):
            self._apply(self._seq, [])
            return

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._debounced_query(self._seq, text))

    def cancel(self) -> None:
        """Drop the pending timer or superseded query, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def settle(self) -> None:
        """Wait until the current timer and query (if any) have finished."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            # Superseded by newer input while we were waiting.
            pass

    async def _debounced_query(self, seq: int, text: str) -> None:
        await asyncio.sleep(self.delay)
        results = await self.search.search(self.category, text)
        self._apply(seq, results)

    def _apply(self, seq: int, results: list[Candidate]) -> None:
        if seq != self._seq:
            logger.debug("Discarding stale %s suggestions (seq %d < %d)", self.category.value, seq, self._seq)
            return
        self.candidates = results
        if self._on_results is not None:
            self._on_results(results)
