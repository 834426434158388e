"""The interaction check cycle: validate, request, classify, complete.

A cycle moves idle -> pending -> success | error. While a cycle is
pending every new trigger is ignored (not queued, not merged), so at most
one request is ever in flight per orchestrator. Every cycle that is
started finishes exactly once: the per-cycle completion future is
resolved and the on_complete callback is invoked, whatever the outcome,
so the owner of the trigger flag can always reset it.

Failures never escape trigger(). They become the error state with a
human-readable message, preferring the server's own message, then the
transport error text, then a generic fallback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from interaction_checker.backend_client import BackendAPIError, BackendClient
from interaction_checker.config import CHECK_TIMEOUT_SECONDS
from interaction_checker.eligibility import deficiency_message, is_eligible
from interaction_checker.models import (
    CheckerMode,
    InteractionCheckRequest,
    InteractionCheckResult,
    SelectedItem,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to fetch interaction data. Please try again."


def _failure_message(exc: BackendAPIError) -> str:
    """Server message, else transport error text, else the HTTP status.

    A non-2xx body without a message (often an HTML error page) is never
    shown as is.
    """
    if exc.server_message:
        return exc.server_message
    if exc.status_code == 0:
        return exc.detail or GENERIC_ERROR_MESSAGE
    return f"The interaction service returned HTTP {exc.status_code}. Please try again."


class CheckCycleState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CheckOutcome:
    """How one cycle ended."""

    state: CheckCycleState
    result: InteractionCheckResult | None = None
    error: str | None = None
    request: InteractionCheckRequest | None = None


class CheckOrchestrator:
    """Runs check cycles for one results panel."""

    def __init__(self, client: BackendClient, timeout: float = CHECK_TIMEOUT_SECONDS) -> None:
        self.client = client
        self.timeout = timeout
        self.state = CheckCycleState.IDLE
        self.result: InteractionCheckResult | None = None
        self.error: str | None = None
        self.last_request: InteractionCheckRequest | None = None
        self._completion: asyncio.Future[CheckOutcome] | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is CheckCycleState.PENDING

    @property
    def completion(self) -> asyncio.Future[CheckOutcome] | None:
        """One-shot future of the current (or last) cycle."""
        return self._completion

    def reset(self) -> bool:
        """Drop a stale result or error after the selection changed.

        Has no effect while a cycle is pending; there is no mid-flight
        cancellation. Returns True if the state was reset.
        """
        if self.is_pending:
            return False
        self.state = CheckCycleState.IDLE
        self.result = None
        self.error = None
        return True

    async def trigger(
        self,
        selection: Iterable[SelectedItem],
        mode: CheckerMode,
        on_complete: Callable[[CheckOutcome], None] | None = None,
    ) -> CheckOutcome | None:
        """Run one check cycle for selection in mode.

        Returns:
            The outcome of the cycle, or None if the trigger was ignored
            because another cycle is still pending.
        """
        if self.is_pending:
            logger.debug("Check already pending, ignoring trigger")
            return None

        items = tuple(selection)
        self._completion = asyncio.get_running_loop().create_future()

        if not is_eligible(items, mode):
            # Rejected before any network traffic; the cycle ends at once.
            message = deficiency_message(items, mode)
            logger.info("Check rejected in %s mode: %s", mode.value, message)
            return self._finish(CheckOutcome(CheckCycleState.ERROR, error=message), on_complete)

        request = InteractionCheckRequest.from_selection(items)
        self.last_request = request
        self.state = CheckCycleState.PENDING
        self.result = None
        self.error = None
        logger.info(
            "Checking %d drug(s), %d food item(s), %d complementary medicine(s)",
            len(request.drug_ids),
            len(request.food_ids),
            len(request.comp_ids),
        )

        try:
            body = await asyncio.wait_for(self.client.check_interactions(request), self.timeout)
            result = InteractionCheckResult.model_validate(body)
        except BackendAPIError as exc:
            logger.warning("Interaction check failed: %s", exc)
            outcome = CheckOutcome(CheckCycleState.ERROR, error=_failure_message(exc), request=request)
        except asyncio.TimeoutError:
            logger.warning("Interaction check timed out after %.1fs", self.timeout)
            outcome = CheckOutcome(
                CheckCycleState.ERROR,
                error=f"The interaction check timed out after {self.timeout:g} seconds.",
                request=request,
            )
        except ValidationError as exc:
            logger.warning("Malformed interaction check response: %s", exc)
            outcome = CheckOutcome(CheckCycleState.ERROR, error=GENERIC_ERROR_MESSAGE, request=request)
        except asyncio.CancelledError:
            self._finish(
                CheckOutcome(CheckCycleState.ERROR, error="The interaction check was cancelled.", request=request),
                on_complete,
            )
            raise
        except Exception:
            logger.exception("Unexpected error during interaction check")
            outcome = CheckOutcome(CheckCycleState.ERROR, error=GENERIC_ERROR_MESSAGE, request=request)
        else:
            outcome = CheckOutcome(CheckCycleState.SUCCESS, result=result, request=request)

        return self._finish(outcome, on_complete)

    def _finish(
        self,
        outcome: CheckOutcome,
        on_complete: Callable[[CheckOutcome], None] | None,
    ) -> CheckOutcome:
        self.state = outcome.state
        self.result = outcome.result
        self.error = outcome.error
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(outcome)
        logger.info("Check cycle finished: %s", outcome.state.value)
        if on_complete is not None:
            on_complete(outcome)
        return outcome
