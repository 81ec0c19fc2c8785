"""
Dollar budget enforcement.

``per-request`` mode checks each call's estimate against the limit on its
own; ``cumulative`` mode (sessions and chat) adds the running spend and
rejects the next call once the total would pass the limit.  The estimate is
a local heuristic over input length priced with the smallest plausible
output, so a reject happens before any network round trip.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

from loguru import logger

from aipipe.core.exceptions import BudgetExceeded
from aipipe.core.llm.pricing import price
from aipipe.core.llm.token_management import estimate_request_tokens
from aipipe.core.llm.types import Request

BudgetMode = Literal["per-request", "cumulative"]

# Smallest plausible response
MIN_OUTPUT_TOKENS = 1


@dataclass(frozen=True)
class BudgetState:
    limit: float | None = None
    spent: float = 0.0
    mode: BudgetMode = "per-request"

    @property
    def remaining(self) -> float | None:
        if self.limit is None:
            return None
        return max(self.limit - self.spent, 0.0)


class BudgetGuard:
    """Stateless checks over an immutable BudgetState."""

    @staticmethod
    def estimate(request: Request) -> float:
        """Projected cost of *request* with a minimal response."""
        input_tokens = estimate_request_tokens(request)
        return price(request.model.provider, request.model.model_id, input_tokens, MIN_OUTPUT_TOKENS)

    @staticmethod
    def pre_check(state: BudgetState, estimate: float) -> None:
        """Raise BudgetExceeded if *estimate* would push spend past the limit."""
        if state.limit is None:
            return
        spent = state.spent if state.mode == "cumulative" else 0.0
        if spent + estimate > state.limit:
            raise BudgetExceeded(spent=spent, estimate=estimate, limit=state.limit)
        logger.debug(f"Budget ok: ${spent:.4f} spent + ${estimate:.4f} estimated <= ${state.limit:.4f}")

    @staticmethod
    def post_update(state: BudgetState, actual_cost: float) -> BudgetState:
        """Return the state after a completed call costing *actual_cost*."""
        new_state = replace(state, spent=state.spent + actual_cost)
        if state.limit is not None and new_state.spent > state.limit:
            logger.warning(f"Spend ${new_state.spent:.4f} is now over the budget of ${state.limit:.4f}")
        return new_state
