"""
Budget allocator for Marketing Mix Modeling.

Takes a fitted ChannelResponseModel and finds the split of a total budget
across channels that maximizes predicted outcome or profit.

The default strategy is an exact grid search over the discretized budget
simplex. It scores every allocation in steps of ``step``, which costs
O((budget / step) ** (channels - 1)) and is only practical for two or three
channels. For larger channel counts the "slsqp" strategy solves the same
problem as a constrained continuous optimization; the log response is
concave, so the optimum it finds is the global one.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
from scipy.optimize import minimize

from mixlab.mmm.errors import EmptyChannelSet, NoFeasibleAllocation, UnknownChannel
from mixlab.mmm.models.base import (
    AllocationResult,
    ChannelResponseModel,
    Objective,
    spend_decimals,
)

logger = logging.getLogger(__name__)

STRATEGIES = ["grid", "slsqp", "auto"]

# Tied allocations kept on the result; n_ties always has the full count.
MAX_REPORTED_TIES = 10

_EPS = 1e-9


@dataclass
class ChannelConstraint:
    """Spend bounds for a single channel."""

    min_spend: float = 0.0
    max_spend: float = float("inf")


def parse_objective(objective: str | Objective) -> Objective:
    try:
        return Objective(objective)
    except ValueError:
        supported = [o.value for o in Objective]
        raise ValueError(
            f"Unsupported objective: '{objective}'. Supported objectives: {supported}"
        ) from None


def simplex_grid(
    n_units: int,
    lower: np.ndarray,
    upper: np.ndarray,
    exhaust: bool = True,
) -> np.ndarray:
    """
    Enumerate integer spend tuples on the budget simplex.

    Rows come out in lexicographic order. With ``exhaust`` every row sums to
    ``n_units`` and the last channel is derived from the others; otherwise
    rows sum to at most ``n_units``.

    Args:
        n_units: Budget expressed in steps.
        lower: Per-channel minimum, in steps.
        upper: Per-channel maximum, in steps.
        exhaust: Require the full budget to be spent.

    Returns:
        Integer array of shape (n_candidates, n_channels).
    """
    lower = np.asarray(lower, dtype=np.int64)
    upper = np.minimum(np.asarray(upper, dtype=np.int64), n_units)
    k = len(lower)

    if np.any(upper < lower) or lower.sum() > n_units:
        return np.empty((0, k), dtype=np.int64)

    if k == 1:
        free = np.zeros((1, 0), dtype=np.int64)
    else:
        shape = tuple(int(hi - lo + 1) for lo, hi in zip(lower[:-1], upper[:-1]))
        free = np.indices(shape, dtype=np.int64).reshape(k - 1, -1).T + lower[:-1]

    remaining = n_units - free.sum(axis=1)
    last_lo, last_hi = lower[-1], upper[-1]

    if exhaust:
        keep = (remaining >= last_lo) & (remaining <= last_hi)
        return np.column_stack([free[keep], remaining[keep]])

    last_max = np.minimum(remaining, last_hi)
    keep = last_max >= last_lo
    free, last_max = free[keep], last_max[keep]

    counts = last_max - last_lo + 1
    rows = np.repeat(free, counts, axis=0)
    offsets = np.repeat(np.cumsum(counts) - counts, counts)
    last = np.arange(int(counts.sum()), dtype=np.int64) - offsets + last_lo
    return np.column_stack([rows, last])


class BudgetAllocator:
    """
    Budget allocation over a fitted log-linear response model.

    The allocator only reads the model's baseline and coefficients; it never
    needs the fitter that produced them.
    """

    def __init__(self, model: ChannelResponseModel, max_grid_channels: int = 3) -> None:
        self.model = model
        self.max_grid_channels = max_grid_channels

    def optimize(
        self,
        total_budget: float,
        step: float = 1.0,
        objective: str | Objective = Objective.MAXIMIZE_OUTCOME,
        exhaust_budget: bool = True,
        channels: Iterable[str] | None = None,
        constraints: Mapping[str, Mapping[str, float]] | None = None,
        current_allocation: Mapping[str, float] | None = None,
        strategy: str = "grid",
    ) -> AllocationResult:
        """
        Find the best budget allocation.

        Args:
            total_budget: Total budget to allocate (>= 0).
            step: Spend granularity of the grid.
            objective: "maximize_outcome" or "maximize_profit" (outcome minus
                total spend).
            exhaust_budget: Only consider allocations spending the whole
                budget. Otherwise anything up to the budget is allowed.
            channels: Channels to allocate across. Defaults to every model
                channel, in model order.
            constraints: Per-channel bounds.
                Example: {"A": {"min": 10, "max": 100}}
            current_allocation: Reference allocation to report lift against.
            strategy: "grid" (exact search), "slsqp" (continuous fallback, step
                ignored) or "auto" (grid up to ``max_grid_channels`` channels).

        Returns:
            AllocationResult with the winning allocation. Among allocations
            with exactly equal scores the lexicographically smallest spend
            tuple wins and ``tie`` is set.
        """
        objective = parse_objective(objective)
        selected = self._select_channels(channels)
        self._check_budget(total_budget, step)
        bounds = self._parse_constraints(selected, constraints)

        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: '{strategy}'. Available: {STRATEGIES}")
        if strategy == "auto":
            strategy = "grid" if len(selected) <= self.max_grid_channels else "slsqp"
            if strategy == "slsqp":
                logger.warning(
                    "Grid search over %d channels is impractical (limit %d); using SLSQP.",
                    len(selected),
                    self.max_grid_channels,
                )

        n_units = self._budget_units(total_budget, step, exhaust_budget)

        if strategy == "grid":
            result = self._optimize_grid(
                selected, bounds, total_budget, step, n_units, objective, exhaust_budget
            )
        else:
            result = self._optimize_continuous(
                selected, bounds, total_budget, step, objective, exhaust_budget
            )

        result.constraints_applied = {ch: vars(c) for ch, c in bounds.items()}

        if current_allocation is not None:
            prev = self.model.predict(current_allocation)
            result.previous_allocation = dict(current_allocation)
            result.previous_outcome = prev
            result.expected_lift = result.expected_outcome - prev
            if prev > 0:
                result.expected_lift_pct = result.expected_lift / prev * 100

        logger.info(
            "Best allocation %s (%s=%.4f, tie=%s)",
            result.allocation,
            objective.value,
            result.objective_value,
            result.tie,
        )
        return result

    def evaluate(
        self,
        allocation: Mapping[str, float],
        objective: str | Objective = Objective.MAXIMIZE_OUTCOME,
    ) -> float:
        """Score a single allocation under the given objective."""
        objective = parse_objective(objective)
        outcome = self.model.predict(allocation)
        if objective is Objective.MAXIMIZE_PROFIT:
            return outcome - float(sum(allocation.values()))
        return outcome

    def even_split(
        self, total_budget: float, channels: Iterable[str] | None = None
    ) -> dict[str, float]:
        """Naive allocation giving every channel the same share."""
        selected = self._select_channels(channels)
        share = float(total_budget) / len(selected)
        return {ch: share for ch in selected}

    # --- Search strategies ---

    def _optimize_grid(
        self,
        channels: list[str],
        bounds: dict[str, ChannelConstraint],
        total_budget: float,
        step: float,
        n_units: int,
        objective: Objective,
        exhaust_budget: bool,
    ) -> AllocationResult:
        lower, upper = self._unit_bounds(channels, bounds, step, n_units)
        units = simplex_grid(n_units, lower, upper, exhaust=exhaust_budget)
        if len(units) == 0:
            raise NoFeasibleAllocation(
                f"No allocation of {total_budget} in steps of {step} satisfies the "
                f"channel constraints {self._describe(bounds)}."
            )
        logger.debug("Scoring %d grid candidates over %s", len(units), channels)

        coefs = np.array([self.model.coefficients[ch] for ch in channels])
        spends = np.round(units * float(step), spend_decimals(step))
        # Summing each row's terms in sorted order makes permuted allocations
        # of equal coefficients score bit-for-bit the same.
        terms = np.sort(np.log1p(spends) * coefs, axis=1)
        outcomes = self.model.baseline + terms.sum(axis=1)
        profits = outcomes - units.sum(axis=1) * float(step)
        scores = profits if objective is Objective.MAXIMIZE_PROFIT else outcomes

        # Collect every maximum first so the winner never depends on scan order.
        best = scores.max()
        winners = np.flatnonzero(scores == best)
        first = int(winners[0])

        def as_allocation(row: np.ndarray) -> dict[str, float]:
            return {ch: float(s) for ch, s in zip(channels, row)}

        if len(winners) > 1:
            logger.debug("%d allocations tie at %.6f", len(winners), best)

        return AllocationResult(
            allocation=as_allocation(spends[first]),
            total_budget=float(total_budget),
            step=float(step),
            objective=objective.value,
            exhaust_budget=exhaust_budget,
            expected_outcome=float(outcomes[first]),
            expected_profit=float(profits[first]),
            objective_value=float(best),
            tie=len(winners) > 1,
            n_ties=len(winners),
            tied_allocations=[as_allocation(spends[i]) for i in winners[:MAX_REPORTED_TIES]],
            n_candidates=len(units),
            strategy="grid",
        )

    def _optimize_continuous(
        self,
        channels: list[str],
        bounds: dict[str, ChannelConstraint],
        total_budget: float,
        step: float,
        objective: Objective,
        exhaust_budget: bool,
    ) -> AllocationResult:
        coefs = np.array([self.model.coefficients[ch] for ch in channels])
        lo = np.array([bounds[ch].min_spend for ch in channels])
        hi = np.array([min(bounds[ch].max_spend, total_budget) for ch in channels])

        if np.any(hi < lo) or lo.sum() > total_budget + _EPS or (
            exhaust_budget and hi.sum() < total_budget - _EPS
        ):
            raise NoFeasibleAllocation(
                f"No allocation of {total_budget} satisfies the channel constraints "
                f"{self._describe(bounds)}."
            )

        profit = objective is Objective.MAXIMIZE_PROFIT

        def neg_score(x: np.ndarray) -> float:
            x = np.maximum(x, 0.0)
            score = self.model.baseline + float(coefs @ np.log1p(x))
            if profit:
                score -= float(x.sum())
            return -score

        x0 = np.clip(np.full(len(channels), total_budget / len(channels)), lo, hi)
        budget_constraint = {
            "type": "eq" if exhaust_budget else "ineq",
            "fun": lambda x: total_budget - np.sum(x),
        }

        result = minimize(
            neg_score,
            x0,
            method="SLSQP",
            bounds=list(zip(lo, hi)),
            constraints=[budget_constraint],
            options={"maxiter": 1000, "ftol": 1e-10},
        )
        if not result.success:
            logger.warning("SLSQP did not converge: %s", result.message)

        x = np.clip(result.x, lo, hi)
        allocation = {ch: float(s) for ch, s in zip(channels, x)}
        outcome = self.model.baseline + float(coefs @ np.log1p(x))
        spent = float(x.sum())

        return AllocationResult(
            allocation=allocation,
            total_budget=float(total_budget),
            step=float(step),
            objective=objective.value,
            exhaust_budget=exhaust_budget,
            expected_outcome=outcome,
            expected_profit=outcome - spent,
            objective_value=outcome - spent if profit else outcome,
            tied_allocations=[allocation],
            strategy="slsqp",
        )

    # --- Input checks ---

    def _select_channels(self, channels: Iterable[str] | None) -> list[str]:
        if channels is None:
            selected = self.model.channels
        elif isinstance(channels, (set, frozenset)):
            selected = sorted(channels)
        else:
            selected = list(dict.fromkeys(channels))

        if not selected:
            raise EmptyChannelSet("At least one channel is required for allocation.")

        unknown = [ch for ch in selected if ch not in self.model.coefficients]
        if unknown:
            raise UnknownChannel(
                f"No coefficient for channel(s) {unknown}. Model channels: {self.model.channels}"
            )
        return selected

    @staticmethod
    def _check_budget(total_budget: float, step: float) -> None:
        if not math.isfinite(total_budget) or total_budget < 0:
            raise ValueError(f"total_budget must be a non-negative number, got {total_budget}")
        if not math.isfinite(step) or step <= 0:
            raise ValueError(f"step must be positive, got {step}")

    @staticmethod
    def _budget_units(total_budget: float, step: float, exhaust_budget: bool) -> int:
        ratio = total_budget / step
        if not exhaust_budget:
            return int(math.floor(ratio + _EPS))

        n_units = int(round(ratio))
        if not math.isclose(n_units * step, total_budget, rel_tol=_EPS, abs_tol=_EPS):
            raise NoFeasibleAllocation(
                f"Step {step} does not divide the budget {total_budget}; no grid "
                "allocation can spend it exactly."
            )
        return n_units

    def _parse_constraints(
        self,
        channels: list[str],
        constraints: Mapping[str, Mapping[str, float]] | None,
    ) -> dict[str, ChannelConstraint]:
        constraints = constraints or {}
        unknown = [ch for ch in constraints if ch not in self.model.coefficients]
        if unknown:
            raise UnknownChannel(f"Constraints given for channel(s) not in model: {unknown}")

        parsed = {}
        for ch in channels:
            ch_constraint = ChannelConstraint()
            if ch in constraints:
                c = constraints[ch]
                ch_constraint.min_spend = float(c.get("min", c.get("min_spend", 0.0)))
                ch_constraint.max_spend = float(c.get("max", c.get("max_spend", float("inf"))))
                if ch_constraint.min_spend < 0:
                    raise ValueError(f"Minimum spend for '{ch}' must be non-negative.")
            parsed[ch] = ch_constraint
        return parsed

    @staticmethod
    def _unit_bounds(
        channels: list[str],
        bounds: dict[str, ChannelConstraint],
        step: float,
        n_units: int,
    ) -> tuple[np.ndarray, np.ndarray]:
        lower = np.array([math.ceil(bounds[ch].min_spend / step - _EPS) for ch in channels])
        upper = np.array(
            [
                n_units
                if math.isinf(bounds[ch].max_spend)
                else min(math.floor(bounds[ch].max_spend / step + _EPS), n_units)
                for ch in channels
            ]
        )
        return lower, upper

    @staticmethod
    def _describe(bounds: dict[str, ChannelConstraint]) -> dict[str, Any]:
        return {
            ch: (c.min_spend, c.max_spend)
            for ch, c in bounds.items()
            if c.min_spend > 0 or not math.isinf(c.max_spend)
        }
