"""
Core MMM data structures.

The fitter produces a ChannelResponseModel, the allocator consumes it, and
both hand their results back as plain dataclasses so that plotting or
reporting code can render them without touching mixlab internals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np
import pandas as pd

from mixlab.mmm.errors import UnknownChannel
from mixlab.mmm.transforms.response import log_response, marginal_response


class Objective(str, Enum):
    """What the budget allocator maximizes."""

    MAXIMIZE_OUTCOME = "maximize_outcome"
    MAXIMIZE_PROFIT = "maximize_profit"


SUPPORTED_OBJECTIVES = [o.value for o in Objective]


def spend_decimals(step: float) -> int:
    """Decimal places needed to write ``step`` as given, e.g. 0.25 -> 2."""
    exponent = Decimal(repr(float(step))).normalize().as_tuple().exponent
    return max(0, -int(exponent))


@dataclass(frozen=True)
class ChannelResponseModel:
    """
    Fitted additive log-linear response model.

    outcome = baseline + sum(coefficients[ch] * ln(spend[ch] + 1))

    Channel order is the insertion order of ``coefficients``; the allocator
    uses it to break ties lexicographically.
    """

    baseline: float
    coefficients: Mapping[str, float]

    def __post_init__(self) -> None:
        frozen = MappingProxyType({str(ch): float(c) for ch, c in self.coefficients.items()})
        object.__setattr__(self, "baseline", float(self.baseline))
        object.__setattr__(self, "coefficients", frozen)

    @property
    def channels(self) -> list[str]:
        return list(self.coefficients)

    def predict(self, allocation: Mapping[str, float]) -> float:
        """Predicted outcome for one allocation. Channels left out spend zero."""
        unknown = [ch for ch in allocation if ch not in self.coefficients]
        if unknown:
            raise UnknownChannel(f"Channels not in model: {unknown}. Known: {self.channels}")

        total = self.baseline
        for ch, spend in allocation.items():
            total += float(log_response(np.array([spend]), self.coefficients[ch])[0])
        return total

    def predict_frame(self, data: pd.DataFrame) -> np.ndarray:
        """Predicted outcome for every row of a spend table."""
        missing = [ch for ch in self.channels if ch not in data.columns]
        if missing:
            raise UnknownChannel(f"Data is missing model channels: {missing}")

        predictions = np.full(len(data), self.baseline)
        for ch, coef in self.coefficients.items():
            predictions += log_response(data[ch].to_numpy(dtype=float), coef)
        return predictions

    def response_curves(
        self,
        channel: str | None = None,
        spend_range: tuple[float, float] = (0.0, 100.0),
        n_points: int = 200,
    ) -> dict[str, pd.DataFrame]:
        """
        Response curves for visualization.

        Returns:
            Dict mapping channel name to DataFrame with 'spend', 'response'
            and 'marginal' columns.
        """
        if channel is not None and channel not in self.coefficients:
            raise UnknownChannel(f"Channel '{channel}' not found in model.")

        spends = np.linspace(spend_range[0], spend_range[1], n_points)
        curves = {}
        for ch in [channel] if channel else self.channels:
            coef = self.coefficients[ch]
            curves[ch] = pd.DataFrame(
                {
                    "spend": spends,
                    "response": log_response(spends, coef),
                    "marginal": marginal_response(spends, coef),
                }
            )
        return curves

    def to_dict(self) -> dict[str, Any]:
        return {"baseline": self.baseline, "coefficients": dict(self.coefficients)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChannelResponseModel:
        return cls(baseline=data["baseline"], coefficients=dict(data["coefficients"]))


@dataclass
class FitResult:
    """Fitted model plus goodness-of-fit diagnostics."""

    model: ChannelResponseModel
    target_variable: str
    channels: list[str]
    n_observations: int

    # Fit metrics
    r_squared: float | None = None
    adj_r_squared: float | None = None
    mape: float | None = None
    rmse: float | None = None

    # Standard errors per term, "baseline" included
    std_errors: dict[str, float] = field(default_factory=dict)

    predictions: np.ndarray | None = None
    residuals: np.ndarray | None = None


@dataclass
class AllocationResult:
    """Output from budget allocation."""

    # Allocation
    allocation: dict[str, float]
    total_budget: float = 0.0
    step: float | None = None
    objective: str = Objective.MAXIMIZE_OUTCOME.value
    exhaust_budget: bool = True

    # Expected outcomes
    expected_outcome: float = 0.0
    expected_profit: float = 0.0
    objective_value: float = 0.0

    # Ties among grid candidates
    tie: bool = False
    n_ties: int = 1
    tied_allocations: list[dict[str, float]] = field(default_factory=list)

    # Search bookkeeping
    n_candidates: int | None = None
    strategy: str = "grid"

    # Comparison against a reference allocation
    previous_allocation: dict[str, float] | None = None
    previous_outcome: float | None = None
    expected_lift: float | None = None
    expected_lift_pct: float | None = None

    constraints_applied: dict[str, Any] = field(default_factory=dict)

    @property
    def total_spend(self) -> float:
        total = math.fsum(self.allocation.values())
        if self.strategy == "grid" and self.step:
            # Grid spends are whole multiples of step; drop binary round-off.
            return round(total, spend_decimals(self.step))
        return float(total)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocation": dict(self.allocation),
            "total_budget": self.total_budget,
            "total_spend": self.total_spend,
            "objective": self.objective,
            "expected_outcome": self.expected_outcome,
            "expected_profit": self.expected_profit,
            "tie": self.tie,
            "n_ties": self.n_ties,
            "strategy": self.strategy,
            "expected_lift": self.expected_lift,
            "expected_lift_pct": self.expected_lift_pct,
        }
