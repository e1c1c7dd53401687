"""
Logarithmic response curves for MMM.

Every channel in mixlab responds to spend as c * ln(spend + 1): the first
dollars move the outcome the most and each additional dollar adds less.
These closed-form helpers describe a single channel in isolation and back
the idealized single-channel illustration (where does profit peak, and
when does spending stop paying for itself).
"""

from __future__ import annotations

import numpy as np
from scipy.optimize import brentq


def _check_spend(spend: np.ndarray) -> np.ndarray:
    spend = np.asarray(spend, dtype=float)
    if not np.all(np.isfinite(spend)):
        raise ValueError("spend must be finite")
    if np.any(spend < 0):
        raise ValueError("spend must be non-negative")
    return spend


def log_response(spend: np.ndarray, coefficient: float) -> np.ndarray:
    """
    Incremental outcome produced by a channel.

    response = coefficient * ln(spend + 1)

    Args:
        spend: Array of spend values (non-negative).
        coefficient: Outcome gained per unit of ln(spend + 1).

    Returns:
        Response values; zero spend gives zero response.

    Example:
        >>> log_response(np.array([0.0, 19.0, 99.0]), coefficient=20)
        array([ 0.        , 59.9146..., 92.1034...])
    """
    spend = _check_spend(spend)
    return coefficient * np.log1p(spend)


def marginal_response(spend: np.ndarray, coefficient: float) -> np.ndarray:
    """Derivative of the response: coefficient / (spend + 1)."""
    spend = _check_spend(spend)
    return coefficient / (spend + 1.0)


def profit_curve(spend: np.ndarray, baseline: float, coefficient: float) -> np.ndarray:
    """
    Outcome net of spend for a single channel.

    profit = baseline + coefficient * ln(spend + 1) - spend
    """
    spend = _check_spend(spend)
    return baseline + coefficient * np.log1p(spend) - spend


def profit_maximizing_spend(coefficient: float) -> float:
    """
    Continuous spend at which profit peaks.

    Profit stops growing once the marginal response drops to 1, i.e. at
    spend = coefficient - 1. Channels with coefficient <= 1 never pay back
    their first dollar, so the optimum is zero.
    """
    return max(float(coefficient) - 1.0, 0.0)


def breakeven_spend(coefficient: float) -> float:
    """
    Largest spend at which profit is still at least the baseline.

    Solves coefficient * ln(s + 1) = s for the positive root. Beyond this
    point the channel costs more than everything it has returned.
    """
    if coefficient <= 1:
        return 0.0

    def gap(s: float) -> float:
        return coefficient * np.log1p(s) - s

    # The root lies past the profit peak; coefficient**2 is a safe upper bracket.
    low = profit_maximizing_spend(coefficient)
    high = max(float(coefficient) ** 2, low + 1.0)
    return float(brentq(gap, low, high))
