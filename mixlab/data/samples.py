"""
Sample datasets for learning and testing mixlab.

Generates synthetic weekly marketing data from a known log-linear model,
so you can check that the fitter recovers the true parameters.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
import pandas as pd

from mixlab.mmm.transforms.response import log_response

# Ground truth and simulation settings per sample dataset.
SAMPLES: dict[str, dict[str, Any]] = {
    "two_channel": {
        "baseline": 500.0,
        "coefficients": {"A": 20.0, "B": 5.0},
        "n_weeks": 104,
        "spend_range": (0.0, 100.0),
        "noise_sd": 5.0,
        "seed": 42,
    },
    "three_channel": {
        "baseline": 1_000.0,
        "coefficients": {"search": 40.0, "social": 25.0, "tv": 10.0},
        "n_weeks": 156,
        "spend_range": (0.0, 500.0),
        "noise_sd": 20.0,
        "seed": 123,
    },
}


def simulate_observations(
    baseline: float,
    coefficients: Mapping[str, float],
    n_weeks: int = 104,
    spend_range: tuple[float, float] = (0.0, 100.0),
    noise_sd: float = 0.0,
    seed: int = 42,
    target: str = "revenue",
) -> pd.DataFrame:
    """
    Simulate weekly spend and the outcome it produces.

    Spend is drawn uniformly from ``spend_range`` for every channel and week;
    the outcome follows baseline + sum(c * ln(spend + 1)) plus Gaussian noise.

    Args:
        baseline: Outcome with zero spend everywhere.
        coefficients: Channel -> true response coefficient.
        n_weeks: Number of weekly observations.
        spend_range: (low, high) spend drawn per channel.
        noise_sd: Standard deviation of the outcome noise. 0 gives exact data.
        seed: Random seed.
        target: Name of the outcome column.

    Returns:
        DataFrame with 'week', one spend column per channel and the target.
    """
    low, high = spend_range
    if low < 0 or high < low:
        raise ValueError(f"Invalid spend_range {spend_range}; need 0 <= low <= high.")
    if n_weeks <= 0:
        raise ValueError(f"n_weeks must be positive, got {n_weeks}")

    rng = np.random.default_rng(seed)
    channels = list(coefficients)

    spend = np.round(rng.uniform(low, high, size=(n_weeks, len(channels))), 2)

    outcome = np.full(n_weeks, float(baseline))
    for j, ch in enumerate(channels):
        outcome += log_response(spend[:, j], coefficients[ch])
    if noise_sd > 0:
        outcome += rng.normal(0, noise_sd, n_weeks)

    df = pd.DataFrame(spend, columns=channels)
    df.insert(0, "week", np.arange(1, n_weeks + 1))
    df[target] = outcome
    return df


def load_sample(
    name: str = "two_channel",
    n_weeks: int | None = None,
    noise_sd: float | None = None,
    seed: int | None = None,
) -> pd.DataFrame:
    """
    Load a sample marketing dataset.

    Args:
        name: Dataset name. Options:
            - "two_channel": channels A and B, baseline 500, 104 weeks
            - "three_channel": search/social/tv, baseline 1000, 156 weeks
        n_weeks: Override the number of weeks.
        noise_sd: Override the outcome noise.
        seed: Override the random seed.

    Returns:
        DataFrame with week, channel spends and revenue.
    """
    if name not in SAMPLES:
        available = ", ".join(SAMPLES.keys())
        raise ValueError(f"Unknown dataset '{name}'. Available: {available}")

    params = dict(SAMPLES[name])
    if n_weeks is not None:
        params["n_weeks"] = n_weeks
    if noise_sd is not None:
        params["noise_sd"] = noise_sd
    if seed is not None:
        params["seed"] = seed
    return simulate_observations(**params)
