"""
Historical observations: one week of per-channel spend and the outcome it produced.

The fitter works on a DataFrame; these helpers convert between that tabular
form and a sequence of immutable Observation records.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

import pandas as pd


@dataclass(frozen=True)
class Observation:
    """One time period of channel spend and the resulting outcome."""

    spend: Mapping[str, float]
    outcome: float
    week: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "spend", MappingProxyType(dict(self.spend)))


def observations_to_frame(
    observations: Sequence[Observation],
    channels: Iterable[str] | None = None,
    target: str = "revenue",
    week_col: str = "week",
) -> pd.DataFrame:
    """
    Build a table with one row per observation.

    Channels missing from an observation come out as NaN, which the fitter
    rejects; pass ``channels`` to fix the column order.
    """
    if channels is None:
        seen: dict[str, None] = {}
        for obs in observations:
            seen.update(dict.fromkeys(obs.spend))
        channels = list(seen)
    channels = list(channels)

    rows = [
        {week_col: obs.week, **{ch: obs.spend.get(ch) for ch in channels}, target: obs.outcome}
        for obs in observations
    ]
    return pd.DataFrame(rows, columns=[week_col, *channels, target])


def frame_to_observations(
    data: pd.DataFrame,
    channels: Iterable[str],
    target: str = "revenue",
    week_col: str = "week",
) -> list[Observation]:
    """Convert a spend table back into Observation records."""
    channels = list(channels)
    missing = [c for c in [*channels, target] if c not in data.columns]
    if missing:
        raise ValueError(f"Columns not found in data: {missing}")

    weeks = data[week_col].tolist() if week_col in data.columns else list(range(len(data)))
    spends = data[channels].to_dict(orient="records")
    outcomes = data[target].tolist()
    return [
        Observation(spend=s, outcome=float(y), week=int(w))
        for s, y, w in zip(spends, outcomes, weeks)
    ]
