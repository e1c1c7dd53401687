"""
Log-linear regression MMM.

Fits outcome = baseline + sum(c_ch * ln(spend_ch + 1)) by ordinary least
squares. The model is linear once spend is log-transformed, so the fit is a
single closed-form solve: no sampling, no iterative optimization.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from mixlab.data.observations import Observation, observations_to_frame
from mixlab.mmm.errors import (
    DegenerateInput,
    EmptyChannelSet,
    InsufficientData,
    InvalidObservation,
)
from mixlab.mmm.models.base import ChannelResponseModel, FitResult

logger = logging.getLogger(__name__)


def _ordered_channels(channels: Iterable[str]) -> list[str]:
    # Sets carry no order; sort them so tie-breaking downstream is reproducible.
    if isinstance(channels, (set, frozenset)):
        return sorted(channels)
    return list(dict.fromkeys(channels))


class ResponseModelFitter:
    """
    Ordinary least squares fit of the additive log-linear response model.

    Each channel contributes one design-matrix column, ln(spend + 1), next
    to an intercept that becomes the baseline. All input problems are caught
    before the solve so a bad dataset never yields NaN coefficients.
    """

    def fit(
        self,
        observations: pd.DataFrame | Sequence[Observation],
        channels: Iterable[str] | None = None,
        target: str = "revenue",
    ) -> FitResult:
        """
        Fit the response model on historical observations.

        Args:
            observations: Spend table (one column per channel plus the target)
                or a sequence of Observation records.
            channels: Channel identifiers. A list keeps its order, a set is
                sorted. Auto-detected from numeric DataFrame columns if None.
            target: Outcome column name when ``observations`` is a DataFrame.

        Returns:
            FitResult holding the ChannelResponseModel and fit diagnostics.

        Raises:
            EmptyChannelSet: No channels given.
            InvalidObservation: Missing channels, negative or non-finite
                spend, non-finite outcome.
            InsufficientData: Not more observations than channels + 1.
            DegenerateInput: Constant spend column or collinear channels.
        """
        data, channels = self._prepare(observations, channels, target)

        try:
            spend = data[channels].to_numpy(dtype=float)
            y = data[target].to_numpy(dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidObservation(f"Spend and outcome must be numeric: {e}") from e

        self._validate_values(spend, y, channels)

        n_obs, n_channels = spend.shape
        if n_obs <= n_channels + 1:
            raise InsufficientData(
                f"Need more than {n_channels + 1} observations to fit {n_channels} "
                f"channel(s) plus a baseline, got {n_obs}."
            )

        X = np.log1p(spend)
        self._check_rank(X, channels)

        regression = LinearRegression(fit_intercept=True)
        regression.fit(X, y)

        intercept = float(regression.intercept_)
        coefs = np.asarray(regression.coef_, dtype=float)
        if not (np.isfinite(intercept) and np.all(np.isfinite(coefs))):
            raise DegenerateInput("Least squares produced non-finite estimates.")

        model = ChannelResponseModel(
            baseline=intercept,
            coefficients={ch: float(c) for ch, c in zip(channels, coefs)},
        )

        # Predictions and metrics
        predictions = regression.predict(X)
        residuals = y - predictions

        ss_res = float(np.sum(residuals**2))
        ss_tot = float(np.sum((y - np.mean(y)) ** 2))
        r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0
        dof = n_obs - n_channels - 1
        adj_r_squared = 1 - (1 - r_squared) * (n_obs - 1) / dof
        mape = float(np.mean(np.abs(residuals / np.where(y != 0, y, 1)))) * 100
        rmse = float(np.sqrt(np.mean(residuals**2)))

        design = np.column_stack([np.ones(n_obs), X])
        covariance = (ss_res / dof) * np.linalg.inv(design.T @ design)
        std = np.sqrt(np.clip(np.diag(covariance), 0.0, None))
        std_errors = {"baseline": float(std[0])}
        std_errors.update({ch: float(s) for ch, s in zip(channels, std[1:])})

        logger.info(
            "Fitted log-linear model on %d observations, %d channels (R²=%.4f)",
            n_obs,
            n_channels,
            r_squared,
        )
        logger.debug("Baseline=%.4f coefficients=%s", model.baseline, dict(model.coefficients))

        return FitResult(
            model=model,
            target_variable=target,
            channels=channels,
            n_observations=n_obs,
            r_squared=r_squared,
            adj_r_squared=adj_r_squared,
            mape=mape,
            rmse=rmse,
            std_errors=std_errors,
            predictions=predictions,
            residuals=residuals,
        )

    def fit_model(
        self,
        observations: pd.DataFrame | Sequence[Observation],
        channels: Iterable[str] | None = None,
        target: str = "revenue",
    ) -> ChannelResponseModel:
        """Fit and return only the ChannelResponseModel."""
        return self.fit(observations, channels=channels, target=target).model

    def _prepare(
        self,
        observations: pd.DataFrame | Sequence[Observation],
        channels: Iterable[str] | None,
        target: str,
    ) -> tuple[pd.DataFrame, list[str]]:
        """Normalize input to a DataFrame and check its structure."""
        if isinstance(observations, pd.DataFrame):
            data = observations
            if channels is None:
                exclude = {target, "week", "date"}
                channels = [
                    c for c in data.select_dtypes(include=[np.number]).columns if c not in exclude
                ]
            channels = _ordered_channels(channels)
            if not channels:
                raise EmptyChannelSet("At least one channel is required to fit a model.")

            missing = [c for c in [*channels, target] if c not in data.columns]
            if missing:
                raise InvalidObservation(f"Columns not found in data: {missing}")
            return data, channels

        observations = list(observations)
        if channels is None:
            channels = observations[0].spend.keys() if observations else []
        channels = _ordered_channels(channels)
        if not channels:
            raise EmptyChannelSet("At least one channel is required to fit a model.")

        expected = set(channels)
        for i, obs in enumerate(observations):
            if set(obs.spend) != expected:
                raise InvalidObservation(
                    f"Observation {i} (week {obs.week}) covers channels "
                    f"{sorted(obs.spend)}, expected {sorted(expected)}."
                )

        return observations_to_frame(observations, channels, target=target), channels

    @staticmethod
    def _validate_values(spend: np.ndarray, y: np.ndarray, channels: list[str]) -> None:
        if not np.all(np.isfinite(spend)):
            bad = [ch for j, ch in enumerate(channels) if not np.all(np.isfinite(spend[:, j]))]
            raise InvalidObservation(f"Non-finite spend in channel(s): {bad}")

        if np.any(spend < 0):
            bad = [ch for j, ch in enumerate(channels) if np.any(spend[:, j] < 0)]
            raise InvalidObservation(f"Negative spend in channel(s): {bad}")

        if not np.all(np.isfinite(y)):
            raise InvalidObservation("Outcome values must be finite.")

    @staticmethod
    def _check_rank(X: np.ndarray, channels: list[str]) -> None:
        constant = [ch for j, ch in enumerate(channels) if np.ptp(X[:, j]) == 0]
        if constant:
            raise DegenerateInput(
                f"Spend never varies for channel(s) {constant}; their effect cannot be "
                "separated from the baseline."
            )

        design = np.column_stack([np.ones(len(X)), X])
        if np.linalg.matrix_rank(design) < design.shape[1]:
            raise DegenerateInput(
                f"Channel spends {channels} are collinear; the least squares solve is singular."
            )
