"""
Model spec files.

A fitted ChannelResponseModel is saved as a small YAML document so it can be
fitted once and reused by later allocation runs:

    baseline: 500.0
    target: revenue
    coefficients:
      A: 20.0
      B: 5.0
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from mixlab.mmm.models.base import ChannelResponseModel


class ModelSpec(BaseModel):
    """Serialized form of a ChannelResponseModel."""

    baseline: float
    coefficients: dict[str, float] = Field(default_factory=dict)
    target: str = "revenue"

    def to_model(self) -> ChannelResponseModel:
        return ChannelResponseModel(baseline=self.baseline, coefficients=self.coefficients)

    @classmethod
    def from_model(cls, model: ChannelResponseModel, target: str = "revenue") -> ModelSpec:
        return cls(baseline=model.baseline, coefficients=dict(model.coefficients), target=target)


def load_model_spec(path: str | Path) -> ChannelResponseModel:
    """Load a model spec YAML into a ChannelResponseModel."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model spec not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if isinstance(raw, dict):
        raw = raw.get("model", raw)
    if not isinstance(raw, dict):
        raise ValueError(f"Model spec at {path} is not a mapping.")

    return ModelSpec(**raw).to_model()


def save_model_spec(
    model: ChannelResponseModel, path: str | Path, target: str = "revenue"
) -> Path:
    """Write a ChannelResponseModel to YAML. Returns the path written to."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    spec = ModelSpec.from_model(model, target=target)
    path.write_text(yaml.safe_dump(spec.model_dump(), default_flow_style=False, sort_keys=False))
    return path
