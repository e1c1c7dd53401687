"""MMM model types and the log-linear fitter."""

from mixlab.mmm.models.base import (
    AllocationResult,
    ChannelResponseModel,
    FitResult,
    Objective,
)
from mixlab.mmm.models.log_linear import ResponseModelFitter

__all__ = [
    "AllocationResult",
    "ChannelResponseModel",
    "FitResult",
    "Objective",
    "ResponseModelFitter",
]
