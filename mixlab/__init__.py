"""
mixlab — a Media Mix Modeling primer.

Fit an additive log-linear response model to channel spend, then search the
budget simplex for the allocation that maximizes revenue or profit.
"""

__version__ = "0.1.0"

from mixlab.data.observations import Observation
from mixlab.mmm.models.base import AllocationResult, ChannelResponseModel, FitResult, Objective
from mixlab.mmm.models.log_linear import ResponseModelFitter
from mixlab.mmm.optimizer.grid_allocator import BudgetAllocator

__all__ = [
    "AllocationResult",
    "BudgetAllocator",
    "ChannelResponseModel",
    "FitResult",
    "Objective",
    "Observation",
    "ResponseModelFitter",
    "__version__",
]
