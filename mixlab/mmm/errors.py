"""
Typed failures raised by model fitting and budget allocation.

All errors subclass ValueError: each one means the inputs were wrong and
recomputing with the same inputs fails the same way.
"""

from __future__ import annotations


class MixModelError(ValueError):
    """Base class for fitting and allocation failures."""


# --- Fitting ---


class InvalidObservation(MixModelError):
    """An observation has a negative/non-finite spend, a non-finite outcome, or the wrong channels."""


class InsufficientData(MixModelError):
    """Too few observations to identify the baseline and every channel coefficient."""


class DegenerateInput(MixModelError):
    """The design matrix is rank deficient (e.g. a channel's spend never varies)."""


# --- Allocation ---


class UnknownChannel(MixModelError):
    """A requested channel has no coefficient in the model."""


class EmptyChannelSet(MixModelError):
    """No channels were supplied."""


class NoFeasibleAllocation(MixModelError):
    """No grid point satisfies the budget and channel constraints."""
