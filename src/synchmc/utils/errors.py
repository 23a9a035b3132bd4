from __future__ import annotations


class EmissionError(RuntimeError):
    """Base class for failures that abort a photon emission call."""


class UnsupportedHydroModelError(EmissionError, ValueError):
    pass


class PoolAllocationError(EmissionError, MemoryError):
    pass


class WeightRebalanceError(EmissionError):
    pass
