# qalyboot/models/__init__.py
"""Model fit adapters consumed by the bootstrap."""
from .base import Converged, Failed, FitAdapter, FitResult
from .mixedlm import MixedLMAdapter
from .ols import OLSAdapter

__all__ = [
    "Converged",
    "Failed",
    "FitAdapter",
    "FitResult",
    "MixedLMAdapter",
    "OLSAdapter",
]
