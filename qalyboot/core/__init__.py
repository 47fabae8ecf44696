# qalyboot/core/__init__.py
"""Core computational modules for qalyboot."""
from . import bootstrap, errors, inference, panel, quantiles, resample

__all__ = ["bootstrap", "errors", "inference", "panel", "quantiles", "resample"]
