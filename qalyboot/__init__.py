"""qalyboot: cluster-bootstrap uncertainty for longitudinal health-utility panels.

This package resamples respondents, refits a mixed model of utility over time
on each resample, and reduces the retained fits to quantile bands for the
fixed effects and for group-mean QALY losses.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "BootConfig",
    "BootstrapResult",
    "DegenerateQuantileInput",
    "FitAdapter",
    "InsufficientReplicates",
    "MixedLMAdapter",
    "OLSAdapter",
    "Panel",
    "PanelSchema",
    "QALYBootstrap",
    "QALYCalculator",
    "bootstrap_summary",
    "simulate_panel",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BootConfig": ("qalyboot.core.bootstrap", "BootConfig"),
    "BootstrapResult": ("qalyboot.pipeline", "BootstrapResult"),
    "DegenerateQuantileInput": ("qalyboot.core.errors", "DegenerateQuantileInput"),
    "FitAdapter": ("qalyboot.models.base", "FitAdapter"),
    "InsufficientReplicates": ("qalyboot.core.errors", "InsufficientReplicates"),
    "MixedLMAdapter": ("qalyboot.models.mixedlm", "MixedLMAdapter"),
    "OLSAdapter": ("qalyboot.models.ols", "OLSAdapter"),
    "Panel": ("qalyboot.core.panel", "Panel"),
    "PanelSchema": ("qalyboot.core.panel", "PanelSchema"),
    "QALYBootstrap": ("qalyboot.pipeline", "QALYBootstrap"),
    "QALYCalculator": ("qalyboot.qaly.calculator", "QALYCalculator"),
    "bootstrap_summary": ("qalyboot.output.summary", "bootstrap_summary"),
    "simulate_panel": ("qalyboot.sim.simulate", "simulate_panel"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public classes and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'qalyboot' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
