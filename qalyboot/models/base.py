"""Model fit adapter interface.

The bootstrap treats model fitting as a black box: an adapter fits a formula to
one (resampled) panel and reports either a converged fit, possibly with
diagnostics, or a failure. Adapters must be picklable so replicates can run in
worker processes.
"""

# qalyboot/models/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    import numpy as np
    import pandas as pd
    from numpy.typing import NDArray

    from qalyboot.core.panel import Panel
    from qalyboot.utils.formula import ModelFormula

__all__ = [
    "Converged",
    "Failed",
    "FitAdapter",
    "FitResult",
]


@dataclass(frozen=True)
class Converged:
    """A fit that reached a solution.

    ``diagnostics`` holds non-fatal warnings raised during the fit; a converged
    fit with any diagnostics is still dropped by the replicate filter.
    """

    coefficients: pd.Series
    model: Any
    diagnostics: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return len(self.diagnostics) == 0


@dataclass(frozen=True)
class Failed:
    """A fit that raised or did not reach a solution."""

    diagnostics: tuple[str, ...]

    @property
    def accepted(self) -> bool:
        return False


FitResult = Union[Converged, Failed]


class FitAdapter(ABC):
    """Abstract fitting routine used by the bootstrap."""

    #: Fixed-effect names treated as the model intercept.
    intercept_names: tuple[str, ...] = ("Intercept",)

    @abstractmethod
    def fit(self, panel: Panel, formula: ModelFormula) -> FitResult:
        """Fit ``formula`` to ``panel``. Must not raise for numerical failures."""

    @abstractmethod
    def predict(self, model: Any, panel: Panel) -> NDArray[np.float64]:
        """Predicted utility for every row of ``panel`` from a converged ``model``."""

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"{type(self).__name__}()"
