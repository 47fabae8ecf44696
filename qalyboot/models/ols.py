"""Pooled least-squares adapter.

Fits only the fixed-effects part of a model formula by column-pivot-free QR
least squares, ignoring the random-effects term. Useful as a fast,
deterministic reference fit and for sensitivity checks against the mixed model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
import patsy

from .base import Converged, Failed, FitAdapter, FitResult

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from qalyboot.core.panel import Panel
    from qalyboot.utils.formula import ModelFormula

__all__ = ["OLSAdapter", "OLSFit"]


@dataclass(frozen=True)
class OLSFit:
    """Fitted pooled OLS model."""

    params: pd.Series
    design_info: Any
    rank: int


class OLSAdapter(FitAdapter):
    """Pooled OLS on the fixed-effects formula.

    Parameters
    ----------
    rank_tol : float
        Relative tolerance on the diagonal of R below which the design is
        reported as rank deficient (the fit is then ``Failed``).

    """

    def __init__(self, *, rank_tol: float = 1e-10) -> None:
        self.rank_tol = float(rank_tol)

    def fit(self, panel: Panel, formula: ModelFormula) -> FitResult:
        try:
            y, X = patsy.dmatrices(formula.fixed, panel.frame, return_type="dataframe")
        except patsy.PatsyError as exc:
            return Failed((f"PatsyError: {exc}",))
        Xa = X.to_numpy(dtype=np.float64)
        ya = y.to_numpy(dtype=np.float64).reshape(-1)
        if Xa.shape[0] <= Xa.shape[1]:
            return Failed((f"too few observations ({Xa.shape[0]}) for {Xa.shape[1]} coefficients",))
        try:
            Q, R = np.linalg.qr(Xa, mode="reduced")
        except np.linalg.LinAlgError as exc:
            return Failed((f"LinAlgError: {exc}",))
        d = np.abs(np.diag(R))
        tol = self.rank_tol * (d.max() if d.size else 0.0)
        rank = int(np.sum(d > tol))
        if rank < Xa.shape[1]:
            return Failed((f"rank-deficient design (rank {rank} < {Xa.shape[1]})",))
        beta = np.linalg.solve(R, Q.T @ ya)
        if not np.all(np.isfinite(beta)):
            return Failed(("non-finite coefficient estimates",))
        params = pd.Series(beta, index=list(X.columns), name="estimate")
        return Converged(params, OLSFit(params, X.design_info, rank))

    def predict(self, model: OLSFit, panel: Panel) -> NDArray[np.float64]:
        (X,) = patsy.build_design_matrices([model.design_info], panel.frame)
        return np.asarray(X, dtype=np.float64) @ model.params.to_numpy(dtype=np.float64)
