"""Linear mixed-effects adapter backed by ``statsmodels.MixedLM``.

The default specification has a random intercept and a random acute-period
slope per cluster:

    u_ij = x_ij'beta + b0_i + b1_i * acute_ij + e_ij

Any warning of a diagnostic category raised during the fit (convergence,
Hessian inversion, numerical overflow) is reported as a diagnostic. Boundary fits are
judged by random-effect variance relative to the residual variance, since
utilities live on a 0..1 scale where absolute variances are small. Warning
capture relies on process-global state, so parallel bootstrap runs dispatch
replicates to worker processes rather than threads.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
import patsy
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import ConvergenceWarning, HessianInversionWarning

from .base import Converged, Failed, FitAdapter, FitResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from qalyboot.core.panel import Panel
    from qalyboot.utils.formula import ModelFormula

__all__ = ["DIAGNOSTIC_WARNINGS", "MixedLMAdapter", "MixedLMFit", "boundary_diagnostics"]

LOGGER = logging.getLogger(__name__)

DIAGNOSTIC_WARNINGS: tuple[type[Warning], ...] = (
    ConvergenceWarning,
    HessianInversionWarning,
    RuntimeWarning,
)

# statsmodels flags any random-effect variance below an absolute 0.01, which
# is most of them on the 0..1 utility scale. It is replaced by the relative
# check in boundary_diagnostics.
_ABSOLUTE_BOUNDARY_MESSAGE = "The MLE may be on the boundary of the parameter space"


def boundary_diagnostics(cov_re: Any, scale: float, tol: float) -> list[str]:
    """Flag random-effect variances that are negligible relative to the residual variance."""
    cov = np.atleast_2d(np.asarray(cov_re, dtype=np.float64))
    names = list(getattr(cov_re, "index", range(cov.shape[0])))
    scale = float(scale)
    if not (np.isfinite(scale) and scale > 0.0):
        return [f"non-positive residual variance ({scale:g})"]
    rel = np.diag(cov) / scale
    return [
        f"random-effect variance {name!r} on the boundary (relative variance {r:.3g} < {tol:g})"
        for name, r in zip(names, rel)
        if not r >= tol
    ]


@dataclass(frozen=True)
class MixedLMFit:
    """Fitted mixed model plus the pieces needed to predict from it."""

    result: Any
    re_formula: str
    group: str


class MixedLMAdapter(FitAdapter):
    """Fit the panel with ``statsmodels.formula.api.mixedlm``.

    Parameters
    ----------
    reml : bool
        Use restricted maximum likelihood (default) or full ML.
    method : str or sequence of str
        Optimizer(s) tried in order by statsmodels.
    maxiter : int
        Iteration cap forwarded to the optimizer.
    include_random : bool
        If True, predictions add each cluster's predicted random effects to the
        fixed part; otherwise only the population-level prediction is returned.
    boundary_tol : float
        A random-effect variance below this fraction of the residual variance
        is reported as a boundary fit.

    """

    def __init__(
        self,
        *,
        reml: bool = True,
        method: str | Sequence[str] = ("lbfgs",),
        maxiter: int = 200,
        include_random: bool = True,
        boundary_tol: float = 1e-4,
    ) -> None:
        self.reml = bool(reml)
        self.method = [method] if isinstance(method, str) else list(method)
        self.maxiter = int(maxiter)
        self.include_random = bool(include_random)
        self.boundary_tol = float(boundary_tol)

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"MixedLMAdapter(reml={self.reml}, method={self.method}, maxiter={self.maxiter})"

    def fit(self, panel: Panel, formula: ModelFormula) -> FitResult:
        frame = panel.frame
        try:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                model = smf.mixedlm(
                    formula.fixed,
                    frame,
                    groups=frame[formula.group],
                    re_formula=formula.re_formula,
                )
                result = model.fit(reml=self.reml, method=self.method, maxiter=self.maxiter)
        except (np.linalg.LinAlgError, ValueError, patsy.PatsyError) as exc:
            return Failed((f"{type(exc).__name__}: {exc}",))

        diagnostics: list[str] = []
        for w in caught:
            if issubclass(w.category, ConvergenceWarning) and str(w.message).startswith(
                _ABSOLUTE_BOUNDARY_MESSAGE,
            ):
                continue
            if issubclass(w.category, DIAGNOSTIC_WARNINGS):
                diagnostics.append(f"{w.category.__name__}: {w.message}")
            else:
                LOGGER.debug("ignored %s during fit: %s", w.category.__name__, w.message)
        if not bool(getattr(result, "converged", False)):
            diagnostics.append("optimizer did not report convergence")
        diagnostics.extend(boundary_diagnostics(result.cov_re, result.scale, self.boundary_tol))

        params = result.fe_params.astype(np.float64)
        if not np.all(np.isfinite(params.to_numpy())):
            return Failed((*diagnostics, "non-finite fixed-effect estimates"))
        fit = MixedLMFit(result=result, re_formula=formula.re_formula, group=formula.group)
        return Converged(params, fit, tuple(diagnostics))

    def predict(self, model: MixedLMFit, panel: Panel) -> NDArray[np.float64]:
        frame = panel.frame
        fixed = np.asarray(model.result.predict(exog=frame), dtype=np.float64).reshape(-1)
        if not self.include_random:
            return fixed
        Z = np.asarray(patsy.dmatrix(model.re_formula, frame), dtype=np.float64)
        re = model.result.random_effects
        labels = frame[model.group].to_numpy()
        uniq, inv = np.unique(labels, return_inverse=True)
        zero = np.zeros(Z.shape[1], dtype=np.float64)
        # Clusters unseen by the fit get a zero random effect.
        B = np.vstack([
            np.asarray(re[g], dtype=np.float64).reshape(-1) if g in re else zero
            for g in uniq
        ])
        return fixed + np.einsum("ij,ij->i", Z, B[inv.reshape(-1)])
