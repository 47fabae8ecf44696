"""Per-respondent QALY computation.

Utilities observed (or predicted) at discrete time points are integrated over
time with the trapezoidal rule. Three summaries are produced per respondent:

``raw``
    QALYs accrued, the integral of utility.
``vs-full-health``
    QALY loss against full health, the integral of ``1 - u``.
``vs-baseline``
    QALY loss against the respondent's own utility at the baseline time point,
    the integral of ``u_baseline - u`` from the baseline onwards. Respondents
    without a baseline observation are left out of this summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
from scipy.integrate import trapezoid

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping, Sequence

    from qalyboot.core.panel import PanelSchema

__all__ = ["QALY_COLUMNS", "QALY_TYPES", "QALYCalculator"]

LOGGER = logging.getLogger(__name__)

QALY_TYPES: tuple[str, ...] = ("raw", "vs-full-health", "vs-baseline")
QALY_COLUMNS: tuple[str, ...] = ("qaly_type", "value")


@dataclass(frozen=True)
class QALYCalculator:
    """Trapezoidal QALY calculator anchored at a baseline time point.

    Parameters
    ----------
    baseline : hashable
        Time-point key of the baseline observation.
    times : mapping, optional
        Time-point key -> time in years. When omitted, keys must be numeric and
        are scaled by ``period_years``.
    period_years : float
        Length in years of one unit of the numeric time key.
    types : tuple of str
        Subset of :data:`QALY_TYPES` to compute.

    """

    baseline: Hashable
    times: Mapping[Hashable, float] | None = None
    period_years: float = 1.0
    types: tuple[str, ...] = field(default=QALY_TYPES)

    def __post_init__(self) -> None:
        unknown = sorted(set(self.types) - set(QALY_TYPES))
        if unknown:
            raise ValueError(f"unknown QALY type(s): {unknown}; allowed: {list(QALY_TYPES)}")
        if not (float(self.period_years) > 0.0):
            raise ValueError("period_years must be positive")

    def years(self, keys: pd.Series) -> np.ndarray:
        """Map time-point keys to time in years."""
        if self.times is not None:
            mapped = keys.map(dict(self.times))
            if mapped.isna().any():
                missing = pd.unique(keys[mapped.isna()]).tolist()
                raise ValueError(f"no time in years configured for time point(s): {missing}")
            return mapped.to_numpy(dtype=np.float64)
        numeric = pd.to_numeric(keys, errors="coerce")
        if numeric.isna().any():
            raise ValueError("time-point keys are not numeric; supply a `times` mapping")
        return numeric.to_numpy(dtype=np.float64) * float(self.period_years)

    def compute(
        self,
        table: pd.DataFrame,
        schema: PanelSchema,
        *,
        utility_col: str | None = None,
        keep: Sequence[str] = (),
    ) -> pd.DataFrame:
        """Return one QALY record per respondent and QALY type.

        ``table`` holds respondent, time, age group, sex, and a utility column
        (``schema.utility`` unless ``utility_col`` is given). The result has the
        respondent, age group and sex columns, any respondent-level ``keep``
        columns, then ``qaly_type`` and ``value``.
        """
        s = schema
        ucol = utility_col or s.utility
        demo = [s.age_group, s.sex, *(c for c in keep if c not in (s.respondent, s.age_group, s.sex))]
        work = pd.DataFrame({
            s.respondent: table[s.respondent].to_numpy(),
            **{c: table[c].to_numpy() for c in demo},
            "_t": self.years(table[s.time]),
            "_u": table[ucol].to_numpy(dtype=np.float64),
            "_base": (table[s.time] == self.baseline).to_numpy(),
        })
        work = work.sort_values([s.respondent, "_t"], kind="mergesort")

        rows: list[dict[str, Any]] = []
        no_baseline = 0
        for rid, grp in work.groupby(s.respondent, sort=True):
            t = grp["_t"].to_numpy()
            u = grp["_u"].to_numpy()
            head = {s.respondent: rid, **{c: grp[c].iloc[0] for c in demo}}
            if "raw" in self.types:
                rows.append({**head, "qaly_type": "raw", "value": float(trapezoid(u, t))})
            if "vs-full-health" in self.types:
                rows.append({**head, "qaly_type": "vs-full-health", "value": float(trapezoid(1.0 - u, t))})
            if "vs-baseline" in self.types:
                base = grp["_base"].to_numpy()
                if not base.any():
                    no_baseline += 1
                    continue
                t0 = t[base][0]
                after = t >= t0
                loss = trapezoid(u[base][0] - u[after], t[after])
                rows.append({**head, "qaly_type": "vs-baseline", "value": float(loss)})
        if no_baseline:
            LOGGER.debug(
                "%d respondent(s) lack a baseline observation (%r); excluded from vs-baseline QALYs",
                no_baseline,
                self.baseline,
            )
        cols = [s.respondent, *demo, *QALY_COLUMNS]
        return pd.DataFrame(rows, columns=cols)

    __call__ = compute
