"""Reduction of retained bootstrap replicates into uncertainty summaries.

Two reductions are provided:

- the coefficient aggregator collects fixed-effect estimates across replicates
  and summarizes each coefficient by its 5-point empirical quantile map;
- the QALY reducer turns predicted utility trajectories into per-group mean
  QALY summaries per replicate, then into quantile bands across replicates.

Both reductions are order-independent: inputs are keyed by replicate index and
quantiles depend only on the sorted values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from qalyboot.core.quantiles import (
    QUANTILE_PROBS,
    quantile_columns,
    quantile_frame,
    sign_consistent,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from qalyboot.core.panel import Panel
    from qalyboot.models.base import FitAdapter
    from qalyboot.qaly.calculator import QALYCalculator

__all__ = [
    "PREDICTED_COLUMN",
    "CoefficientSummary",
    "GroupBand",
    "bands_from_frame",
    "coefficient_samples",
    "group_means",
    "predicted_trajectories",
    "reference_estimates",
    "summarize_bands",
    "summarize_coefficients",
    "summaries_from_frame",
]

PREDICTED_COLUMN = "predicted"


@dataclass(frozen=True)
class CoefficientSummary:
    """Quantile summary of one fixed-effect coefficient.

    ``significant`` is True when all quantiles share a strict sign. It is a
    zero-exclusion heuristic on the bootstrap distribution, not a test.
    """

    coefficient: str
    quantiles: dict[float, float]
    significant: bool
    n: int


@dataclass(frozen=True)
class GroupBand:
    """Quantile band of the mean QALY summary for one group and QALY type."""

    group: tuple[Any, ...]
    qaly_type: str
    quantiles: dict[float, float]
    n: int


# ---------------------------------------------------------------------
# Coefficient aggregator
# ---------------------------------------------------------------------


def coefficient_samples(estimates: Mapping[int, pd.Series]) -> pd.DataFrame:
    """Stack per-replicate fixed-effect estimates into long format.

    Returns a frame with columns ``replicate``, ``coefficient``, ``estimate``
    sorted by replicate then coefficient position.
    """
    frames = []
    for rep in sorted(estimates):
        params = estimates[rep]
        frames.append(pd.DataFrame({
            "replicate": int(rep),
            "coefficient": [str(k) for k in params.index],
            "estimate": params.to_numpy(dtype=np.float64),
        }))
    if not frames:
        return pd.DataFrame(columns=["replicate", "coefficient", "estimate"])
    return pd.concat(frames, ignore_index=True)


def summarize_coefficients(
    samples: pd.DataFrame,
    *,
    intercept_names: Iterable[str] = ("Intercept",),
    probs: Sequence[float] = QUANTILE_PROBS,
) -> pd.DataFrame:
    """Quantile map and sign-consistency flag per non-intercept coefficient.

    A coefficient missing from some replicates (e.g. a factor level absent
    from a resample) is summarized over the replicates that estimated it; the
    ``n`` column records how many did.
    """
    drop = set(intercept_names)
    kept = samples[~samples["coefficient"].isin(drop)]
    out = quantile_frame(kept, ["coefficient"], "estimate", probs)
    cols = quantile_columns(probs)
    out["significant"] = [sign_consistent(row) for row in out[cols].to_numpy()]
    return out.reset_index(drop=True)


# ---------------------------------------------------------------------
# Prediction / QALY reducer
# ---------------------------------------------------------------------


def predicted_trajectories(
    adapter: FitAdapter, model: Any, panel: Panel, by: Sequence[str] = (),
) -> pd.DataFrame:
    """Predicted utility for every row of ``panel`` with its baseline context.

    Band group columns in ``by`` are carried along with the demographics.
    """
    s = panel.schema
    cols = [s.respondent, s.time, s.age_group, s.sex]
    cols += [c for c in by if c not in cols]
    out = panel.frame[cols].copy()
    pred = np.asarray(adapter.predict(model, panel), dtype=np.float64).reshape(-1)
    if pred.shape[0] != out.shape[0]:
        raise ValueError(
            f"adapter returned {pred.shape[0]} predictions for {out.shape[0]} panel rows",
        )
    out[PREDICTED_COLUMN] = pred
    return out


def group_means(qaly: pd.DataFrame, by: Sequence[str]) -> pd.DataFrame:
    """Mean QALY value per (``by`` groups, qaly_type) across respondents."""
    keys = [*by, "qaly_type"]
    return (
        qaly.groupby(keys, sort=True, observed=True)["value"]
        .mean()
        .reset_index()
    )


def summarize_bands(
    means: pd.DataFrame,
    by: Sequence[str],
    probs: Sequence[float] = QUANTILE_PROBS,
) -> pd.DataFrame:
    """Quantile band per (``by`` groups, qaly_type) across replicates.

    ``means`` holds one row per (replicate, group, qaly_type) with a ``value``
    column, as produced by stacking :func:`group_means` outputs.
    """
    return quantile_frame(means, [*by, "qaly_type"], "value", probs)


def reference_estimates(
    panel: Panel,
    calculator: QALYCalculator,
    by: Sequence[str],
) -> pd.DataFrame:
    """Group-mean QALY summaries computed once on the observed utilities.

    This is the point of comparison for the bootstrap bands; no resampling or
    model fit is involved.
    """
    qaly = calculator.compute(panel.frame, panel.schema, keep=by)
    return group_means(qaly, by).rename(columns={"value": "mean"})


def summaries_from_frame(
    table: pd.DataFrame, probs: Sequence[float] = QUANTILE_PROBS,
) -> list[CoefficientSummary]:
    """Convert a coefficient table to :class:`CoefficientSummary` records."""
    cols = quantile_columns(probs)
    return [
        CoefficientSummary(
            coefficient=str(row["coefficient"]),
            quantiles=dict(zip(probs, (float(row[c]) for c in cols))),
            significant=bool(row["significant"]),
            n=int(row["n"]),
        )
        for _, row in table.iterrows()
    ]


def bands_from_frame(
    table: pd.DataFrame, by: Sequence[str], probs: Sequence[float] = QUANTILE_PROBS,
) -> list[GroupBand]:
    """Convert a band table to :class:`GroupBand` records."""
    cols = quantile_columns(probs)
    return [
        GroupBand(
            group=tuple(row[b] for b in by),
            qaly_type=str(row["qaly_type"]),
            quantiles=dict(zip(probs, (float(row[c]) for c in cols))),
            n=int(row["n"]),
        )
        for _, row in table.iterrows()
    ]
