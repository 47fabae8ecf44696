"""Empirical quantile summaries of bootstrap distributions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from qalyboot.core.errors import DegenerateQuantileInput

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from numpy.typing import NDArray

__all__ = [
    "QUANTILE_PROBS",
    "empirical_quantiles",
    "quantile_columns",
    "quantile_frame",
    "sign_consistent",
]

QUANTILE_PROBS: tuple[float, ...] = (0.025, 0.25, 0.5, 0.75, 0.975)


def quantile_columns(probs: Sequence[float] = QUANTILE_PROBS) -> list[str]:
    """Column labels for a quantile map, e.g. ``q0.025``."""
    return [f"q{p:g}" for p in probs]


def empirical_quantiles(
    values: Iterable[float] | NDArray[np.float64],
    probs: Sequence[float] = QUANTILE_PROBS,
    *,
    label: Any = None,
) -> NDArray[np.float64]:
    """Compute linearly interpolated empirical quantiles (Hyndman-Fan type 7).

    The values are sorted before interpolation, so the result depends only on
    the multiset of inputs and not on their order.

    Raises
    ------
    DegenerateQuantileInput
        If fewer than two values are supplied.
    ValueError
        If any value is non-finite or a probability lies outside [0, 1].

    """
    raw = values if isinstance(values, np.ndarray) else list(values)
    arr = np.sort(np.asarray(raw, dtype=np.float64).ravel())
    if arr.size < 2:
        raise DegenerateQuantileInput(label, int(arr.size))
    if not np.all(np.isfinite(arr)):
        raise ValueError(
            f"Non-finite bootstrap values detected for {label!r}. "
            "This indicates numerical failure or an upstream bug.",
        )
    p = np.asarray(probs, dtype=np.float64)
    if np.any((p < 0.0) | (p > 1.0)):
        raise ValueError("quantile probabilities must lie in [0, 1]")
    h = (arr.size - 1) * p
    lo = np.floor(h).astype(np.int64)
    hi = np.minimum(lo + 1, arr.size - 1)
    frac = h - lo
    return arr[lo] + frac * (arr[hi] - arr[lo])


def sign_consistent(quantiles: Sequence[float] | NDArray[np.float64]) -> bool:
    """Return True when every quantile is strictly positive or every one strictly negative.

    This is a heuristic zero-exclusion check on the bootstrap distribution, not
    a hypothesis test; it carries no p-value interpretation.
    """
    q = np.asarray(quantiles, dtype=np.float64)
    if q.size == 0:
        return False
    return bool(np.all(q > 0.0) or np.all(q < 0.0))


def quantile_frame(
    draws: pd.DataFrame,
    by: Sequence[str],
    value: str,
    probs: Sequence[float] = QUANTILE_PROBS,
) -> pd.DataFrame:
    """Reduce long-format bootstrap draws to one quantile row per ``by`` group.

    ``draws`` holds one row per (replicate, group); the returned frame has the
    ``by`` columns, an ``n`` column (number of replicates), and one column per
    probability.
    """
    cols = quantile_columns(probs)
    rows: list[dict[str, Any]] = []
    for key, grp in draws.groupby(list(by), sort=True, observed=True):
        key_t = key if isinstance(key, tuple) else (key,)
        label = key_t[0] if len(key_t) == 1 else key_t
        q = empirical_quantiles(grp[value].to_numpy(dtype=np.float64), probs, label=label)
        row = dict(zip(by, key_t))
        row["n"] = int(grp.shape[0])
        row.update(zip(cols, q.tolist()))
        rows.append(row)
    return pd.DataFrame(rows, columns=[*by, "n", *cols])
