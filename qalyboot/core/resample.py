"""Respondent-level (cluster) resampling.

Whole respondents are drawn with replacement, carrying all of their
longitudinal records. Each draw is assigned a fresh synthetic cluster id so a
respondent drawn twice enters the mixed model as two independent clusters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from qalyboot.core.errors import EmptyPanel
from qalyboot.core.panel import Panel

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
    "SOURCE_COLUMN",
    "cluster_resample",
    "draw_clusters",
    "replicate_seeds",
]

# Column holding the original respondent id of every resampled record.
SOURCE_COLUMN = "source_respondent"


def replicate_seeds(seed: int | None, n_boot: int) -> list[np.random.SeedSequence]:
    """Derive one independent seed sequence per replicate from a root seed.

    Replicate ``b`` always receives the ``b``-th spawned child, so its random
    stream depends only on ``(seed, b)`` and not on execution order.
    """
    n = int(n_boot)
    if n <= 0:
        raise ValueError("n_boot must be a positive integer")
    return np.random.SeedSequence(seed).spawn(n)


def draw_clusters(
    n_respondents: int, size: int, *, rng: np.random.Generator,
) -> NDArray[np.int64]:
    """Draw ``size`` respondent positions uniformly with replacement from ``n_respondents``."""
    M = int(n_respondents)
    K = int(size)
    if M <= 0:
        raise EmptyPanel("cannot resample from zero respondents")
    if K <= 0:
        raise ValueError("resample size must be a positive integer")
    return rng.integers(0, M, size=K, dtype=np.int64)


def cluster_resample(
    panel: Panel,
    size: int | None = None,
    *,
    rng: np.random.Generator,
) -> Panel:
    """Return a cluster-bootstrap sample of ``panel``.

    Parameters
    ----------
    panel : Panel
        Source panel; left untouched.
    size : int, optional
        Number of respondents to draw (K). Defaults to the number of distinct
        respondents (M). K may exceed M.
    rng : numpy.random.Generator
        Replicate-owned random stream.

    Returns
    -------
    Panel
        Records of the drawn respondents, with the respondent column replaced
        by synthetic cluster ids ``1..K`` and the original id kept in
        :data:`SOURCE_COLUMN`.

    """
    s = panel.schema
    ids = panel.respondents
    K = ids.size if size is None else int(size)
    draws = draw_clusters(ids.size, K, rng=rng)

    rows = panel.respondent_rows()
    blocks = [rows[ids[d]] for d in draws]
    lengths = np.fromiter((b.size for b in blocks), dtype=np.int64, count=K)
    take = np.concatenate(blocks)

    out = panel.frame.iloc[take].reset_index(drop=True)
    out[SOURCE_COLUMN] = out[s.respondent].to_numpy()
    out[s.respondent] = np.repeat(np.arange(1, K + 1, dtype=np.int64), lengths)
    return Panel(out, schema=s)
