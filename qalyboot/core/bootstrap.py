"""Cluster-bootstrap replicate execution.

Each replicate resamples respondents, refits the model, and reduces its own
predictions to per-group mean QALY summaries. Replicates share nothing but the
read-only input panel; each draws from its own seed sequence spawned from the
root seed, so outcomes depend only on ``(seed, replicate index)`` and never on
scheduling. Replicates run sequentially or in a process pool.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from qalyboot.core.errors import FitNonConvergence
from qalyboot.core.inference import PREDICTED_COLUMN, group_means, predicted_trajectories
from qalyboot.core.resample import cluster_resample

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from qalyboot.core.panel import Panel
    from qalyboot.models.base import FitAdapter
    from qalyboot.qaly.calculator import QALYCalculator
    from qalyboot.utils.formula import ModelFormula

__all__ = [
    "DEFAULT_BOOTSTRAP_ITERATIONS",
    "DEFAULT_MIN_RETAINED",
    "BootConfig",
    "ReplicateOutcome",
    "ReplicateTask",
    "execute_replicates",
    "filter_replicates",
    "run_replicate",
]

LOGGER = logging.getLogger(__name__)

# Default bootstrap replications
DEFAULT_BOOTSTRAP_ITERATIONS: int = 200
# Fewer retained replicates make the 2.5% / 97.5% quantiles unstable.
DEFAULT_MIN_RETAINED: int = 30


def _env_n_jobs() -> int:
    raw = str(os.environ.get("QALYBOOT_N_JOBS", "")).strip().lower()
    if not raw:
        return 1
    if raw in {"auto", "all", "-1"}:
        return max(1, os.cpu_count() or 1)
    try:
        return max(1, int(raw))
    except ValueError:
        LOGGER.warning("ignoring non-integer QALYBOOT_N_JOBS=%r; running sequentially", raw)
        return 1


@dataclass
class BootConfig:
    """Cluster-bootstrap configuration.

    Notes
    -----
    - ``n_boot`` (N) is the number of replicates; ``resample_size`` (K) is the
      number of respondents drawn per replicate and defaults to the number of
      distinct respondents. The two are independent; K > M is allowed.
    - ``min_retained``: fewer surviving replicates raise
      :class:`~qalyboot.core.errors.InsufficientReplicates`.
    - ``max_failures``: once more replicates than this have been dropped,
      pending replicates are cancelled. Defaults to ``n_boot - min_retained``,
      beyond which the minimum can no longer be met.
    - ``n_jobs``: worker processes; ``None`` reads ``QALYBOOT_N_JOBS``
      (default 1), ``-1`` uses every core.

    Reproducibility:
        * ``seed`` fixes every replicate's random stream; results are identical
          for any ``n_jobs``.

    """

    n_boot: int = DEFAULT_BOOTSTRAP_ITERATIONS
    resample_size: int | None = None
    seed: int | None = None
    min_retained: int = DEFAULT_MIN_RETAINED
    n_jobs: int | None = None
    max_failures: int | None = None

    def __post_init__(self) -> None:
        self.n_boot = _positive_int("n_boot", self.n_boot)
        self.min_retained = _positive_int("min_retained", self.min_retained)
        if self.resample_size is not None:
            self.resample_size = _positive_int("resample_size", self.resample_size)
        if self.max_failures is not None:
            self.max_failures = int(self.max_failures)
            if self.max_failures < 0:
                raise ValueError("max_failures must be non-negative")
        if self.n_jobs is None:
            self.n_jobs = _env_n_jobs()
        elif int(self.n_jobs) == -1:
            self.n_jobs = max(1, os.cpu_count() or 1)
        else:
            self.n_jobs = _positive_int("n_jobs", self.n_jobs)
        if self.min_retained > self.n_boot:
            LOGGER.warning(
                "min_retained=%d exceeds n_boot=%d; the run cannot succeed",
                self.min_retained,
                self.n_boot,
            )

    @property
    def failure_budget(self) -> int:
        if self.max_failures is not None:
            return self.max_failures
        return max(self.n_boot - self.min_retained, 0)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> BootConfig:
        """Build a config from a plain mapping (e.g. parsed JSON or TOML)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"unknown bootstrap option(s): {unknown}; allowed: {sorted(known)}")
        return cls(**dict(options))

    def replace(self, **changes: Any) -> BootConfig:
        return replace(self, **changes)


def _positive_int(name: str, value: Any) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a positive integer; got {value!r}") from exc
    if out <= 0 or out != value:
        raise ValueError(f"{name} must be a positive integer; got {value!r}")
    return out


# ---------------------------------------------------------------------
# Replicate tasks
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class ReplicateTask:
    """Everything one replicate needs; picklable for worker processes."""

    index: int
    seed: np.random.SeedSequence
    panel: Panel
    formula: ModelFormula
    adapter: FitAdapter
    calculator: QALYCalculator
    resample_size: int | None = None
    by: tuple[str, ...] = ("age_group",)


@dataclass(frozen=True)
class ReplicateOutcome:
    """Result of one replicate; the fitted model itself is not kept."""

    index: int
    diagnostics: tuple[str, ...] = ()
    coefficients: pd.Series | None = None
    group_means: pd.DataFrame | None = None
    n_clusters: int = 0

    @property
    def retained(self) -> bool:
        return not self.diagnostics and self.coefficients is not None


def run_replicate(task: ReplicateTask) -> ReplicateOutcome:
    """Resample, fit, predict and reduce one replicate.

    Per-replicate numerical problems are reported through ``diagnostics`` and
    never raised.
    """
    rng = np.random.default_rng(task.seed)
    sample = cluster_resample(task.panel, task.resample_size, rng=rng)
    n_clusters = sample.n_respondents
    fit = task.adapter.fit(sample, task.formula)
    if not fit.accepted:
        diagnostics = tuple(fit.diagnostics) or ("fit failed without diagnostics",)
        return ReplicateOutcome(task.index, diagnostics, n_clusters=n_clusters)
    try:
        traj = predicted_trajectories(task.adapter, fit.model, sample, task.by)
    except (ValueError, np.linalg.LinAlgError) as exc:
        return ReplicateOutcome(
            task.index, (f"prediction failed: {exc}",), n_clusters=n_clusters,
        )
    qaly = task.calculator.compute(
        traj, sample.schema, utility_col=PREDICTED_COLUMN, keep=task.by,
    )
    means = group_means(qaly, task.by)
    return ReplicateOutcome(
        task.index,
        (),
        coefficients=fit.coefficients,
        group_means=means,
        n_clusters=n_clusters,
    )


def execute_replicates(
    tasks: Sequence[ReplicateTask],
    *,
    n_jobs: int = 1,
    failure_budget: int | None = None,
) -> tuple[list[ReplicateOutcome], bool]:
    """Run replicate tasks and return ``(outcomes sorted by index, cancelled)``.

    When more than ``failure_budget`` replicates are dropped, queued work is
    cancelled; every replicate that completed, including those finishing while
    the pool shuts down, is still returned.
    """
    budget = len(tasks) if failure_budget is None else int(failure_budget)
    outcomes: list[ReplicateOutcome] = []
    failures = 0
    cancelled = False

    if n_jobs <= 1 or len(tasks) <= 1:
        for task in tasks:
            out = run_replicate(task)
            outcomes.append(out)
            if not out.retained:
                failures += 1
                if failures > budget:
                    cancelled = True
                    break
    else:
        maxw = max(1, min(int(n_jobs), len(tasks)))
        with ProcessPoolExecutor(max_workers=maxw) as ex:
            futures = [ex.submit(run_replicate, t) for t in tasks]
            collected = set()
            for fut in as_completed(futures):
                collected.add(fut)
                out = fut.result()
                outcomes.append(out)
                if not out.retained:
                    failures += 1
                    if failures > budget:
                        cancelled = True
                        break
            if cancelled:
                # Replicates already running finish; queued ones never start.
                ex.shutdown(wait=True, cancel_futures=True)
                outcomes.extend(
                    f.result() for f in futures
                    if f not in collected and f.done() and not f.cancelled()
                )

    if cancelled:
        LOGGER.warning(
            "failure budget of %d exceeded after %d completed replicate(s); remaining replicates cancelled",
            budget,
            len(outcomes),
        )
    outcomes.sort(key=lambda o: o.index)
    return outcomes, cancelled


def filter_replicates(
    outcomes: Sequence[ReplicateOutcome],
) -> tuple[list[ReplicateOutcome], pd.DataFrame]:
    """Split outcomes into retained replicates and a drop log.

    A replicate is retained only if its fit converged with no diagnostics;
    anything else is dropped whole, never repaired or reweighted.
    """
    retained: list[ReplicateOutcome] = []
    dropped: list[dict[str, Any]] = []
    for out in sorted(outcomes, key=lambda o: o.index):
        if out.retained:
            retained.append(out)
            continue
        cond = FitNonConvergence(out.index, list(out.diagnostics))
        LOGGER.debug("%s", cond)
        dropped.append({
            "replicate": out.index,
            "n_clusters": out.n_clusters,
            "diagnostics": "; ".join(cond.diagnostics),
        })
    LOGGER.info(
        "bootstrap filter: %d retained, %d dropped of %d completed replicate(s)",
        len(retained),
        len(dropped),
        len(outcomes),
    )
    drop_log = pd.DataFrame(dropped, columns=["replicate", "n_clusters", "diagnostics"])
    return retained, drop_log
