"""Bootstrap uncertainty pipeline for longitudinal utility panels.

:class:`QALYBootstrap` wires the pieces together:

    Panel -> cluster resample -> fit (x N, independent) -> filter
          -> {coefficient quantiles, group QALY bands}

plus a reference point estimate computed once on the observed panel.
"""

# qalyboot/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pandas as pd

from qalyboot.core.bootstrap import (
    BootConfig,
    ReplicateTask,
    execute_replicates,
    filter_replicates,
)
from qalyboot.core.errors import InsufficientReplicates
from qalyboot.core.inference import (
    CoefficientSummary,
    GroupBand,
    bands_from_frame,
    coefficient_samples,
    reference_estimates,
    summaries_from_frame,
    summarize_bands,
    summarize_coefficients,
)
from qalyboot.core.quantiles import QUANTILE_PROBS
from qalyboot.core.resample import replicate_seeds
from qalyboot.models.mixedlm import MixedLMAdapter
from qalyboot.qaly.calculator import QALYCalculator
from qalyboot.utils.formula import DEFAULT_FORMULA, ModelFormula

if TYPE_CHECKING:
    from collections.abc import Hashable, Sequence

    from qalyboot.core.bootstrap import ReplicateOutcome
    from qalyboot.core.panel import Panel
    from qalyboot.models.base import FitAdapter

__all__ = ["BootstrapResult", "QALYBootstrap"]

LOGGER = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    """Container for bootstrap summaries.

    ``coefficients``
        One row per non-intercept fixed effect: ``coefficient``, ``n``, the
        five quantile columns and ``significant``.
    ``bands``
        One row per (group, qaly_type): group columns, ``qaly_type``, ``n`` and
        the five quantile columns.
    ``reference``
        Group-mean QALY summaries of the observed panel (column ``mean``).
    ``drop_log``
        Dropped replicates with their diagnostics.
    """

    coefficients: pd.DataFrame
    bands: pd.DataFrame
    reference: pd.DataFrame
    n_requested: int
    n_retained: int
    drop_log: pd.DataFrame
    by: tuple[str, ...] = ("age_group",)
    model_info: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (
            f"BootstrapResult(retained={self.n_retained}/{self.n_requested}, "
            f"coefficients={len(self.coefficients)}, bands={len(self.bands)})"
        )

    @property
    def n_dropped(self) -> int:
        return int(self.drop_log.shape[0])

    @property
    def quantile_probs(self) -> tuple[float, ...]:
        return QUANTILE_PROBS

    def coefficient_summaries(self) -> list[CoefficientSummary]:
        return summaries_from_frame(self.coefficients)

    def group_bands(self) -> list[GroupBand]:
        return bands_from_frame(self.bands, self.by)


class QALYBootstrap:
    """Cluster-bootstrap uncertainty for a mixed model of utility over time.

    Parameters
    ----------
    panel : Panel
        Validated input panel; never modified.
    formula : str
        Model specification in lme4-style notation; the bar term's grouping
        column must be the panel's respondent column, which carries synthetic
        cluster ids after resampling.
    baseline : hashable
        Time-point key against which vs-baseline QALY losses are computed.
    adapter : FitAdapter, optional
        Fitting routine; defaults to :class:`MixedLMAdapter`.
    calculator : QALYCalculator, optional
        QALY collaborator; defaults to ``QALYCalculator(baseline)``.
    by : sequence of str, optional
        Group columns of the QALY bands; defaults to the panel's age group. Each
        column must be constant within a respondent.

    """

    def __init__(
        self,
        panel: Panel,
        formula: str = DEFAULT_FORMULA,
        *,
        baseline: Hashable,
        adapter: FitAdapter | None = None,
        calculator: QALYCalculator | None = None,
        by: Sequence[str] | None = None,
    ) -> None:
        self.panel = panel
        s = panel.schema
        self.formula = ModelFormula.parse(formula, default_group=s.respondent)
        if self.formula.group != s.respondent:
            msg = (
                f"random-effects grouping column {self.formula.group!r} must be the "
                f"respondent column {s.respondent!r}, which holds cluster ids after resampling"
            )
            raise ValueError(msg)
        self.formula.check_columns(panel.frame)
        self.baseline = baseline
        if baseline not in set(panel.time_points.tolist()):
            raise ValueError(f"baseline time point {baseline!r} does not occur in the panel")
        self.adapter = adapter if adapter is not None else MixedLMAdapter()
        self.calculator = calculator if calculator is not None else QALYCalculator(baseline)
        if self.calculator.baseline != baseline:
            raise ValueError("calculator baseline differs from the pipeline baseline")
        self.by = tuple(by) if by is not None else (s.age_group,)
        missing = [c for c in self.by if c not in panel.frame.columns]
        if missing:
            raise ValueError(f"band group column(s) not found in panel: {missing}")
        varying = panel.frame.groupby(s.respondent, sort=False)[list(self.by)].nunique().max()
        varying = varying[varying > 1].index.tolist()
        if varying:
            raise ValueError(f"band group column(s) vary within respondents: {varying}")
        self.outcomes_: list[ReplicateOutcome] = []

    def fit(self, boot: BootConfig | None = None) -> BootstrapResult:
        """Run the bootstrap and reduce retained replicates.

        Raises
        ------
        InsufficientReplicates
            If fewer than ``boot.min_retained`` replicates survive; completed
            outcomes remain available in ``self.outcomes_``.
        DegenerateQuantileInput
            If a coefficient or group has fewer than two retained values.

        """
        boot = boot if boot is not None else BootConfig()
        reference = reference_estimates(self.panel, self.calculator, self.by)
        self._warn_missing_baseline()

        seeds = replicate_seeds(boot.seed, boot.n_boot)
        tasks = [
            ReplicateTask(
                index=b + 1,
                seed=seeds[b],
                panel=self.panel,
                formula=self.formula,
                adapter=self.adapter,
                calculator=self.calculator,
                resample_size=boot.resample_size,
                by=self.by,
            )
            for b in range(boot.n_boot)
        ]
        LOGGER.info(
            "running %d bootstrap replicate(s) of %d respondent(s) with n_jobs=%d",
            boot.n_boot,
            boot.resample_size or self.panel.n_respondents,
            boot.n_jobs,
        )
        outcomes, cancelled = execute_replicates(
            tasks, n_jobs=int(boot.n_jobs), failure_budget=boot.failure_budget,
        )
        self.outcomes_ = outcomes
        retained, drop_log = filter_replicates(outcomes)
        # A cancelled run never yields bands, even if enough replicates finished.
        if cancelled or len(retained) < boot.min_retained:
            raise InsufficientReplicates(len(retained), boot.min_retained, boot.n_boot)

        samples = coefficient_samples({o.index: o.coefficients for o in retained})
        coefficients = summarize_coefficients(
            samples, intercept_names=self.adapter.intercept_names,
        )
        means = pd.concat(
            [o.group_means.assign(replicate=o.index) for o in retained],
            ignore_index=True,
        )
        bands = summarize_bands(means, self.by)

        return BootstrapResult(
            coefficients=coefficients,
            bands=bands,
            reference=reference,
            n_requested=boot.n_boot,
            n_retained=len(retained),
            drop_log=drop_log,
            by=self.by,
            model_info={
                "formula": self.formula.spec,
                "adapter": type(self.adapter).__name__,
                "baseline": self.baseline,
                "seed": boot.seed,
                "resample_size": boot.resample_size or self.panel.n_respondents,
                "n_respondents": self.panel.n_respondents,
                "n_jobs": boot.n_jobs,
                "cancelled": cancelled,
            },
        )

    def _warn_missing_baseline(self) -> None:
        s = self.panel.schema
        frame = self.panel.frame
        has_base = frame.loc[frame[s.time] == self.baseline, s.respondent].nunique()
        lacking = self.panel.n_respondents - int(has_base)
        if lacking and "vs-baseline" in self.calculator.types:
            LOGGER.warning(
                "%d respondent(s) lack a baseline observation (%r); excluded from vs-baseline QALYs",
                lacking,
                self.baseline,
            )
