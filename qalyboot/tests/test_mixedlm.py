import numpy as np
import pandas as pd
import pytest

pytest.importorskip("statsmodels")

from qalyboot import BootConfig, QALYBootstrap
from qalyboot.models.base import Converged, Failed
from qalyboot.models.mixedlm import MixedLMAdapter, boundary_diagnostics
from qalyboot.sim.simulate import simulate_panel, true_time_effects
from qalyboot.utils.formula import DEFAULT_FORMULA, ModelFormula


@pytest.fixture(scope="module")
def mixed_panel():
    return simulate_panel(n_respondents=80, n_timepoints=4, seed=21)


# ---------------------------------------------------------------------
# Boundary rule
# ---------------------------------------------------------------------


def test_boundary_is_relative_to_residual_variance():
    # small in absolute terms, large against a residual variance of 1e-4
    assert boundary_diagnostics(np.array([[0.0015]]), 1e-4, 1e-4) == []
    cov = pd.DataFrame(
        np.diag([0.0015, 1e-12]),
        index=["Group", "acute[T.True]"],
        columns=["Group", "acute[T.True]"],
    )
    out = boundary_diagnostics(cov, 1e-4, 1e-4)
    assert len(out) == 1
    assert "acute[T.True]" in out[0]


def test_boundary_flags_degenerate_scale():
    assert boundary_diagnostics(np.array([[0.01]]), 0.0, 1e-4)
    assert boundary_diagnostics(np.array([[np.nan]]), 1e-4, 1e-4)


# ---------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------


def test_fit_default_formula(mixed_panel):
    formula = ModelFormula.parse(DEFAULT_FORMULA, default_group="respondent_id")
    res = MixedLMAdapter().fit(mixed_panel, formula)
    assert isinstance(res, Converged)
    # utility-scale variances are far below 0.01 but well away from zero
    assert res.accepted, res.diagnostics
    assert "Intercept" in res.coefficients.index
    assert "C(survey_id)[T.3]" in res.coefficients.index
    assert not any("Var" in str(k) for k in res.coefficients.index)


def test_unconverged_fit_is_not_accepted(mixed_panel):
    formula = ModelFormula.parse(DEFAULT_FORMULA, default_group="respondent_id")
    res = MixedLMAdapter(maxiter=1).fit(mixed_panel, formula)
    assert not res.accepted
    assert res.diagnostics


def test_predict_with_and_without_random_effects(mixed_panel):
    formula = ModelFormula.parse(DEFAULT_FORMULA, default_group="respondent_id")
    adapter = MixedLMAdapter()
    res = adapter.fit(mixed_panel, formula)
    full = adapter.predict(res.model, mixed_panel)
    fixed = MixedLMAdapter(include_random=False).predict(res.model, mixed_panel)
    assert full.shape == (len(mixed_panel),)
    assert fixed.shape == (len(mixed_panel),)
    y = mixed_panel.frame["utility"].to_numpy()
    # conditional predictions track respondents better than the population curve
    assert np.mean((y - full) ** 2) < np.mean((y - fixed) ** 2)


def test_fit_failure_is_reported(mixed_panel):
    formula = ModelFormula.parse("utility ~ income + (1 | respondent_id)")
    res = MixedLMAdapter().fit(mixed_panel, formula)
    assert isinstance(res, Failed)
    assert not res.accepted
    assert res.diagnostics


# ---------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------


def test_default_pipeline_retains_replicates():
    panel = simulate_panel(n_respondents=60, n_timepoints=4, seed=3)
    res = QALYBootstrap(panel, baseline=1).fit(BootConfig(n_boot=40, seed=5, n_jobs=1))
    assert res.n_retained >= 30
    assert res.n_retained + res.n_dropped == 40
    assert res.model_info["adapter"] == "MixedLMAdapter"
    assert not res.bands.empty


def test_recovers_known_time_effects():
    # 5 respondents x 6 time points, repeated over simulation seeds
    sd_noise = 0.01
    truth = true_time_effects(6, -0.05)
    # sampling sd of a time contrast averaged over 5 respondents
    half_width = 1.96 * sd_noise * np.sqrt(2.0 / 5.0)
    near, covered, checks = 0, 0, 0
    for seed in range(1, 21):
        panel = simulate_panel(
            5,
            6,
            trend=-0.05,
            intercept=0.7,
            sd_intercept=0.1,
            sd_acute=0.0,
            sd_noise=sd_noise,
            acute_timepoint=None,
            seed=seed,
        )
        pipe = QALYBootstrap(
            panel,
            "utility ~ C(survey_id) + (1 | respondent_id)",
            baseline=1,
            adapter=MixedLMAdapter(),
        )
        res = pipe.fit(BootConfig(n_boot=50, seed=seed, n_jobs=1))
        table = res.coefficients.set_index("coefficient")
        for t, effect in truth.items():
            row = table.loc[f"C(survey_id)[T.{t}]"]
            checks += 1
            near += abs(row["q0.5"] - effect) <= half_width
            covered += row["q0.025"] <= effect <= row["q0.975"]
            assert bool(row["significant"])
    assert near / checks >= 0.9
    # percentile bands from 5 clusters are narrower than nominal (about 85%)
    assert covered / checks >= 0.6
