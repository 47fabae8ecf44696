"""Synthetic utility panels for smoke tests and demonstrations.

Panels are generated from a random-intercept, random-acute-slope model with a
known linear time trend so that bootstrap output can be checked against truth.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from qalyboot.core.panel import Panel, PanelSchema

__all__ = ["AGE_GROUPS", "simulate_panel", "true_time_effects"]

AGE_GROUPS: tuple[str, ...] = ("18-39", "40-59", "60+")


def true_time_effects(n_timepoints: int, trend: float) -> dict[int, float]:
    """Generating effect of each non-baseline time point relative to time point 1."""
    return {t: trend * (t - 1) for t in range(2, n_timepoints + 1)}


def simulate_panel(  # noqa: PLR0913
    n_respondents: int = 200,
    n_timepoints: int = 6,
    *,
    trend: float = -0.03,
    intercept: float = 0.85,
    acute_shift: float = -0.15,
    sd_intercept: float = 0.08,
    sd_acute: float = 0.05,
    sd_noise: float = 0.03,
    acute_timepoint: int | None = 2,
    seed: int | None = 42,
) -> Panel:
    """Simulate a balanced respondent x time-point panel.

    Utility of respondent ``i`` at time point ``t`` (1-based)::

        u_it = intercept + trend*(t-1) + age/sex shifts
               + b0_i + (acute_shift + b1_i)*acute_it + e_it

    capped at 1. Time point 1 is the natural baseline.
    """
    rng = np.random.default_rng(seed)
    n, T = int(n_respondents), int(n_timepoints)
    ids = np.arange(1, n + 1)
    age = rng.choice(np.array(AGE_GROUPS), size=n)
    sex = rng.choice(np.array(["F", "M"]), size=n)
    age_shift = {"18-39": 0.02, "40-59": 0.0, "60+": -0.04}
    b0 = rng.normal(0.0, sd_intercept, size=n)
    b1 = rng.normal(0.0, sd_acute, size=n)

    rid = np.repeat(ids, T)
    t = np.tile(np.arange(1, T + 1), n)
    acute = t == acute_timepoint if acute_timepoint is not None else np.zeros(n * T, dtype=bool)
    idx = rid - 1
    mean = (
        intercept
        + trend * (t - 1)
        + np.array([age_shift[a] for a in age])[idx]
        + np.where(sex[idx] == "M", 0.01, 0.0)
        + b0[idx]
        + (acute_shift + b1[idx]) * acute
    )
    util = np.minimum(mean + rng.normal(0.0, sd_noise, size=n * T), 1.0)
    frame = pd.DataFrame({
        "respondent_id": rid,
        "survey_id": t,
        "age_group": age[idx],
        "sex": sex[idx],
        "utility": util,
        "acute": acute,
    })
    return Panel(frame, schema=PanelSchema())
