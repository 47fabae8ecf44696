from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path.

    Tests live inside the `qalyboot` package, so pytest may choose
    `.../qalyboot` as its rootdir. In that case, importing the top-level
    package `qalyboot` fails unless the parent directory is on `sys.path`.
    """

    repo_root = Path(__file__).resolve().parents[2]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def toy_frame() -> pd.DataFrame:
    """Three respondents, three time points, hand-checkable utilities."""
    return pd.DataFrame(
        {
            "respondent_id": ["a", "a", "a", "b", "b", "b", "c", "c"],
            "survey_id": [1, 2, 3, 1, 2, 3, 2, 3],
            "age_group": ["18-39"] * 3 + ["60+"] * 3 + ["18-39"] * 2,
            "sex": ["F"] * 3 + ["M"] * 3 + ["M"] * 2,
            "utility": [0.8, 0.6, 0.8, 1.0, 0.5, 0.7, 0.4, 0.9],
            "acute": [False, True, False, False, True, False, True, False],
        },
    )


@pytest.fixture
def small_panel():
    from qalyboot.sim.simulate import simulate_panel

    return simulate_panel(n_respondents=40, n_timepoints=4, seed=11)
