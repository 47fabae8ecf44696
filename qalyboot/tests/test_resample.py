import numpy as np
import pandas as pd
import pytest

from qalyboot.core.errors import EmptyPanel
from qalyboot.core.panel import Panel
from qalyboot.core.resample import (
    SOURCE_COLUMN,
    cluster_resample,
    draw_clusters,
    replicate_seeds,
)


@pytest.mark.parametrize("K", [1, 2, 3, 7, 20])
def test_returns_exactly_k_clusters(toy_frame, rng, K):
    # K may be smaller than, equal to, or larger than M = 3
    p = Panel(toy_frame)
    out = cluster_resample(p, K, rng=rng)
    ids = np.sort(out.frame["respondent_id"].unique())
    assert out.n_respondents == K
    assert ids.tolist() == list(range(1, K + 1))


def test_default_size_is_distinct_respondents(small_panel, rng):
    out = cluster_resample(small_panel, rng=rng)
    assert out.n_respondents == small_panel.n_respondents


def test_clusters_carry_all_source_records(toy_frame, rng):
    p = Panel(toy_frame)
    out = cluster_resample(p, 10, rng=rng)
    counts = toy_frame.groupby("respondent_id").size()
    for cid, grp in out.frame.groupby("respondent_id"):
        src = grp[SOURCE_COLUMN].unique()
        assert len(src) == 1
        assert grp.shape[0] == counts[src[0]]
        orig = toy_frame[toy_frame["respondent_id"] == src[0]].sort_values("survey_id")
        assert np.allclose(grp.sort_values("survey_id")["utility"].to_numpy(), orig["utility"].to_numpy())


def test_duplicated_respondent_becomes_distinct_clusters(toy_frame):
    p = Panel(toy_frame)
    # 20 draws from 3 respondents must repeat someone
    out = cluster_resample(p, 20, rng=np.random.default_rng(0))
    by_source = out.frame.groupby(SOURCE_COLUMN)["respondent_id"].nunique()
    assert by_source.max() > 1
    assert not out.frame.duplicated(["respondent_id", "survey_id"]).any()


def test_source_panel_untouched(toy_frame, rng):
    p = Panel(toy_frame)
    before = p.frame.copy()
    cluster_resample(p, 5, rng=rng)
    pd.testing.assert_frame_equal(p.frame, before)


def test_same_seed_same_draws(small_panel):
    s1 = replicate_seeds(99, 3)
    s2 = replicate_seeds(99, 3)
    for a, b in zip(s1, s2):
        f1 = cluster_resample(small_panel, rng=np.random.default_rng(a)).frame
        f2 = cluster_resample(small_panel, rng=np.random.default_rng(b)).frame
        pd.testing.assert_frame_equal(f1, f2)


def test_replicate_streams_differ():
    s = replicate_seeds(1, 2)
    d0 = draw_clusters(100, 50, rng=np.random.default_rng(s[0]))
    d1 = draw_clusters(100, 50, rng=np.random.default_rng(s[1]))
    assert not np.array_equal(d0, d1)


def test_invalid_sizes():
    with pytest.raises(ValueError, match="positive"):
        draw_clusters(5, 0, rng=np.random.default_rng(0))
    with pytest.raises(EmptyPanel):
        draw_clusters(0, 5, rng=np.random.default_rng(0))
    with pytest.raises(ValueError):
        replicate_seeds(1, 0)
