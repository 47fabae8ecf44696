import numpy as np
import pandas as pd
import pytest

from qalyboot.core.panel import PanelSchema
from qalyboot.qaly.calculator import QALY_TYPES, QALYCalculator


def _by(out, rid, kind):
    row = out[(out["respondent_id"] == rid) & (out["qaly_type"] == kind)]
    assert row.shape[0] == 1
    return float(row["value"].iloc[0])


def test_trapezoid_by_hand(toy_frame):
    calc = QALYCalculator(baseline=1, times={1: 0.0, 2: 1.0, 3: 2.0})
    out = calc.compute(toy_frame, PanelSchema())
    # a: u = 0.8, 0.6, 0.8 at 0, 1, 2 years
    assert _by(out, "a", "raw") == pytest.approx(1.4)
    assert _by(out, "a", "vs-full-health") == pytest.approx(0.6)
    assert _by(out, "a", "vs-baseline") == pytest.approx(0.2)
    # b: u0 = 1.0 -> losses 0, 0.5, 0.3
    assert _by(out, "b", "vs-baseline") == pytest.approx(0.25 + 0.4)


def test_missing_baseline_excluded_from_relative_only(toy_frame):
    calc = QALYCalculator(baseline=1, times={1: 0.0, 2: 1.0, 3: 2.0})
    out = calc.compute(toy_frame, PanelSchema())
    c = out[out["respondent_id"] == "c"]
    assert sorted(c["qaly_type"]) == ["raw", "vs-full-health"]
    # c observed from year 1 to year 2 only
    assert _by(out, "c", "raw") == pytest.approx(0.65)


def test_result_columns_and_demographics(toy_frame):
    out = QALYCalculator(baseline=1).compute(toy_frame, PanelSchema())
    assert list(out.columns) == ["respondent_id", "age_group", "sex", "qaly_type", "value"]
    assert set(out["qaly_type"]) == set(QALY_TYPES)
    b = out[out["respondent_id"] == "b"]
    assert (b["age_group"] == "60+").all()
    assert (b["sex"] == "M").all()


def test_numeric_keys_scaled_by_period(toy_frame):
    yearly = QALYCalculator(baseline=1).compute(toy_frame, PanelSchema())
    monthly = QALYCalculator(baseline=1, period_years=1.0 / 12.0).compute(toy_frame, PanelSchema())
    assert np.allclose(monthly["value"].to_numpy() * 12.0, yearly["value"].to_numpy())


def test_unordered_rows_give_same_result(toy_frame):
    calc = QALYCalculator(baseline=1)
    a = calc.compute(toy_frame, PanelSchema())
    b = calc.compute(toy_frame.sample(frac=1.0, random_state=3), PanelSchema())
    pd.testing.assert_frame_equal(a, b)


def test_alternative_utility_column(toy_frame):
    toy_frame["predicted"] = 1.0
    out = QALYCalculator(baseline=1, types=("vs-full-health",)).compute(
        toy_frame, PanelSchema(), utility_col="predicted",
    )
    assert np.allclose(out["value"].to_numpy(), 0.0)


def test_non_numeric_keys_need_mapping(toy_frame):
    toy_frame["survey_id"] = toy_frame["survey_id"].map({1: "w1", 2: "w2", 3: "w3"})
    with pytest.raises(ValueError, match="times"):
        QALYCalculator(baseline="w1").compute(toy_frame, PanelSchema())
    calc = QALYCalculator(baseline="w1", times={"w1": 0.0, "w2": 0.5, "w3": 1.0})
    out = calc.compute(toy_frame, PanelSchema())
    assert _by(out, "a", "raw") == pytest.approx(0.7)


def test_unmapped_time_point(toy_frame):
    calc = QALYCalculator(baseline=1, times={1: 0.0, 2: 1.0})
    with pytest.raises(ValueError, match="no time in years"):
        calc.compute(toy_frame, PanelSchema())


def test_invalid_configuration():
    with pytest.raises(ValueError, match="unknown QALY type"):
        QALYCalculator(baseline=1, types=("daly",))
    with pytest.raises(ValueError, match="period_years"):
        QALYCalculator(baseline=1, period_years=0.0)


def test_works_on_panel_frame(small_panel):
    out = QALYCalculator(baseline=1)(small_panel.frame, small_panel.schema)
    assert out.shape[0] == 3 * small_panel.n_respondents


def test_keep_carries_respondent_level_columns(toy_frame):
    toy_frame["region"] = toy_frame["respondent_id"].map({"a": "x", "b": "y", "c": "x"})
    out = QALYCalculator(baseline=1).compute(toy_frame, PanelSchema(), keep=["region", "sex"])
    assert list(out.columns) == ["respondent_id", "age_group", "sex", "region", "qaly_type", "value"]
    assert out.loc[out["respondent_id"] == "b", "region"].eq("y").all()
