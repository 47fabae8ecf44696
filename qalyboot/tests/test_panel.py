import numpy as np
import pandas as pd
import pytest

from qalyboot.core.errors import (
    DuplicateObservation,
    EmptyPanel,
    PanelError,
    UnknownRespondent,
)
from qalyboot.core.panel import Panel, PanelSchema, mark_acute_period

# ---------------------------------------------------------------------
# Construction and invariants
# ---------------------------------------------------------------------


def test_panel_accessors(toy_frame):
    p = Panel(toy_frame)
    assert len(p) == 8
    assert p.n_respondents == 3
    assert list(p.respondents) == ["a", "b", "c"]
    assert list(p.time_points) == [1, 2, 3]
    rows = p.respondent_rows()
    assert sorted(rows["c"].tolist()) == [6, 7]
    demo = p.respondent_demographics()
    assert demo["respondent_id"].tolist() == ["a", "b", "c"]
    assert demo["sex"].tolist() == ["F", "M", "M"]


def test_panel_copies_input(toy_frame):
    p = Panel(toy_frame)
    toy_frame.loc[0, "utility"] = -5.0
    assert p.frame.loc[0, "utility"] == pytest.approx(0.8)


def test_empty_panel():
    with pytest.raises(EmptyPanel):
        Panel(pd.DataFrame(columns=PanelSchema().columns))


def test_missing_column(toy_frame):
    with pytest.raises(PanelError, match="missing required column"):
        Panel(toy_frame.drop(columns=["acute"]))


def test_duplicate_observation_is_value_error(toy_frame):
    bad = pd.concat([toy_frame, toy_frame.iloc[[0]]], ignore_index=True)
    with pytest.raises(DuplicateObservation):
        Panel(bad)
    with pytest.raises(ValueError):
        Panel(bad)


def test_utility_above_full_health(toy_frame):
    toy_frame.loc[1, "utility"] = 1.2
    with pytest.raises(PanelError, match="must not exceed 1"):
        Panel(toy_frame)


def test_nonfinite_utility(toy_frame):
    toy_frame.loc[1, "utility"] = float("nan")
    with pytest.raises(PanelError, match="NA/NaN/Inf"):
        Panel(toy_frame)


def test_negative_utility_allowed(toy_frame):
    toy_frame.loc[1, "utility"] = -0.3
    p = Panel(toy_frame)
    assert p.frame["utility"].min() == pytest.approx(-0.3)


def test_missing_demographics(toy_frame):
    toy_frame.loc[toy_frame["respondent_id"] == "b", "sex"] = None
    with pytest.raises(UnknownRespondent) as info:
        Panel(toy_frame)
    assert info.value.respondents == ["b"]


def test_inconsistent_demographics(toy_frame):
    toy_frame.loc[0, "age_group"] = "40-59"
    with pytest.raises(UnknownRespondent, match="inconsistent"):
        Panel(toy_frame)


# ---------------------------------------------------------------------
# Demographics join and raw responses
# ---------------------------------------------------------------------


def test_demographics_table_is_authoritative(toy_frame):
    demo = pd.DataFrame(
        {"respondent_id": ["a", "b", "c"], "age_group": ["40-59", "60+", "18-39"], "sex": ["F", "M", "F"]},
    )
    p = Panel(toy_frame.drop(columns=["age_group", "sex"]), demographics=demo)
    got = p.respondent_demographics().set_index("respondent_id")
    assert got.loc["a", "age_group"] == "40-59"
    assert got.loc["c", "sex"] == "F"


def test_demographics_unknown_respondent(toy_frame):
    demo = pd.DataFrame({"age_group": ["18-39"], "sex": ["F"]}, index=pd.Index(["a"], name="respondent_id"))
    with pytest.raises(UnknownRespondent) as info:
        Panel(toy_frame, demographics=demo)
    assert sorted(info.value.respondents) == ["b", "c"]


def test_from_responses_uses_mapper(toy_frame):
    raw = toy_frame.drop(columns=["utility"]).assign(mo=1, sc=1, ua=1, pd_=1, ad=1)

    def mapper(df):
        out = df.copy()
        out["utility"] = 1.0 - 0.05 * (df["mo"] + df["sc"])
        return out

    p = Panel.from_responses(raw, mapper)
    assert np.allclose(p.frame["utility"].to_numpy(), 0.9)


def test_from_responses_rejects_non_frame(toy_frame):
    with pytest.raises(TypeError):
        Panel.from_responses(toy_frame, lambda df: df.to_numpy())


def test_custom_schema(toy_frame):
    schema = PanelSchema(respondent="pid", utility="eq5d")
    frame = toy_frame.rename(columns={"respondent_id": "pid", "utility": "eq5d"})
    p = Panel(frame, schema=schema)
    assert p.n_respondents == 3


def test_mark_acute_period(toy_frame):
    out = mark_acute_period(toy_frame.drop(columns=["acute"]), 2)
    assert out["acute"].tolist() == (out["survey_id"] == 2).tolist()
    assert "acute" not in toy_frame.drop(columns=["acute"]).columns
