import numpy as np
import pandas as pd
import pytest

from qalyboot.utils.formula import DEFAULT_FORMULA, ModelFormula


def _toy_df() -> pd.DataFrame:
    n = 10
    return pd.DataFrame(
        {
            "respondent_id": np.repeat(np.arange(5), 2),
            "survey_id": np.tile([1, 2], 5),
            "sex": ["F", "M"] * 5,
            "age_group": ["18-39"] * 6 + ["60+"] * 4,
            "utility": np.linspace(0.5, 0.9, n),
            "acute": np.tile([False, True], 5),
        },
    )


def test_default_formula_parts() -> None:
    f = ModelFormula.parse(DEFAULT_FORMULA)
    assert f.fixed == "utility ~ C(survey_id) + sex * age_group"
    assert f.re_formula == "~1 + acute"
    assert f.group == "respondent_id"
    assert f.response == "utility"
    assert f.has_random_slope


def test_bar_term_in_middle() -> None:
    f = ModelFormula.parse("utility ~ (1 | pid) + C(survey_id)")
    assert f.fixed == "utility ~ C(survey_id)"
    assert f.group == "pid"
    assert f.re_formula == "~1"
    assert not f.has_random_slope


def test_no_bar_uses_default_group() -> None:
    f = ModelFormula.parse("utility ~ C(survey_id)", default_group="respondent_id")
    assert f.group == "respondent_id"
    assert f.re_formula == "~1"


def test_intercept_only_fixed_part() -> None:
    f = ModelFormula.parse("utility ~ (1 + acute | respondent_id)")
    assert f.fixed == "utility ~ 1"


def test_rejects_two_bar_terms() -> None:
    with pytest.raises(ValueError, match="only one"):
        ModelFormula.parse("utility ~ x + (1 | a) + (1 | b)")


def test_rejects_missing_tilde() -> None:
    with pytest.raises(ValueError):
        ModelFormula.parse("utility + x")


def test_check_columns_ok() -> None:
    ModelFormula.parse(DEFAULT_FORMULA).check_columns(_toy_df())


def test_check_columns_missing_variable() -> None:
    f = ModelFormula.parse("utility ~ C(survey_id) + income + (1 | respondent_id)")
    with pytest.raises(ValueError, match="cannot be built"):
        f.check_columns(_toy_df())


def test_check_columns_missing_group() -> None:
    f = ModelFormula.parse("utility ~ C(survey_id) + (1 | household)")
    with pytest.raises(ValueError, match="grouping column"):
        f.check_columns(_toy_df())
