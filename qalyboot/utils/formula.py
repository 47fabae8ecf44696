"""Mixed-model formula specifications.

A specification is a single string in the familiar lme4 notation, e.g.::

    utility ~ C(survey_id) + sex * age_group + (1 + acute | respondent_id)

The bar term names the random-effects design (left of ``|``) and the grouping
column (right of ``|``). Everything else is a patsy fixed-effects formula.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import patsy

if TYPE_CHECKING:
    import pandas as pd

__all__ = ["DEFAULT_FORMULA", "ModelFormula"]

DEFAULT_FORMULA = "utility ~ C(survey_id) + sex * age_group + (1 + acute | respondent_id)"

_BAR_PAT = re.compile(r"\(\s*(?P<re>[^()|]*?)\s*\|\s*(?P<group>[^()|]+?)\s*\)")


def _cleanup_rhs(rhs: str) -> str:
    # Remove dangling '+' left behind after stripping bar terms
    out = re.sub(r"\+\s*\+", "+", rhs)
    out = re.sub(r"^\s*\+\s*", "", out)
    out = re.sub(r"\s*\+\s*$", "", out)
    return re.sub(r"\s+", " ", out).strip()


@dataclass(frozen=True)
class ModelFormula:
    """Parsed mixed-model specification."""

    spec: str
    fixed: str
    re_formula: str
    group: str | None
    response: str

    @classmethod
    def parse(cls, spec: str, *, default_group: str | None = None) -> ModelFormula:
        """Split ``spec`` into fixed formula, random-effects formula and grouping column.

        Without a bar term the model has a random intercept grouped by
        ``default_group``.
        """
        if not isinstance(spec, str) or "~" not in spec:
            raise ValueError("formula must be a string of the form 'y ~ terms'")
        bars = list(_BAR_PAT.finditer(spec))
        if len(bars) > 1:
            raise ValueError("only one random-effects term '(... | group)' is supported")
        if bars:
            m = bars[0]
            re_part = m.group("re").strip() or "1"
            group = m.group("group").strip()
            stripped = spec[: m.start()] + spec[m.end():]
        else:
            re_part = "1"
            group = default_group
            stripped = spec
        lhs, rhs = stripped.split("~", 1)
        rhs = _cleanup_rhs(rhs) or "1"
        fixed = f"{lhs.strip()} ~ {rhs}"
        try:
            desc = patsy.ModelDesc.from_formula(fixed)
        except patsy.PatsyError as exc:
            raise ValueError(f"invalid fixed-effects formula {fixed!r}: {exc}") from exc
        if len(desc.lhs_termlist) != 1:
            raise ValueError("formula must name exactly one response variable")
        factors = desc.lhs_termlist[0].factors
        if len(factors) != 1:
            raise ValueError("formula must name exactly one response variable")
        response = factors[0].name()
        return cls(
            spec=spec,
            fixed=fixed,
            re_formula=f"~{re_part}",
            group=group,
            response=response,
        )

    @property
    def has_random_slope(self) -> bool:
        terms = patsy.ModelDesc.from_formula(self.re_formula).rhs_termlist
        return any(len(t.factors) > 0 for t in terms)

    def check_columns(self, frame: pd.DataFrame) -> None:
        """Raise ValueError when ``frame`` lacks a variable the formula needs."""
        if self.group is None:
            raise ValueError("formula has no grouping column; add '(1 | group)'")
        if self.group not in frame.columns:
            raise ValueError(f"grouping column {self.group!r} not found in panel")
        if self.response not in frame.columns:
            raise ValueError(f"response column {self.response!r} not found in panel")
        probe = frame.head(min(len(frame), 50))
        for rhs in (self.fixed.split("~", 1)[1], self.re_formula):
            try:
                patsy.dmatrix(rhs, probe, return_type="dataframe")
            except patsy.PatsyError as exc:
                raise ValueError(f"formula term cannot be built from the panel: {exc}") from exc
