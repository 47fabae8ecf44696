"""Longitudinal utility panel.

A :class:`Panel` is the respondent x time-point table of health-utility scores
the bootstrap consumes. It is validated once on construction and treated as
read-only afterwards; every consumer works on copies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import pandas as pd

from qalyboot.core.errors import (
    DuplicateObservation,
    EmptyPanel,
    PanelError,
    UnknownRespondent,
)

if TYPE_CHECKING:
    from collections.abc import Hashable

__all__ = [
    "Panel",
    "PanelSchema",
    "UtilityMapper",
    "mark_acute_period",
]

LOGGER = logging.getLogger(__name__)

# Utilities are bounded above by full health; allow for float noise in value sets.
_UTILITY_CEILING_TOL = 1e-9

UtilityMapper = Callable[[pd.DataFrame], pd.DataFrame]
"""External value-set mapping: raw item responses -> UtilityRecord columns."""


@dataclass(frozen=True)
class PanelSchema:
    """Column names of a utility panel."""

    respondent: str = "respondent_id"
    time: str = "survey_id"
    age_group: str = "age_group"
    sex: str = "sex"
    utility: str = "utility"
    acute: str = "acute"

    @property
    def columns(self) -> tuple[str, ...]:
        return (
            self.respondent,
            self.time,
            self.age_group,
            self.sex,
            self.utility,
            self.acute,
        )

    @property
    def demographic_columns(self) -> tuple[str, str]:
        return (self.age_group, self.sex)


def mark_acute_period(
    frame: pd.DataFrame,
    first_post_onset: Hashable,
    *,
    time_col: str = "survey_id",
    acute_col: str = "acute",
) -> pd.DataFrame:
    """Return a copy of ``frame`` with a boolean acute-period column.

    The acute period is the first time point after symptom onset; every record
    observed at ``first_post_onset`` is flagged.
    """
    if time_col not in frame.columns:
        raise PanelError(f"time column {time_col!r} not found in frame")
    out = frame.copy()
    out[acute_col] = out[time_col].to_numpy() == first_post_onset
    return out


@dataclass(frozen=True, eq=False)
class Panel:
    """Validated respondent x time-point utility table.

    Invariants
    ----------
    - at least one record;
    - each (respondent, time point) pair appears at most once;
    - every respondent maps to exactly one non-missing age group and sex;
    - utilities are finite and do not exceed 1 (full health).

    When ``demographics`` is supplied (indexed by respondent, with the schema's
    age-group and sex columns) it is the authoritative source for the
    demographic columns, and records of respondents absent from it raise
    :class:`UnknownRespondent`.
    """

    frame: pd.DataFrame
    schema: PanelSchema = field(default_factory=PanelSchema)
    demographics: pd.DataFrame | None = None

    def __post_init__(self) -> None:
        frame = _validated_frame(self.frame, self.schema, self.demographics)
        object.__setattr__(self, "frame", frame)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def from_responses(
        cls,
        raw: pd.DataFrame,
        mapper: UtilityMapper,
        *,
        schema: PanelSchema | None = None,
        demographics: pd.DataFrame | None = None,
    ) -> Panel:
        """Map raw questionnaire responses to utilities and validate the result."""
        mapped = mapper(raw)
        if not isinstance(mapped, pd.DataFrame):
            raise TypeError("utility mapper must return a pandas DataFrame")
        return cls(mapped, schema=schema or PanelSchema(), demographics=demographics)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return int(self.frame.shape[0])

    @property
    def respondents(self) -> np.ndarray:
        """Distinct respondent identifiers in sorted order."""
        ids = pd.Index(self.frame[self.schema.respondent]).unique()
        return ids.sort_values().to_numpy()

    @property
    def n_respondents(self) -> int:
        return int(self.frame[self.schema.respondent].nunique())

    @property
    def time_points(self) -> np.ndarray:
        ids = pd.Index(self.frame[self.schema.time]).unique()
        return ids.sort_values().to_numpy()

    def respondent_rows(self) -> dict[Any, np.ndarray]:
        """Map each respondent to the positional indices of its records."""
        return self.frame.groupby(self.schema.respondent, sort=True).indices

    def respondent_demographics(self) -> pd.DataFrame:
        """One row per respondent with its age group and sex."""
        s = self.schema
        cols = [s.respondent, *s.demographic_columns]
        return (
            self.frame[cols]
            .drop_duplicates(subset=[s.respondent])
            .sort_values(s.respondent, kind="mergesort")
            .reset_index(drop=True)
        )


def _validated_frame(
    frame: pd.DataFrame,
    schema: PanelSchema,
    demographics: pd.DataFrame | None,
) -> pd.DataFrame:
    if not isinstance(frame, pd.DataFrame):
        raise TypeError("Panel frame must be a pandas DataFrame")
    if frame.shape[0] == 0:
        raise EmptyPanel("panel contains no records")
    df = frame.copy()
    if demographics is not None:
        df = _join_demographics(df, schema, demographics)

    missing = [c for c in schema.columns if c not in df.columns]
    if missing:
        raise PanelError(f"panel is missing required column(s): {missing}")

    key = [schema.respondent, schema.time]
    if df[key].isna().any().any():
        raise PanelError("respondent or time identifiers contain missing values")

    util = pd.to_numeric(df[schema.utility], errors="coerce").to_numpy(dtype=np.float64)
    if not np.all(np.isfinite(util)):
        raise PanelError(
            "utility column contains NA/NaN/Inf; drop incomplete responses before building the panel",
        )
    if np.any(util > 1.0 + _UTILITY_CEILING_TOL):
        raise PanelError("utility values must not exceed 1 (full health)")
    df[schema.utility] = util

    dup = df.duplicated(subset=key, keep=False)
    if dup.any():
        pairs = df.loc[dup, key].drop_duplicates().head(5).to_records(index=False).tolist()
        raise DuplicateObservation(
            f"duplicate (respondent, time point) pairs detected (showing up to 5): {pairs}",
        )

    _check_demographics(df, schema)
    df[schema.acute] = df[schema.acute].astype(bool)
    return df.reset_index(drop=True)


def _join_demographics(
    df: pd.DataFrame, schema: PanelSchema, demographics: pd.DataFrame,
) -> pd.DataFrame:
    demo = demographics
    if schema.respondent in demo.columns:
        demo = demo.set_index(schema.respondent)
    absent = [c for c in schema.demographic_columns if c not in demo.columns]
    if absent:
        raise PanelError(f"demographics table is missing column(s): {absent}")
    if not demo.index.is_unique:
        raise PanelError("demographics table has duplicate respondent entries")
    ids = pd.Index(df[schema.respondent].unique())
    unknown = ids.difference(demo.index)
    if len(unknown) > 0:
        raise UnknownRespondent(
            f"{len(unknown)} respondent(s) absent from the demographics table",
            respondents=unknown.tolist(),
        )
    base = df.drop(columns=[c for c in schema.demographic_columns if c in df.columns])
    joined = base.join(demo[list(schema.demographic_columns)], on=schema.respondent)
    return joined


def _check_demographics(df: pd.DataFrame, schema: PanelSchema) -> None:
    cols = list(schema.demographic_columns)
    blank = df[cols].isna().any(axis=1)
    if blank.any():
        ids = pd.unique(df.loc[blank, schema.respondent]).tolist()
        raise UnknownRespondent(
            f"{len(ids)} respondent(s) lack an age group or sex",
            respondents=ids,
        )
    counts = df.groupby(schema.respondent, sort=True)[cols].nunique()
    bad = counts.index[(counts > 1).any(axis=1)]
    if len(bad) > 0:
        raise UnknownRespondent(
            f"{len(bad)} respondent(s) have inconsistent age group or sex across time points",
            respondents=bad.tolist(),
        )
