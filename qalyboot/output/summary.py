"""Summary tables for bootstrap results.

Renders the coefficient quantile table, the QALY band table and the reference
point estimates as plain text or LaTeX via ``tabulate``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd
from tabulate import tabulate

from qalyboot.core.quantiles import quantile_columns
from qalyboot.utils.helpers import escape_latex as _escape_latex
from qalyboot.utils.helpers import format_value as _format_value
from qalyboot.utils.helpers import pretty_term as _pretty_term

if TYPE_CHECKING:
    from qalyboot.pipeline import BootstrapResult

__all__ = ["band_table", "bootstrap_summary", "coefficient_table"]

_SIGNIFICANCE_NOTE = (
    "* all five bootstrap quantiles share one sign (zero-exclusion heuristic, not a hypothesis test)"
)


def _prob_headers(probs) -> list[str]:
    return [f"{100 * p:g}%" for p in probs]


def _booktabs(tex: str) -> str:
    """Swap the three \\hline rules of a ``latex_raw`` table for booktabs rules."""
    rules = iter([r"\toprule", r"\midrule", r"\bottomrule"])
    lines = [next(rules, line) if line.strip() == r"\hline" else line for line in tex.splitlines()]
    return "\n".join(lines)


def coefficient_table(
    result: BootstrapResult,
    *,
    name_style: str = "paper",
    float_format: str = ".4g",
) -> pd.DataFrame:
    """Display-ready coefficient table (labels prettified, values formatted)."""
    probs = result.quantile_probs
    qcols = quantile_columns(probs)
    df = result.coefficients
    out = pd.DataFrame({"term": [_pretty_term(c, style=name_style) for c in df["coefficient"]]})
    for col, head in zip(qcols, _prob_headers(probs)):
        out[head] = [_format_value(float(v), float_format) for v in df[col]]
    out["sig."] = ["*" if s else "" for s in df["significant"]]
    out["n"] = df["n"].astype(int).to_numpy()
    return out


def band_table(result: BootstrapResult, *, float_format: str = ".4g") -> pd.DataFrame:
    """Display-ready QALY band table joined with the reference point estimates."""
    probs = result.quantile_probs
    qcols = quantile_columns(probs)
    keys = [*result.by, "qaly_type"]
    merged = result.bands.merge(result.reference, on=keys, how="left")
    out = merged[keys].copy()
    out["reference"] = [_format_value(float(v), float_format) for v in merged["mean"]]
    for col, head in zip(qcols, _prob_headers(probs)):
        out[head] = [_format_value(float(v), float_format) for v in merged[col]]
    out["n"] = merged["n"].astype(int).to_numpy()
    return out


def bootstrap_summary(
    result: BootstrapResult,
    *,
    output: str = "text",
    float_format: str = ".4g",
    name_style: str = "paper",
    show_policy_note: bool = True,
) -> str:
    """Render coefficient and band tables.

    Parameters
    ----------
    output : {"text", "latex"}
        ``text`` uses the ``github`` table format; ``latex`` uses booktabs.

    """
    # Cells are escaped up front, so tabulate must not escape them again;
    # latex_raw output gets its booktabs rules from _booktabs.
    fmt = {"text": "github", "latex": "latex_raw"}.get(output)
    if fmt is None:
        raise ValueError("output must be 'text' or 'latex'")
    coef = coefficient_table(result, name_style=name_style, float_format=float_format)
    bands = band_table(result, float_format=float_format)
    if output == "latex":
        coef = coef.map(_escape_latex)
        bands = bands.map(_escape_latex)
        coef.columns = [_escape_latex(c) for c in coef.columns]
        bands.columns = [_escape_latex(c) for c in bands.columns]

    parts = [
        "Fixed effects (bootstrap quantiles)",
        tabulate(coef, headers="keys", tablefmt=fmt, showindex=False, disable_numparse=True),
        "",
        "Mean QALY by group (bootstrap quantiles)",
        tabulate(bands, headers="keys", tablefmt=fmt, showindex=False, disable_numparse=True),
    ]
    if output == "latex":
        parts = [_booktabs(p) for p in parts]
    if show_policy_note:
        parts.extend([
            "",
            f"Retained replicates: {result.n_retained} of {result.n_requested} "
            f"({result.n_dropped} dropped for convergence diagnostics)",
            _SIGNIFICANCE_NOTE,
        ])
    return "\n".join(parts)
