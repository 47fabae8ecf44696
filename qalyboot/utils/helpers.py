"""Shared helper utilities.

Label formatting for patsy coefficient names and LaTeX escaping for tables.
"""
from __future__ import annotations

import re
from typing import Any

__all__ = [
    "escape_latex",
    "format_value",
    "pretty_term",
]

_LEVEL_PAT = re.compile(r"^(?:C\()?(?P<var>[^()\[\],]+?)(?:,[^)]*)?\)?\[T\.(?P<level>.+)\]$")


def escape_latex(obj: Any) -> str:
    """Minimal LaTeX escaping (consistent with tabulate's expectations)."""
    text = str(obj)
    replacements = {
        "\\": r"\textbackslash{}",
        "&": r"\&",
        "%": r"\%",
        "$": r"\$",
        "#": r"\#",
        "_": r"\_",
        "{": r"\{",
        "}": r"\}",
        "~": r"\textasciitilde{}",
        "^": r"\textasciicircum{}",
    }
    # Single pass so replacement text is never escaped twice.
    return "".join(replacements.get(ch, ch) for ch in text)


def _pretty_factor(part: str) -> str:
    m = _LEVEL_PAT.match(part.strip())
    if m:
        return f"{m.group('var').strip()} = {m.group('level')}"
    return part.strip()


def pretty_term(name: Any, *, style: str = "paper") -> str:
    """Lightweight pretty-printer for coefficient labels.

    Patsy treatment-coded names such as ``C(survey_id)[T.3]`` become
    ``survey_id = 3``; interactions are joined with `` x ``. With
    ``style='raw'`` the name is returned unchanged. LaTeX escaping is handled
    upstream by :func:`escape_latex`.
    """
    text = str(name)
    if style == "raw":
        return text
    parts = [_pretty_factor(p) for p in text.split(":")]
    return " x ".join(parts)


def format_value(val: Any, fmt: str = ".4g") -> str:
    if isinstance(val, float):
        return format(val, fmt)
    return "" if val is None else str(val)
