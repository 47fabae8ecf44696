# qalyboot/utils/__init__.py
"""Utility functions module."""
from .formula import DEFAULT_FORMULA, ModelFormula
from .helpers import escape_latex, pretty_term

__all__ = [
    "DEFAULT_FORMULA",
    "ModelFormula",
    "escape_latex",
    "pretty_term",
]
