# qalyboot/output/__init__.py
"""Output tables for bootstrap results."""
from .summary import band_table, bootstrap_summary, coefficient_table

__all__ = [
    "band_table",
    "bootstrap_summary",
    "coefficient_table",
]
