"""QALY computation from utility trajectories."""
from .calculator import QALY_TYPES, QALYCalculator

__all__ = ["QALY_TYPES", "QALYCalculator"]
