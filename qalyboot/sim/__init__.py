"""Synthetic data generation."""
from .simulate import simulate_panel, true_time_effects

__all__ = ["simulate_panel", "true_time_effects"]
