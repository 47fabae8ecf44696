"""Error taxonomy for the bootstrap pipeline.

Input problems subclass :class:`ValueError` and computation failures subclass
:class:`RuntimeError`, so callers may catch either the specific class or the
builtin it refines.
"""

from __future__ import annotations

__all__ = [
    "DegenerateQuantileInput",
    "DuplicateObservation",
    "EmptyPanel",
    "FitNonConvergence",
    "InsufficientReplicates",
    "PanelError",
    "UnknownRespondent",
]


class PanelError(ValueError):
    """Malformed or inconsistent input panel."""


class EmptyPanel(PanelError):
    """The panel holds no usable records."""


class UnknownRespondent(PanelError):
    """A record references a respondent without a usable demographic mapping."""

    def __init__(self, message: str, respondents: list | None = None) -> None:
        super().__init__(message)
        self.respondents = list(respondents or [])


class DuplicateObservation(PanelError):
    """A (respondent, time point) pair occurs more than once."""


class FitNonConvergence(RuntimeError):
    """A single replicate fit produced diagnostics.

    Recorded in the drop log of a bootstrap run; never raised to the caller.
    """

    def __init__(self, replicate: int, diagnostics: list[str]) -> None:
        head = "; ".join(diagnostics[:3])
        super().__init__(f"replicate {replicate} dropped: {head}")
        self.replicate = int(replicate)
        self.diagnostics = list(diagnostics)


class InsufficientReplicates(RuntimeError):
    """Fewer replicates survived filtering than the configured minimum."""

    def __init__(self, retained: int, required: int, requested: int | None = None) -> None:
        msg = f"only {retained} replicate(s) retained; at least {required} required"
        if requested is not None:
            msg += f" (requested {requested})"
        super().__init__(msg)
        self.retained = int(retained)
        self.required = int(required)
        self.requested = None if requested is None else int(requested)


class DegenerateQuantileInput(ValueError):
    """Fewer than two values were available for a quantile computation."""

    def __init__(self, label: object, n_values: int) -> None:
        super().__init__(
            f"quantiles for {label!r} need at least 2 bootstrap values; got {n_values}",
        )
        self.label = label
        self.n_values = int(n_values)
