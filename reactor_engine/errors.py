"""errors.py — Exception taxonomy shared by every layer."""

from __future__ import annotations


class ReactorEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(ReactorEngineError):
    """Out-of-range parameter, unknown material/organism or malformed config."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        valid_range: tuple[float, float] | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.valid_range = valid_range

    def to_dict(self) -> dict[str, object]:
        detail: dict[str, object] = {"message": str(self)}
        if self.field is not None:
            detail["field"] = self.field
        if self.valid_range is not None:
            detail["validRange"] = list(self.valid_range)
        return detail


class UnsupportedOperationError(ReactorEngineError):
    """Fidelity level or algorithm not implemented for this reactor."""


class NumericalError(ReactorEngineError):
    """Overflow, division by zero or non-convergence inside a correlation."""


class InfeasibleError(ReactorEngineError):
    """No parameter vector can satisfy the requested constraints."""
