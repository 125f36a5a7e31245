"""Error taxonomy for the restitution calculator.

Every error raised by the engine carries a machine-readable ``code``, a
human-readable message and an optional ``details`` mapping that pinpoints
the offending input (a date range, an installment number, ...). All of
them derive from ``ValueError`` so callers that only care about "bad
input" can keep catching that.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CalculationError(ValueError):
    """Base class for every deterministic failure of the engine."""

    default_code = "CALCULATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "type": type(self).__name__,
            "details": {key: _plain(value) for key, value in self.details.items()},
        }


class ConfigurationError(CalculationError):
    """Missing or gapped rate bands and other invalid date ranges."""

    default_code = "CONFIGURATION_ERROR"


class ValidationError(CalculationError):
    """Structurally invalid input detected before any computation starts."""

    default_code = "VALIDATION_ERROR"


class ReconciliationConflictError(CalculationError):
    """Payment history that cannot be reconciled against a schedule."""

    default_code = "RECONCILIATION_CONFLICT"


def _plain(value: Any) -> Any:
    # dates and decimals are rendered as strings so details stay JSON-safe
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
