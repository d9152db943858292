"""Costman exceptions."""

from dataclasses import asdict, dataclass
from typing import Any


ERROR_MESSAGES = {
    "VALIDATION_FAILED": "Parameter validation failed",
    "CALCULATION_FAILED": "Calculation error occurred",
    "SOURCE_UNAVAILABLE": "Parameter source unavailable",
    "MALFORMED_SOURCE": "Parameter source could not be parsed",
}


class CostingError(Exception):
    """
    Structured exception for costing operations.

    Usage:
        try:
            result = CostingService.calculate(payload)
        except CostingError as e:
            if e.code == "VALIDATION_FAILED":
                return JsonResponse(e.as_dict(), status=e.status_code)
    """

    status_code = 500

    def __init__(self, code: str, message: str = "", **data: Any) -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)
        self.data = data
        super().__init__(f"[{code}] {self.message}")

    def as_dict(self, debug: bool = True) -> dict:
        """
        Serializable form of the error.

        With debug=False, server-side errors drop their data payload.
        """
        payload = {"code": self.code, "message": self.message}
        if debug or self.status_code < 500:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class FieldError:
    """One violated field of a parameter set."""

    field: str
    reason: str


class ValidationError(CostingError):
    """Merged parameters are malformed or out of bounds. Lists every violation."""

    status_code = 400

    def __init__(self, errors: list[FieldError], message: str = "") -> None:
        self.errors = list(errors)
        super().__init__(
            "VALIDATION_FAILED",
            message,
            errors=[asdict(e) for e in self.errors],
        )

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]

    def __str__(self) -> str:
        details = "; ".join(f"{e.field}: {e.reason}" for e in self.errors)
        return f"[{self.code}] {self.message}: {details}"


class CalculationError(CostingError):
    """Arithmetic failure while computing a single range."""

    def __init__(self, range_key: str, field: str, message: str = "") -> None:
        super().__init__(
            "CALCULATION_FAILED",
            message or f"Calculation failed for range {range_key} at {field}",
            range=range_key,
            field=field,
        )

    @property
    def range_key(self) -> str:
        return self.data["range"]

    @property
    def field(self) -> str:
        return self.data["field"]


class SourceUnavailableError(CostingError):
    """A defaults or rates provider could not deliver its data."""

    status_code = 503
    default_code = "SOURCE_UNAVAILABLE"

    def __init__(self, source: str, reason: str = "", message: str = "") -> None:
        super().__init__(self.default_code, message, source=source, reason=reason)

    @property
    def source(self) -> str:
        return self.data["source"]


class MalformedSourceError(SourceUnavailableError):
    """The provider delivered data that could not be parsed."""

    default_code = "MALFORMED_SOURCE"
