"""Domain exceptions raised across the calculator, store and AI helpers."""


class RateUnavailableError(LookupError):
    """NBU rate could not be resolved for a currency and date."""


class NotAuthenticatedError(PermissionError):
    """Data-access write attempted without a resolved user identity."""

    def __init__(self, message: str = "User is not authenticated") -> None:
        super().__init__(message)


class IncomeValidationError(ValueError):
    """User-provided income input cannot be turned into a record."""


class DocumentScanError(RuntimeError):
    """AI document extraction failed."""
