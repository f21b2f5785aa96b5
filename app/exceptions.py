"""Domain-specific exceptions with user-ready messages."""


class ConfigurationError(Exception):
    """Raised when application configuration is invalid."""

    pass


class MetricsException(Exception):
    """Base exception class for metric registration and recording errors."""

    def __init__(self, message: str, error_code: str) -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class DuplicateMetricError(MetricsException):
    """Raised when a metric name is registered again with a different shape."""

    def __init__(self, name: str, existing: object, requested: object) -> None:
        self.name = name
        message = (
            f"Metric {name} is already registered as {existing}, "
            f"cannot register it as {requested}"
        )
        super().__init__(message, error_code="DUPLICATE_METRIC")


class InvalidLabelError(MetricsException):
    """Raised when recorded label keys don't match the declared label names."""

    def __init__(
        self, name: str, expected: tuple[str, ...], actual: tuple[str, ...]
    ) -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        message = (
            f"Metric {name} expects labels {list(expected)} but got {list(actual)}"
        )
        super().__init__(message, error_code="INVALID_LABELS")


class InvalidAmountError(MetricsException):
    """Raised for a negative counter increment or an invalid observation."""

    def __init__(self, name: str, amount: object, cause: str) -> None:
        self.name = name
        self.amount = amount
        message = f"Cannot record {amount!r} on {name} because {cause}"
        super().__init__(message, error_code="INVALID_AMOUNT")


class TimerReuseError(MetricsException):
    """Raised when a histogram timer is completed more than once."""

    def __init__(self, name: str) -> None:
        self.name = name
        message = f"Timer for {name} was already completed"
        super().__init__(message, error_code="TIMER_REUSED")
