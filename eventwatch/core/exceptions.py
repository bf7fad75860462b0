"""Custom exceptions for the monitoring subsystem."""


class MonitoringError(Exception):
    """Base exception for monitoring errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        msg = super().__str__()
        if self.cause:
            msg = f"{msg} (Caused by: {self.cause})"
        return msg


class ProbeError(MonitoringError):
    """Exception raised when a dependency probe cannot complete its round-trip."""

    def __init__(self, message: str, service: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause)
        self.service = service

    def __str__(self) -> str:
        msg = super().__str__()
        if self.service:
            msg = f"{msg} (Service: {self.service})"
        return msg


class NotificationError(MonitoringError):
    """Exception raised when a notification channel fails to deliver."""

    def __init__(self, message: str, channel: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause)
        self.channel = channel

    def __str__(self) -> str:
        msg = super().__str__()
        if self.channel:
            msg = f"{msg} (Channel: {self.channel})"
        return msg


class UnknownConditionError(MonitoringError):
    """Exception raised for an unrecognized simulated condition name."""

    def __init__(self, condition: str, available: list[str] | None = None):
        super().__init__(f"Unknown condition: {condition}")
        self.condition = condition
        self.available = available or []


class AlertNotFoundError(MonitoringError):
    """Exception raised when an alert history record does not exist."""

    pass


class AlertStateError(MonitoringError):
    """Exception raised for a forbidden alert lifecycle transition."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move alert from '{current}' to '{target}'")
        self.current = current
        self.target = target


class AnomalyNotFoundError(MonitoringError):
    """Exception raised when an anomaly record does not exist."""

    pass


class ConfigurationError(MonitoringError, ValueError):
    """Exception raised for configuration-related errors."""

    pass
