"""
retell.exceptions - Custom exception classes.

All Retell-specific exceptions inherit from RetellError.
"""


class RetellError(Exception):
    """Base exception for all Retell errors."""

    pass


class ConfigError(RetellError, ValueError):
    """Configuration loading or validation error."""

    pass


class StoryError(RetellError):
    """Story source missing, unreadable or malformed."""

    pass


class NotReadyError(RetellError):
    """No story is available to start a session."""

    pass


class PhaseError(RetellError):
    """Illegal phase transition requested."""

    pass


class UnsupportedCapabilityError(RetellError):
    """Narration or capture adapter is absent on this system."""

    def __init__(self, capability: str, message: str, hint: str | None = None):
        self.capability = capability
        self.message = message
        self.hint = hint
        super().__init__(f"{capability}: {message}")


class AdapterFailureError(RetellError):
    """Narration or capture adapter failed at runtime."""

    def __init__(self, adapter: str, message: str):
        self.adapter = adapter
        self.message = message
        super().__init__(f"{adapter}: {message}")
