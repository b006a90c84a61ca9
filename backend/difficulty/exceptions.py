"""Exception types raised by the adaptive difficulty subsystem."""

from __future__ import annotations


class DifficultyError(Exception):
    """Base class for difficulty controller errors."""


class InvalidPreferenceError(DifficultyError, ValueError):
    """Unrecognized transparency preference supplied by a caller."""

    def __init__(self, preference: object) -> None:
        super().__init__(f"Invalid transparency preference: {preference!r}")
        self.preference = preference


class UnknownTemplateError(DifficultyError, ValueError):
    def __init__(self, name: object) -> None:
        super().__init__(f"Unknown combat template: {name!r}")
        self.name = name


class TelemetryUnavailableError(DifficultyError):
    """The telemetry aggregator could not be reached."""


class StoreUnavailableError(DifficultyError):
    """The session store timed out or is offline."""
