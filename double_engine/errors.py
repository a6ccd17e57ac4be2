"""Exceptions raised by the test-double engine."""

from typing import Any


class DoubleEngineError(Exception):
    """Base class for all engine errors."""


class ConfigError(DoubleEngineError):
    """Invalid engine configuration value or file."""

    def __init__(self, message: str, source: str = "defaults"):
        super().__init__(message)
        self.source = source


class RegistrationError(DoubleEngineError):
    """A stub, query or override was declared incorrectly."""


class NestedOverrideError(RegistrationError):
    """The target already has an active override on this thread."""


class UnstubbedInvocationError(DoubleEngineError):
    """A strict mock was called with no resolving stub."""

    def __init__(self, mock_name: str, call_description: str):
        super().__init__(
            f"Unstubbed invocation on strict mock '{mock_name}': {call_description}"
        )
        self.mock_name = mock_name
        self.call_description = call_description


class CaptureEmptyError(DoubleEngineError):
    """An argument captor was read before anything was captured."""


class VerificationFailure(DoubleEngineError, AssertionError):
    """Recorded invocations did not satisfy a verification query.

    Subclasses AssertionError so test runners report it as a failure rather
    than an error.
    """

    def __init__(
        self,
        message: str,
        expected: str,
        actual_count: int,
        invocations: list[Any],
    ):
        super().__init__(message)
        self.expected = expected
        self.actual_count = actual_count
        self.invocations = invocations
