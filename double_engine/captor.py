"""Argument captors: matchers that remember what they matched."""

import logging
import threading
from typing import Any

from double_engine.errors import CaptureEmptyError
from double_engine.matchers import ArgumentMatcher

logger = logging.getLogger(__name__)


class CaptureMatcher(ArgumentMatcher):
    """Always matches; records the argument into its captor on a full-call match."""

    def __init__(self, captor: "ArgumentCaptor"):
        self._captor = captor

    def matches(self, value: Any) -> bool:
        return True

    def on_match(self, value: Any) -> None:
        self._captor._record(value)

    def describe(self) -> str:
        return f"<capture into {self._captor.name}>"


class ArgumentCaptor:
    """Ordered history of arguments matched by this captor's matchers.

    Usage:
        captor = ArgumentCaptor()
        verify(repository).save(captor.capture())
        assert captor.last_value().email == "a@example.com"
    """

    def __init__(self, name: str = "captor"):
        self.name = name
        self._values: list[Any] = []
        self._lock = threading.Lock()

    def capture(self) -> CaptureMatcher:
        """Get a matcher bound to this captor for one argument position."""
        return CaptureMatcher(self)

    def _record(self, value: Any) -> None:
        with self._lock:
            self._values.append(value)
        logger.info(f"Captor {self.name} recorded {value!r}")

    def last_value(self) -> Any:
        """Most recently captured value.

        Raises:
            CaptureEmptyError: If nothing was captured yet
        """
        with self._lock:
            if not self._values:
                raise CaptureEmptyError(f"Nothing captured by {self.name}")
            return self._values[-1]

    def all_values(self) -> list[Any]:
        """All captured values in capture order (a copy, possibly empty)."""
        with self._lock:
            return list(self._values)
