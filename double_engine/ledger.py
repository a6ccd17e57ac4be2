"""Append-only, strictly ordered record of calls made against one mock."""

import itertools
import json
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any

from double_engine.signatures import MethodSignature

logger = logging.getLogger(__name__)

# Process-wide order, used only to compare invocations of different mocks
_global_counter = itertools.count(1)
_global_lock = threading.Lock()

PENDING = "pending"
RETURNED = "returned"
RAISED = "raised"


@dataclass(frozen=True)
class Outcome:
    """How an invocation ended."""

    kind: str  # "pending", "returned", "raised"
    value: Any = None
    error: BaseException | None = None
    lenient_default: bool = False  # value came from the lenient zero-value policy

    def describe(self) -> str:
        if self.kind == RAISED:
            return f"raised {type(self.error).__name__}: {self.error}"
        if self.kind == RETURNED:
            suffix = " (lenient default)" if self.lenient_default else ""
            return f"returned {self.value!r}{suffix}"
        return "pending"


@dataclass(frozen=True)
class Invocation:
    """One recorded call."""

    sequence: int
    global_order: int
    signature: MethodSignature
    arguments: tuple
    outcome: Outcome = field(default_factory=lambda: Outcome(kind=PENDING))
    thread_name: str = ""

    def describe(self) -> str:
        return (
            f"#{self.sequence} {self.signature.describe(self.arguments)} "
            f"-> {self.outcome.describe()}"
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary (values rendered with repr)."""
        result = {
            "sequence": self.sequence,
            "global_order": self.global_order,
            "method": self.signature.name,
            "arguments": [repr(a) for a in self.arguments],
            "outcome": self.outcome.kind,
            "thread": self.thread_name,
        }
        if self.outcome.kind == RETURNED:
            result["value"] = repr(self.outcome.value)
            result["lenient_default"] = self.outcome.lenient_default
        elif self.outcome.kind == RAISED:
            error = self.outcome.error
            result["error"] = f"{type(error).__name__}: {error}"
        return result


class InvocationLedger:
    """Per-mock invocation history.

    Entries are appended with the next sequence number under a lock, so
    concurrent callers see 1..N with no gaps or duplicates. An entry is
    completed with its outcome exactly once and never changes afterwards.
    """

    def __init__(self, owner: str):
        self.owner = owner
        self._entries: list[Invocation] = []
        self._lock = threading.Lock()

    def append(self, signature: MethodSignature, arguments: tuple) -> Invocation:
        """Record a new pending invocation and assign its sequence number."""
        with self._lock:
            with _global_lock:
                global_order = next(_global_counter)
            invocation = Invocation(
                sequence=len(self._entries) + 1,
                global_order=global_order,
                signature=signature,
                arguments=arguments,
                thread_name=threading.current_thread().name,
            )
            self._entries.append(invocation)
        return invocation

    def complete(self, invocation: Invocation, outcome: Outcome) -> Invocation:
        """Attach the outcome to a pending invocation.

        Raises:
            ValueError: If the invocation was already completed
        """
        with self._lock:
            index = invocation.sequence - 1
            current = self._entries[index]
            if current.outcome.kind != PENDING:
                raise ValueError(f"Invocation #{invocation.sequence} already completed")
            completed = replace(current, outcome=outcome)
            self._entries[index] = completed
        return completed

    def invocations(self) -> list[Invocation]:
        """Snapshot of all invocations in sequence order."""
        with self._lock:
            return list(self._entries)

    def for_signature(self, signature: MethodSignature) -> list[Invocation]:
        return [i for i in self.invocations() if i.signature == signature]

    def lenient_defaults(self) -> list[Invocation]:
        """Invocations answered by the lenient zero-value policy."""
        return [i for i in self.invocations() if i.outcome.lenient_default]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_dict(self) -> dict:
        return {
            "mock": self.owner,
            "invocations": [i.to_dict() for i in self.invocations()],
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)
