"""Post-hoc assertions over recorded invocations."""

import logging
from dataclasses import dataclass, field
from typing import Any

from double_engine.errors import RegistrationError, VerificationFailure
from double_engine.factory import MockHandle, handle_of
from double_engine.ledger import Invocation
from double_engine.matchers import (
    ArgumentMatcher,
    describe_matchers,
    match_arguments,
    to_matchers,
)
from double_engine.signatures import CALL, MethodSignature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Multiplicity:
    """How many matching invocations a query expects."""

    kind: str  # "exactly", "at_least", "at_most", "never"
    count: int = 0

    def accepts(self, actual: int) -> bool:
        if self.kind == "at_least":
            return actual >= self.count
        if self.kind == "at_most":
            return actual <= self.count
        return actual == self.count

    def describe(self) -> str:
        if self.kind == "never":
            return "never"
        label = self.kind.replace("_", " ")
        unit = "time" if self.count == 1 else "times"
        return f"{label} {self.count} {unit}"


def exactly(count: int) -> Multiplicity:
    if count < 0:
        raise RegistrationError(f"Expected count must not be negative, got {count}")
    return Multiplicity("exactly", count)


def at_least(count: int) -> Multiplicity:
    if count < 0:
        raise RegistrationError(f"Expected count must not be negative, got {count}")
    return Multiplicity("at_least", count)


def at_most(count: int) -> Multiplicity:
    if count < 0:
        raise RegistrationError(f"Expected count must not be negative, got {count}")
    return Multiplicity("at_most", count)


def never() -> Multiplicity:
    return Multiplicity("never", 0)


@dataclass
class VerificationResult:
    """Invocations a passed query matched; usable as a later query's predecessor."""

    query: "VerificationQuery"
    matched: list[Invocation] = field(default_factory=list)


@dataclass
class VerificationQuery:
    signature: MethodSignature
    matchers: tuple[ArgumentMatcher, ...]
    multiplicity: Multiplicity = field(default_factory=lambda: exactly(1))
    after: VerificationResult | None = None
    handle: MockHandle | None = field(default=None, repr=False)

    def describe(self) -> str:
        label = "call" if self.signature.name == CALL else self.signature.name
        return describe_matchers(label, self.matchers)


def _report(
    handle: MockHandle,
    headline: str,
    expected: str,
    actual: str,
    recorded: list[Invocation],
    label: str,
) -> str:
    lines = [
        f"{headline} on mock '{handle.name}':",
        f"  expected: {expected}",
        f"  actual:   {actual}",
        f"  recorded {label} invocations:",
    ]
    if recorded:
        lines.extend(f"    {i.describe()}" for i in recorded)
    else:
        lines.append("    (none)")
    return "\n".join(lines)


def _order_key(result: VerificationResult, handle: MockHandle):
    # Sequence numbers are per mock; compare process-wide order across mocks
    if result.query.handle is handle:
        return (lambda i: i.sequence), "#"
    return (lambda i: i.global_order), "global #"


def verify_query(mock: Any, query: VerificationQuery) -> VerificationResult:
    """Check recorded invocations against a query.

    Never mutates the ledger. Captors among the matchers record the arguments
    of every matching invocation.

    Args:
        mock: Proxy or handle whose ledger is checked
        query: Signature, matchers, multiplicity and optional predecessor

    Returns:
        VerificationResult with the matched invocations

    Raises:
        VerificationFailure: On a count or ordering mismatch
    """
    handle = handle_of(mock)
    query.handle = handle
    recorded = handle.ledger.for_signature(query.signature)
    matched = [i for i in recorded if match_arguments(query.matchers, i.arguments)]
    expected = f"{query.describe()} {query.multiplicity.describe()}"
    label = "call" if query.signature.name == CALL else query.signature.name

    if not query.multiplicity.accepts(len(matched)):
        noun = "invocation" if len(matched) == 1 else "invocations"
        message = _report(
            handle,
            "Verification failed",
            expected,
            f"{len(matched)} matching {noun}",
            recorded,
            label,
        )
        raise VerificationFailure(
            message, expected=expected, actual_count=len(matched), invocations=recorded
        )

    prior = query.after
    if prior is not None and prior.matched and matched:
        key, marker = _order_key(prior, handle)
        latest_prior = max(key(i) for i in prior.matched)
        earliest = min(key(i) for i in matched)
        if latest_prior >= earliest:
            expected = f"{expected} after {prior.query.describe()}"
            message = _report(
                handle,
                "Ordering mismatch",
                expected,
                f"{query.describe()} {marker}{earliest} ran before "
                f"{prior.query.describe()} {marker}{latest_prior}",
                recorded,
                label,
            )
            raise VerificationFailure(
                message,
                expected=expected,
                actual_count=len(matched),
                invocations=recorded,
            )

    logger.info(f"Verified {expected} on '{handle.name}'")
    return VerificationResult(query=query, matched=matched)


def verify_zero_interactions(mock: Any) -> None:
    """Assert the mock was never called.

    Raises:
        VerificationFailure: If the ledger holds any invocation
    """
    handle = handle_of(mock)
    recorded = handle.ledger.invocations()
    if recorded:
        message = _report(
            handle,
            "Unexpected interactions",
            "no invocations",
            f"{len(recorded)} invocations",
            recorded,
            "all",
        )
        raise VerificationFailure(
            message,
            expected="no invocations",
            actual_count=len(recorded),
            invocations=recorded,
        )


class VerificationRecorder:
    """Turns attribute calls into verification queries.

    verify(mock).save(user) checks save(user) ran exactly once;
    verify(fn_mock)(42) does the same for function doubles.
    """

    def __init__(
        self,
        handle: MockHandle,
        multiplicity: Multiplicity,
        after: VerificationResult | None,
    ):
        self._handle = handle
        self._multiplicity = multiplicity
        self._after = after

    def __getattr__(self, name: str):
        signature = self._handle.signature(name)

        def check(*args, **kwargs) -> VerificationResult:
            return self._check(signature, args, kwargs)

        return check

    def __call__(self, *args, **kwargs) -> VerificationResult:
        return self._check(self._handle.signature(CALL), args, kwargs)

    def _check(
        self, signature: MethodSignature, args: tuple, kwargs: dict
    ) -> VerificationResult:
        query = VerificationQuery(
            signature=signature,
            matchers=to_matchers(signature, args, kwargs),
            multiplicity=self._multiplicity,
            after=self._after,
        )
        return verify_query(self._handle, query)


def verify(
    mock: Any,
    times: int | Multiplicity = 1,
    after: VerificationResult | None = None,
) -> VerificationRecorder:
    """Start a verification on a mock.

    Args:
        mock: Proxy or handle to verify
        times: Exact count or a Multiplicity (exactly, at_least, at_most, never)
        after: Result of an earlier verification whose invocations must all
            precede the ones matched here

    Returns:
        Recorder whose member calls run the check
    """
    multiplicity = exactly(times) if isinstance(times, int) else times
    return VerificationRecorder(handle_of(mock), multiplicity, after)
