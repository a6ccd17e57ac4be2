"""Stub rules and the per-mock registry that resolves them."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from double_engine.config import ResolutionPolicy
from double_engine.errors import RegistrationError
from double_engine.matchers import ArgumentMatcher, describe_matchers, match_arguments
from double_engine.signatures import MethodSignature

logger = logging.getLogger(__name__)


class StubAction:
    """What a resolved rule does with the actual arguments."""

    def execute(self, args: tuple, kwargs: dict) -> Any:
        raise NotImplementedError


@dataclass
class ReturnValue(StubAction):
    value: Any

    def execute(self, args: tuple, kwargs: dict) -> Any:
        return self.value


@dataclass
class RaiseFailure(StubAction):
    error: BaseException

    def execute(self, args: tuple, kwargs: dict) -> Any:
        raise self.error


@dataclass
class Compute(StubAction):
    fn: Callable[..., Any]

    def execute(self, args: tuple, kwargs: dict) -> Any:
        return self.fn(*args, **kwargs)


@dataclass
class NoOp(StubAction):
    def execute(self, args: tuple, kwargs: dict) -> Any:
        return None


@dataclass
class StubRule:
    """Maps calls matching a signature and matcher set to an action."""

    signature: MethodSignature
    matchers: tuple[ArgumentMatcher, ...]
    action: StubAction
    limit: int | None = None  # None means unbounded
    times_consumed: int = 0
    registered_at: int = field(default=0, repr=False)

    @property
    def was_consumed(self) -> bool:
        return self.times_consumed > 0

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.times_consumed >= self.limit

    def answer(self, arguments: tuple) -> Any:
        """Run the action with the normalized arguments spread back out."""
        args, kwargs = self.signature.unpack(arguments)
        return self.action.execute(args, kwargs)

    def describe(self) -> str:
        limit = "" if self.limit is None else f" [{self.times_consumed}/{self.limit}]"
        return f"{describe_matchers(self.signature.name, self.matchers)}{limit}"


class StubRegistry:
    """Ordered collection of stub rules for one mock."""

    def __init__(self, policy: ResolutionPolicy = ResolutionPolicy.MOST_RECENT):
        self.policy = policy
        self._rules: list[StubRule] = []
        # Re-entrant: matchers and actions may call back into the same mock
        self._lock = threading.RLock()

    def register(self, rule: StubRule) -> StubRule:
        """Validate and append a rule.

        Raises:
            RegistrationError: If the matcher count differs from the arity or
                the consumption limit is not positive
        """
        if len(rule.matchers) != rule.signature.arity:
            raise RegistrationError(
                f"Stub for {rule.signature.name} declares {len(rule.matchers)} "
                f"matchers but the method takes {rule.signature.arity} arguments"
            )
        if not all(isinstance(m, ArgumentMatcher) for m in rule.matchers):
            raise RegistrationError(
                f"Stub for {rule.signature.name} contains non-matcher entries"
            )
        if rule.limit is not None and rule.limit < 1:
            raise RegistrationError(
                f"Consumption limit must be positive, got {rule.limit}"
            )

        with self._lock:
            rule.registered_at = len(self._rules)
            self._rules.append(rule)
        logger.info(f"Registered stub {rule.describe()}")
        return rule

    def _candidates(self, signature: MethodSignature) -> list[StubRule]:
        rules = [r for r in self._rules if r.signature == signature]
        if self.policy is ResolutionPolicy.MOST_RECENT:
            rules.reverse()
        return rules

    def resolve(self, signature: MethodSignature, arguments: tuple) -> StubRule | None:
        """Find and consume the rule answering a call.

        Exhausted rules are skipped so resolution falls through to older (or,
        under FIRST_REGISTERED, newer) rules.

        Returns:
            The consumed rule, or None when nothing matches
        """
        with self._lock:
            for rule in self._candidates(signature):
                if rule.exhausted:
                    continue
                if match_arguments(rule.matchers, arguments):
                    rule.times_consumed += 1
                    return rule
        return None

    def rules(self, signature: MethodSignature | None = None) -> list[StubRule]:
        with self._lock:
            if signature is None:
                return list(self._rules)
            return [r for r in self._rules if r.signature == signature]

    def unused(self) -> list[StubRule]:
        """Rules that never answered a call."""
        return [r for r in self.rules() if not r.was_consumed]
