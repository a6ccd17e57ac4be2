"""Argument matchers and full-call matching."""

import inspect
import logging
from collections.abc import Callable, Sequence
from typing import Any

from double_engine.errors import RegistrationError
from double_engine.signatures import MethodSignature

logger = logging.getLogger(__name__)


class ArgumentMatcher:
    """Decides whether one actual argument satisfies a declared rule.

    Matching is two-phase: matches() is pure and may be called any number of
    times, on_match() runs once per argument after every position of the call
    matched.
    """

    def matches(self, value: Any) -> bool:
        raise NotImplementedError

    def on_match(self, value: Any) -> None:
        pass

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return self.describe()


class Eq(ArgumentMatcher):
    """Value equality."""

    def __init__(self, value: Any):
        self.value = value

    def matches(self, value: Any) -> bool:
        return bool(value == self.value)

    def describe(self) -> str:
        return repr(self.value)


class InstanceOf(ArgumentMatcher):
    """Runtime type check."""

    def __init__(self, expected_type: type | tuple[type, ...]):
        self.expected_type = expected_type

    def matches(self, value: Any) -> bool:
        return isinstance(value, self.expected_type)

    def describe(self) -> str:
        if isinstance(self.expected_type, tuple):
            names = " | ".join(t.__name__ for t in self.expected_type)
        else:
            names = self.expected_type.__name__
        return f"<instance of {names}>"


class Predicate(ArgumentMatcher):
    """Custom boolean function."""

    def __init__(self, fn: Callable[[Any], bool], description: str | None = None):
        self.fn = fn
        self.description = description or getattr(fn, "__name__", "predicate")

    def matches(self, value: Any) -> bool:
        return bool(self.fn(value))

    def describe(self) -> str:
        return f"<that {self.description}>"


class AnyValue(ArgumentMatcher):
    def matches(self, value: Any) -> bool:
        return True

    def describe(self) -> str:
        return "<any>"


class VarPositional(ArgumentMatcher):
    """Matches the *args tuple of a variadic parameter element by element."""

    def __init__(self, items: Sequence[ArgumentMatcher]):
        self.items = tuple(items)

    def matches(self, value: Any) -> bool:
        if len(value) != len(self.items):
            return False
        return all(m.matches(v) for m, v in zip(self.items, value))

    def on_match(self, value: Any) -> None:
        for m, v in zip(self.items, value):
            m.on_match(v)

    def describe(self) -> str:
        return "*(" + ", ".join(m.describe() for m in self.items) + ")"


class VarKeyword(ArgumentMatcher):
    """Matches the **kwargs mapping of a variadic parameter key by key."""

    def __init__(self, items: dict[str, ArgumentMatcher]):
        self.items = dict(items)

    def matches(self, value: Any) -> bool:
        if set(value) != set(self.items):
            return False
        return all(m.matches(value[k]) for k, m in self.items.items())

    def on_match(self, value: Any) -> None:
        for k, m in self.items.items():
            m.on_match(value[k])

    def describe(self) -> str:
        pairs = ", ".join(f"{k}={m.describe()}" for k, m in self.items.items())
        return "**{" + pairs + "}"


def eq(value: Any) -> Eq:
    return Eq(value)


def any_value() -> AnyValue:
    return AnyValue()


def instance_of(expected_type: type | tuple[type, ...]) -> InstanceOf:
    return InstanceOf(expected_type)


def that(fn: Callable[[Any], bool], description: str | None = None) -> Predicate:
    return Predicate(fn, description)


def matches(matcher: ArgumentMatcher, value: Any) -> bool:
    """Evaluate a single matcher against a value without side effects."""
    return matcher.matches(value)


def match_arguments(
    matchers: Sequence[ArgumentMatcher], arguments: Sequence[Any]
) -> bool:
    """Match a whole call, left to right with short-circuit.

    on_match() fires for every position only when all positions matched, so
    captors record nothing for a failed attempt.

    Args:
        matchers: One matcher per parameter
        arguments: Actual arguments in parameter order

    Returns:
        True if every position matched
    """
    if len(matchers) != len(arguments):
        return False
    for matcher, value in zip(matchers, arguments):
        if not matcher.matches(value):
            return False
    for matcher, value in zip(matchers, arguments):
        matcher.on_match(value)
    return True


def _leaves(value: Any, kind: inspect._ParameterKind) -> list[Any]:
    if kind is inspect.Parameter.VAR_POSITIONAL:
        return list(value)
    if kind is inspect.Parameter.VAR_KEYWORD:
        return list(value.values())
    return [value]


def _wrap(value: Any) -> ArgumentMatcher:
    return value if isinstance(value, ArgumentMatcher) else Eq(value)


def to_matchers(
    signature: MethodSignature, args: tuple, kwargs: dict
) -> tuple[ArgumentMatcher, ...]:
    """Turn declared stub/verification arguments into one matcher per parameter.

    Bare literals become Eq. Declared arguments must be either all literals or
    all matchers; parameters left to their defaults are wrapped as Eq.

    Args:
        signature: Signature of the stubbed or verified member
        args: Declared positional arguments
        kwargs: Declared keyword arguments

    Returns:
        Tuple of matchers, one per parameter

    Raises:
        RegistrationError: On arity mismatch or mixed literals and matchers
    """
    try:
        values = signature.bind(args, kwargs)
        explicit = signature.explicit_positions(args, kwargs)
    except TypeError as e:
        raise RegistrationError(
            f"Arity mismatch declaring {signature.name}: {e}"
        ) from e

    declared: list[Any] = []
    for position in sorted(explicit):
        declared.extend(_leaves(values[position], signature.kind_of(position)))

    flags = [isinstance(v, ArgumentMatcher) for v in declared]
    if any(flags) and not all(flags):
        raise RegistrationError(
            f"Mixed literals and matchers declaring {signature.describe(values)}: "
            "wrap every argument in a matcher (eq() for literals)"
        )

    result: list[ArgumentMatcher] = []
    for position, value in enumerate(values):
        kind = signature.kind_of(position)
        if kind is inspect.Parameter.VAR_POSITIONAL:
            result.append(VarPositional([_wrap(v) for v in value]))
        elif kind is inspect.Parameter.VAR_KEYWORD:
            result.append(VarKeyword({k: _wrap(v) for k, v in value.items()}))
        else:
            result.append(_wrap(value))
    return tuple(result)


def describe_matchers(name: str, matchers: Sequence[ArgumentMatcher]) -> str:
    return f"{name}({', '.join(m.describe() for m in matchers)})"
