"""Describe the callable surface of a collaborator as method signatures."""

import inspect
import logging
import types
import typing
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from double_engine.errors import RegistrationError

logger = logging.getLogger(__name__)

CALL = "__call__"

# Zero values handed out by lenient mocks, keyed by declared return type
ZERO_VALUES: dict[type, Callable[[], Any]] = {
    int: int,
    float: float,
    complex: complex,
    str: str,
    bytes: bytes,
    bool: bool,
    list: list,
    dict: dict,
    set: set,
    frozenset: frozenset,
    tuple: tuple,
}


@dataclass(frozen=True)
class MethodSignature:
    """Identity of one invocable member of a capability set."""

    name: str
    parameters: tuple[str, ...] = ()
    is_async: bool = False
    return_annotation: Any = field(default=None, compare=False)
    signature: inspect.Signature | None = field(
        default=None, compare=False, repr=False
    )

    @property
    def arity(self) -> int:
        return len(self.parameters)

    def bind(self, args: tuple, kwargs: dict) -> tuple:
        """Normalize call arguments into parameter order.

        Args:
            args: Positional arguments as passed by the caller
            kwargs: Keyword arguments as passed by the caller

        Returns:
            Tuple with one entry per parameter, defaults applied

        Raises:
            TypeError: If the arguments do not fit the signature
        """
        if self.signature is None:
            if kwargs:
                raise TypeError(f"{self.name}() takes no keyword arguments")
            if len(args) != self.arity:
                raise TypeError(
                    f"{self.name}() takes {self.arity} arguments ({len(args)} given)"
                )
            return tuple(args)

        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return tuple(bound.arguments[name] for name in self.parameters)

    def kind_of(self, position: int) -> inspect._ParameterKind:
        """Parameter kind at a position; positional-only without a signature."""
        if self.signature is None:
            return inspect.Parameter.POSITIONAL_ONLY
        return self.signature.parameters[self.parameters[position]].kind

    def explicit_positions(self, args: tuple, kwargs: dict) -> set[int]:
        """Return the parameter positions the caller supplied explicitly."""
        if self.signature is None:
            return set(range(len(args)))
        bound = self.signature.bind(*args, **kwargs)
        return {self.parameters.index(name) for name in bound.arguments}

    def unpack(self, arguments: tuple) -> tuple[tuple, dict]:
        """Turn normalized arguments back into call-style args and kwargs.

        *args tuples are spread positionally; keyword-only parameters and
        **kwargs entries become keyword arguments.
        """
        if self.signature is None:
            return tuple(arguments), {}

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for position, value in enumerate(arguments):
            kind = self.kind_of(position)
            if kind is inspect.Parameter.VAR_POSITIONAL:
                args.extend(value)
            elif kind is inspect.Parameter.KEYWORD_ONLY:
                kwargs[self.parameters[position]] = value
            elif kind is inspect.Parameter.VAR_KEYWORD:
                kwargs.update(value)
            else:
                args.append(value)
        return tuple(args), kwargs

    def describe(self, arguments: tuple) -> str:
        label = "call" if self.name == CALL else self.name
        args, kwargs = self.unpack(arguments)
        parts = [repr(a) for a in args]
        parts.extend(f"{k}={v!r}" for k, v in kwargs.items())
        return f"{label}({', '.join(parts)})"

    def zero_value(self) -> Any:
        """Value a lenient mock returns when nothing is stubbed."""
        return zero_value_for(self.return_annotation)


def zero_value_for(annotation: Any) -> Any:
    """Compute the default value for a declared return type.

    Optional and union types, None, and anything unrecognized map to None.
    """
    if annotation is None or annotation is inspect.Signature.empty:
        return None

    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return None
    if origin is not None:
        annotation = origin

    factory = ZERO_VALUES.get(annotation)
    if factory is None:
        return None
    return factory()


def signature_of(name: str, fn: Callable, drop_first: bool = False) -> MethodSignature:
    """Build a MethodSignature by introspecting a function.

    Args:
        name: Name the member is exposed under
        fn: The function to introspect
        drop_first: Drop the leading self/cls parameter

    Returns:
        MethodSignature for the function
    """
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        logger.info(f"No introspectable signature for {name}, accepting any call")
        sig = inspect.Signature(
            [
                inspect.Parameter("args", inspect.Parameter.VAR_POSITIONAL),
                inspect.Parameter("kwargs", inspect.Parameter.VAR_KEYWORD),
            ]
        )

    params = list(sig.parameters.values())
    if drop_first and params:
        params = params[1:]
    sig = sig.replace(parameters=params)

    try:
        hints = typing.get_type_hints(fn)
        return_annotation = hints.get("return", sig.return_annotation)
    except Exception:
        # Unresolvable forward references fall back to the raw annotation
        return_annotation = sig.return_annotation

    return MethodSignature(
        name=name,
        parameters=tuple(p.name for p in params),
        is_async=inspect.iscoroutinefunction(fn),
        return_annotation=return_annotation,
        signature=sig,
    )


def _public_members(spec: type) -> Iterable[tuple[str, MethodSignature]]:
    for name in dir(spec):
        if name.startswith("_"):
            continue
        raw = inspect.getattr_static(spec, name)
        if isinstance(raw, staticmethod):
            yield name, signature_of(name, raw.__func__)
        elif isinstance(raw, classmethod):
            yield name, signature_of(name, raw.__func__, drop_first=True)
        elif inspect.isfunction(raw):
            yield name, signature_of(name, raw, drop_first=True)


def describe_capabilities(spec: Any) -> dict[str, MethodSignature]:
    """Turn a capability description into signatures keyed by name.

    Args:
        spec: A class or protocol (its public methods), a function (a single
            __call__ member), or an iterable of MethodSignature objects and
            bare method names

    Returns:
        Mapping of member name to MethodSignature

    Raises:
        RegistrationError: If the description exposes no callable members
    """
    if inspect.isclass(spec):
        surface = dict(_public_members(spec))
    elif callable(spec):
        surface = {CALL: signature_of(CALL, spec)}
    elif isinstance(spec, Iterable) and not isinstance(spec, (str, bytes)):
        surface = {}
        for item in spec:
            if isinstance(item, MethodSignature):
                surface[item.name] = item
            elif isinstance(item, str):
                surface[item] = signature_of(item, lambda *args, **kwargs: None)
            else:
                raise RegistrationError(f"Cannot describe capability from {item!r}")
    else:
        raise RegistrationError(f"Cannot describe capability set from {spec!r}")

    if not surface:
        raise RegistrationError(f"Capability set {spec!r} exposes no methods")

    logger.info(f"Described capability set with {len(surface)} methods")
    return surface
