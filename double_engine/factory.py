"""Build mocks over a capability set and declare their stubs."""

import inspect
import itertools
import logging
import threading
from collections.abc import Awaitable
from typing import Any

from double_engine.config import (
    EngineConfig,
    ResolutionPolicy,
    Strictness,
    load_config,
    override_config,
)
from double_engine.errors import RegistrationError, UnstubbedInvocationError
from double_engine.ledger import RAISED, RETURNED, Invocation, InvocationLedger, Outcome
from double_engine.matchers import ArgumentMatcher, to_matchers
from double_engine.signatures import CALL, MethodSignature, describe_capabilities
from double_engine.stubs import (
    Compute,
    NoOp,
    RaiseFailure,
    ReturnValue,
    StubAction,
    StubRegistry,
    StubRule,
)

logger = logging.getLogger(__name__)

_mock_ids = itertools.count(1)
_mock_ids_lock = threading.Lock()

HANDLE_ATTR = "_double_handle"


class MockHandle:
    """State behind one mock: capability surface, ledger, stubs, strictness."""

    def __init__(
        self,
        name: str,
        surface: dict[str, MethodSignature],
        strictness: Strictness,
        registry: StubRegistry,
        spec: Any = None,
    ):
        with _mock_ids_lock:
            self.mock_id = next(_mock_ids)
        self.name = name
        self.surface = surface
        self.strictness = strictness
        self.registry = registry
        self.spec = spec
        self.ledger = InvocationLedger(owner=name)

    def signature(self, name: str) -> MethodSignature:
        """Look up a member of the capability surface.

        Raises:
            RegistrationError: If the mock does not expose the member
        """
        try:
            return self.surface[name]
        except KeyError:
            raise RegistrationError(
                f"Mock '{self.name}' has no method '{name}'"
            ) from None

    def invoke(self, signature: MethodSignature, args: tuple, kwargs: dict) -> Any:
        """Handle a call made through the proxy."""
        arguments = signature.bind(args, kwargs)
        return self._dispatch(signature, arguments)

    def invoke_deferred(
        self, signature: MethodSignature, args: tuple, kwargs: dict
    ) -> Awaitable[Any]:
        """Handle a call to an async member.

        The call is recorded and resolved immediately; the returned awaitable
        only delivers the resolved value or failure.
        """
        arguments = signature.bind(args, kwargs)
        try:
            value = self._dispatch(signature, arguments)
        except BaseException as e:
            error = e

            async def _failed():
                raise error

            return _failed()

        async def _resolved():
            return value

        return _resolved()

    def _dispatch(self, signature: MethodSignature, arguments: tuple) -> Any:
        invocation = self.ledger.append(signature, arguments)
        rule = self.registry.resolve(signature, arguments)

        if rule is None:
            return self._unstubbed(invocation)

        try:
            value = rule.answer(arguments)
        except BaseException as e:
            self.ledger.complete(invocation, Outcome(kind=RAISED, error=e))
            raise
        self.ledger.complete(invocation, Outcome(kind=RETURNED, value=value))
        return value

    def _unstubbed(self, invocation: Invocation) -> Any:
        call = invocation.signature.describe(invocation.arguments)
        if self.strictness is Strictness.STRICT:
            error = UnstubbedInvocationError(self.name, call)
            self.ledger.complete(invocation, Outcome(kind=RAISED, error=error))
            raise error

        value = invocation.signature.zero_value()
        self.ledger.complete(
            invocation, Outcome(kind=RETURNED, value=value, lenient_default=True)
        )
        logger.warning(
            f"Lenient mock '{self.name}' answered unstubbed #{invocation.sequence} "
            f"{call} with {value!r}"
        )
        return value

    def __repr__(self) -> str:
        return f"<MockHandle {self.name} #{self.mock_id} {self.strictness.value}>"


class _MockProxy:
    """Base for generated proxy classes; every member forwards to the handle."""

    def __init__(self, handle: MockHandle):
        object.__setattr__(self, HANDLE_ATTR, handle)

    def __getattr__(self, name: str) -> Any:
        handle = object.__getattribute__(self, HANDLE_ATTR)
        raise AttributeError(f"Mock '{handle.name}' has no attribute '{name}'")

    def __repr__(self) -> str:
        handle = object.__getattribute__(self, HANDLE_ATTR)
        return f"<mock {handle.name}>"


def _forwarder(signature: MethodSignature):
    if signature.is_async:

        def method(self, *args, **kwargs):
            return getattr(self, HANDLE_ATTR).invoke_deferred(signature, args, kwargs)

    else:

        def method(self, *args, **kwargs):
            return getattr(self, HANDLE_ATTR).invoke(signature, args, kwargs)

    method.__name__ = signature.name
    if signature.signature is not None:
        params = list(signature.signature.parameters.values())
        self_param = inspect.Parameter("self", inspect.Parameter.POSITIONAL_ONLY)
        method.__signature__ = signature.signature.replace(
            parameters=[self_param, *params]
        )
    return method


def _spec_name(spec: Any) -> str:
    name = getattr(spec, "__name__", None)
    return name if isinstance(name, str) else "mock"


class MockFactory:
    """Creates mocks that share one configuration.

    Usage:
        factory = MockFactory()
        repository = factory.create(UserRepository)
        when(repository).find(42).then_return(user)
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or load_config()
        self._handles: list[MockHandle] = []

    @property
    def handles(self) -> list[MockHandle]:
        return list(self._handles)

    def create(
        self,
        spec: Any,
        strictness: Strictness | str | None = None,
        name: str | None = None,
    ) -> Any:
        """Create a mock exposing the callable surface of spec.

        Args:
            spec: A class or protocol, a function, or an iterable of
                MethodSignature objects / method names
            strictness: Overrides the configured strictness
            name: Name used in diagnostics (defaults to the spec's name)

        Returns:
            The proxy object to hand to the code under test

        Raises:
            ConfigError: If strictness is not a known mode
        """
        surface = describe_capabilities(spec)
        mode = self.config.strictness
        if strictness:
            source = f"strictness argument for {name or _spec_name(spec)}"
            mode = override_config(
                self.config, source=source, strictness=strictness
            ).strictness
        handle = MockHandle(
            name=name or _spec_name(spec),
            surface=surface,
            strictness=mode,
            registry=StubRegistry(policy=self.config.resolution),
            spec=spec,
        )

        namespace: dict[str, Any] = {
            member: _forwarder(signature) for member, signature in surface.items()
        }
        if isinstance(spec, type):
            namespace["__class__"] = property(lambda self: spec)
        proxy_type = type(f"{_spec_name(spec)}Mock", (_MockProxy,), namespace)

        self._handles.append(handle)
        logger.info(
            f"Created {mode.value} mock '{handle.name}' with {len(surface)} methods"
        )
        return proxy_type(handle)

    def function(self, fn: Any, strictness: Strictness | str | None = None) -> Any:
        """Create a callable double with the signature of fn."""
        return self.create(fn, strictness=strictness, name=_spec_name(fn))


def create_mock(
    spec: Any,
    strictness: Strictness | str | None = None,
    name: str | None = None,
    config: EngineConfig | None = None,
) -> Any:
    """Create a standalone mock using the effective configuration."""
    return MockFactory(config).create(spec, strictness=strictness, name=name)


def mock_function(fn: Any, strictness: Strictness | str | None = None) -> Any:
    return MockFactory().function(fn, strictness=strictness)


def handle_of(mock: Any) -> MockHandle:
    """Get the handle behind a proxy (handles are returned unchanged).

    Raises:
        TypeError: If the object is not a mock
    """
    if isinstance(mock, MockHandle):
        return mock
    try:
        return object.__getattribute__(mock, HANDLE_ATTR)
    except AttributeError:
        raise TypeError(f"{mock!r} is not a mock") from None


class StubBuilder:
    """Collects the consumption limit and action for one declared call."""

    def __init__(
        self,
        handle: MockHandle,
        signature: MethodSignature,
        matchers: tuple[ArgumentMatcher, ...],
    ):
        self._handle = handle
        self._signature = signature
        self._matchers = matchers
        self._limit: int | None = None

    def once(self) -> "StubBuilder":
        return self.times(1)

    def times(self, limit: int) -> "StubBuilder":
        if limit < 1:
            raise RegistrationError(f"Consumption limit must be positive, got {limit}")
        self._limit = limit
        return self

    def _register(self, action: StubAction, limit: int | None) -> StubRule:
        rule = StubRule(
            signature=self._signature,
            matchers=self._matchers,
            action=action,
            limit=limit,
        )
        return self._handle.registry.register(rule)

    def then_return(self, *values: Any) -> StubRule:
        """Return values on matching calls.

        Several values are handed out one per call in order; the last value
        keeps answering (subject to any once()/times() limit).

        Returns:
            The rule for the last value
        """
        if not values:
            raise RegistrationError("then_return() needs at least one value")

        steps = [(ReturnValue(v), 1) for v in values[:-1]]
        steps.append((ReturnValue(values[-1]), self._limit))

        # Rules checked newest-first must be registered last-value-first
        if self._handle.registry.policy is ResolutionPolicy.MOST_RECENT:
            steps.reverse()
            rules = [self._register(action, limit) for action, limit in steps]
            return rules[0]
        rules = [self._register(action, limit) for action, limit in steps]
        return rules[-1]

    def then_raise(self, error: BaseException | type[BaseException]) -> StubRule:
        if isinstance(error, type):
            error = error()
        return self._register(RaiseFailure(error), self._limit)

    def then_compute(self, fn: Any) -> StubRule:
        """Call fn with the arguments of each matching call and return its result."""
        return self._register(Compute(fn), self._limit)

    def then_do_nothing(self) -> StubRule:
        return self._register(NoOp(), self._limit)


class StubbingRecorder:
    """Turns attribute calls into stub declarations.

    when(mock).find(42) declares a stub for find(42); when(fn_mock)(42) does
    the same for function doubles.
    """

    def __init__(self, handle: MockHandle):
        self._handle = handle

    def __getattr__(self, name: str):
        signature = self._handle.signature(name)

        def declare(*args, **kwargs) -> StubBuilder:
            return self._declare(signature, args, kwargs)

        return declare

    def __call__(self, *args, **kwargs) -> StubBuilder:
        return self._declare(self._handle.signature(CALL), args, kwargs)

    def _declare(
        self, signature: MethodSignature, args: tuple, kwargs: dict
    ) -> StubBuilder:
        matchers = to_matchers(signature, args, kwargs)
        return StubBuilder(self._handle, signature, matchers)


def when(mock: Any) -> StubbingRecorder:
    """Start declaring a stub on a mock."""
    return StubbingRecorder(handle_of(mock))
