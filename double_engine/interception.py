"""Thread-scoped override of module-level functions and static methods."""

import functools
import inspect
import logging
import sys
import threading
import uuid
from collections.abc import Callable
from typing import Any

from double_engine.config import Strictness
from double_engine.errors import NestedOverrideError, RegistrationError
from double_engine.factory import mock_function

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_dispatchers: dict[tuple[int, str], "_Dispatcher"] = {}


class _Dispatcher:
    """Stands in for the target while any thread overrides it.

    Each thread sees its own replacement; threads without one reach the
    original.
    """

    def __init__(self, owner: Any, attribute: str):
        self.owner = owner
        self.attribute = attribute
        namespace = getattr(owner, "__dict__", {})
        self.had_own = attribute in namespace
        if self.had_own:
            self.raw = namespace[attribute]
        else:
            self.raw = inspect.getattr_static(owner, attribute)
        self.original = getattr(owner, attribute)
        self.active = 0
        self.local = threading.local()

    def current(self) -> "StaticOverride | None":
        return getattr(self.local, "scope", None)

    def install(self) -> None:
        original = self.original

        @functools.wraps(original)
        def dispatch(*args, **kwargs):
            scope = self.current()
            if scope is None:
                return original(*args, **kwargs)
            return scope.replacement(*args, **kwargs)

        # Originals fetched through a class are already unbound or bound to it
        installed = dispatch
        if isinstance(self.owner, type):
            installed = staticmethod(dispatch)
        setattr(self.owner, self.attribute, installed)
        name = _target_name(self.owner, self.attribute)
        logger.info(f"Installed dispatcher on {name}")

    def restore(self) -> None:
        if not self.had_own:
            delattr(self.owner, self.attribute)
        else:
            setattr(self.owner, self.attribute, self.raw)
        logger.info(f"Restored {_target_name(self.owner, self.attribute)}")


def _target_name(owner: Any, attribute: str) -> str:
    return f"{getattr(owner, '__name__', repr(owner))}.{attribute}"


def resolve_target(target: Any) -> tuple[Any, str]:
    """Find the owner object and attribute name a function lives under.

    Args:
        target: A module-level function, a static method, or an
            (owner, "attribute") pair

    Returns:
        Tuple of (owner, attribute)

    Raises:
        RegistrationError: If the target cannot be located
    """
    if isinstance(target, tuple) and len(target) == 2:
        owner, attribute = target
        if not hasattr(owner, attribute):
            raise RegistrationError(f"{owner!r} has no attribute '{attribute}'")
        return owner, attribute

    if isinstance(target, staticmethod):
        target = target.__func__
    if not callable(target):
        raise RegistrationError(f"Cannot override non-callable {target!r}")

    qualname = getattr(target, "__qualname__", "")
    module = sys.modules.get(getattr(target, "__module__", None) or "")
    if module is None or not qualname or "<locals>" in qualname:
        raise RegistrationError(
            f"Cannot locate {target!r}; pass (owner, 'name') instead"
        )

    owner: Any = module
    *path, attribute = qualname.split(".")
    for part in path:
        owner = getattr(owner, part)

    found = inspect.getattr_static(owner, attribute, None)
    if isinstance(found, staticmethod):
        found = found.__func__
    if found is not target and getattr(found, "__wrapped__", None) is not target:
        raise RegistrationError(
            f"{_target_name(owner, attribute)} is not {target!r} (already replaced?)"
        )
    return owner, attribute


class StaticOverride:
    """Scoped replacement of a function for the acquiring thread only.

    The original is restored exactly once when the scope exits, whether the
    body returns, raises or is cancelled. Only code that looks the function
    up through its owner at call time sees the override.

    Usage:
        with override(billing.charge, fake_charge):
            service.checkout(order)

        with override(billing.charge) as scope:
            when(scope.double)(any_value()).then_return(True)
            service.checkout(order)
            verify(scope.double)(order.total)
    """

    def __init__(
        self,
        target: Any,
        replacement: Callable | None = None,
        strictness: Strictness | str | None = None,
    ):
        self.owner, self.attribute = resolve_target(target)
        if isinstance(self.owner, type) and inspect.isfunction(
            inspect.getattr_static(self.owner, self.attribute)
        ):
            raise RegistrationError(
                f"{self.name} is an instance method; mock its owner instead"
            )
        self.double = None
        if replacement is None:
            self.double = mock_function(
                getattr(self.owner, self.attribute), strictness=strictness
            )
            replacement = self.double
        self.replacement = replacement
        self.token = uuid.uuid4().hex
        self.thread: threading.Thread | None = None
        self._dispatcher: _Dispatcher | None = None

    @property
    def name(self) -> str:
        return _target_name(self.owner, self.attribute)

    @property
    def active(self) -> bool:
        return self._dispatcher is not None

    def acquire(self) -> "StaticOverride":
        """Activate the override on the current thread.

        Raises:
            NestedOverrideError: If this thread already overrides the target
            RegistrationError: If this scope is already active
        """
        if self.active:
            raise RegistrationError(
                f"Override {self.token} of {self.name} is already active"
            )

        key = (id(self.owner), self.attribute)
        with _lock:
            dispatcher = _dispatchers.get(key)
            if dispatcher is not None and dispatcher.current() is not None:
                raise NestedOverrideError(
                    f"{self.name} is already overridden on thread "
                    f"{threading.current_thread().name}"
                )
            if dispatcher is None:
                dispatcher = _Dispatcher(self.owner, self.attribute)
                dispatcher.install()
                _dispatchers[key] = dispatcher
            dispatcher.local.scope = self
            dispatcher.active += 1

        self._dispatcher = dispatcher
        self.thread = threading.current_thread()
        logger.info(
            f"Override {self.token} of {self.name} acquired on {self.thread.name}"
        )
        return self

    def release(self) -> None:
        """Deactivate the override; a second release does nothing.

        Raises:
            RegistrationError: If called from a thread other than the owner
        """
        dispatcher = self._dispatcher
        if dispatcher is None:
            return
        if threading.current_thread() is not self.thread:
            raise RegistrationError(
                f"Override of {self.name} must be released on {self.thread.name}"
            )

        with _lock:
            dispatcher.local.scope = None
            dispatcher.active -= 1
            if dispatcher.active == 0:
                dispatcher.restore()
                del _dispatchers[(id(self.owner), self.attribute)]
            self._dispatcher = None
        logger.info(f"Override {self.token} of {self.name} released")

    def __enter__(self) -> "StaticOverride":
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    async def __aenter__(self) -> "StaticOverride":
        return self.acquire()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def override(
    target: Any,
    replacement: Callable | None = None,
    strictness: Strictness | str | None = None,
) -> StaticOverride:
    """Create an override scope for target; use it with a with-statement.

    Args:
        target: Module-level function, static method, or (owner, "name")
        replacement: Callable used on this thread while the scope is active;
            when omitted a function double is created and exposed as
            scope.double
        strictness: Strictness of that function double

    Returns:
        The (not yet acquired) StaticOverride
    """
    return StaticOverride(target, replacement, strictness=strictness)


def active_overrides() -> list[str]:
    """Names of targets that currently have a dispatcher installed."""
    with _lock:
        return sorted(_target_name(d.owner, d.attribute) for d in _dispatchers.values())
