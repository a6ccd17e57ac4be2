"""pytest integration: a per-test source of fresh mocks.

Enabled automatically through the pytest11 entry point, or explicitly with
pytest_plugins = ("double_engine.pytest_plugin",).
"""

import logging
from typing import Any

import pytest

from double_engine.config import EngineConfig, load_config, override_config
from double_engine.factory import MockFactory, MockHandle
from double_engine.interception import StaticOverride, active_overrides, override

logger = logging.getLogger(__name__)


class DoubleSession:
    """Mocks and overrides owned by a single test.

    Every override opened through the session is released at teardown, so a
    test that forgets to close one cannot leak it into the next test.
    """

    def __init__(self, config: EngineConfig):
        self.factory = MockFactory(config)
        self._overrides: list[StaticOverride] = []

    def mock(self, spec: Any, strictness=None, name: str | None = None) -> Any:
        return self.factory.create(spec, strictness=strictness, name=name)

    def function(self, fn: Any, strictness=None) -> Any:
        return self.factory.function(fn, strictness=strictness)

    def override(
        self, target: Any, replacement=None, strictness=None
    ) -> StaticOverride:
        scope = override(target, replacement, strictness=strictness)
        self._overrides.append(scope)
        return scope

    @property
    def handles(self) -> list[MockHandle]:
        return self.factory.handles

    def lenient_stand_ins(self) -> list[str]:
        """Describe every call in this test answered by a lenient default."""
        return [
            f"{h.name} {i.describe()}"
            for h in self.handles
            for i in h.ledger.lenient_defaults()
        ]

    def close(self) -> None:
        for scope in reversed(self._overrides):
            if scope.active:
                logger.warning(f"Releasing override of {scope.name} left open by test")
                scope.release()
        self._overrides.clear()


def pytest_addoption(parser):
    parser.addini(
        "double_engine_strictness",
        "Default strictness for mocks from the doubles fixture (strict/lenient)",
        default="",
    )


@pytest.fixture
def doubles(request):
    """Fresh mocks for one test; overrides opened through it never leak."""
    config = load_config()
    strictness = request.config.getini("double_engine_strictness")
    if strictness:
        config = override_config(config, source="pytest ini", strictness=strictness)
    session = DoubleSession(config)
    yield session
    stand_ins = session.lenient_stand_ins()
    if stand_ins:
        logger.info(f"{request.node.nodeid} used lenient stand-ins: {stand_ins}")
    session.close()
    leaked = active_overrides()
    if leaked:
        logger.warning(f"Overrides still active after {request.node.nodeid}: {leaked}")

