"""Engine configuration: default strictness and stub resolution policy."""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace
from enum import Enum
from pathlib import Path

from double_engine.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "DOUBLE_ENGINE_CONFIG"
STRICTNESS_ENV = "DOUBLE_ENGINE_STRICTNESS"
RESOLUTION_ENV = "DOUBLE_ENGINE_RESOLUTION"


class Strictness(str, Enum):
    """What a mock does when a call has no resolving stub."""

    STRICT = "strict"
    LENIENT = "lenient"


class ResolutionPolicy(str, Enum):
    """Which of several overlapping stubs wins."""

    MOST_RECENT = "most_recent"
    FIRST_REGISTERED = "first_registered"


@dataclass(frozen=True)
class EngineConfig:
    strictness: Strictness = Strictness.STRICT
    resolution: ResolutionPolicy = ResolutionPolicy.MOST_RECENT

    def to_dict(self) -> dict:
        return {k: v.value for k, v in asdict(self).items()}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip().lower()
    return trimmed or None


def _parse(enum_type: type[Enum], key: str, value: str, source: str) -> Enum:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ConfigError(
            f"Invalid {key} '{value}' (expected one of: {allowed})", source=source
        ) from None


def _apply(
    config: EngineConfig, values: Mapping[str, str | None], source: str
) -> EngineConfig:
    strictness = _clean(values.get("strictness"))
    if strictness is not None:
        config = replace(
            config, strictness=_parse(Strictness, "strictness", strictness, source)
        )
    resolution = _clean(values.get("resolution"))
    if resolution is not None:
        config = replace(
            config,
            resolution=_parse(ResolutionPolicy, "resolution", resolution, source),
        )
    return config


def load_config_file(path: str | Path) -> dict[str, str]:
    """Read a JSON configuration file.

    Raises:
        ConfigError: If the file is missing, unparsable or not an object
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}", source=str(path)) from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}", source=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object", source=str(path))

    unknown = set(data) - {"strictness", "resolution"}
    if unknown:
        logger.warning(f"Ignoring unknown config keys in {path}: {sorted(unknown)}")
    return {k: str(v) for k, v in data.items() if k in ("strictness", "resolution")}


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """Resolve the effective configuration.

    Later sources win: built-in defaults, then the JSON file (explicit path or
    DOUBLE_ENGINE_CONFIG), then DOUBLE_ENGINE_STRICTNESS and
    DOUBLE_ENGINE_RESOLUTION.

    Args:
        path: Optional JSON config file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        The effective EngineConfig

    Raises:
        ConfigError: On unreadable files or invalid values
    """
    env = os.environ if environ is None else environ
    config = EngineConfig()

    file_path = path or env.get(CONFIG_ENV)
    if file_path:
        config = _apply(config, load_config_file(file_path), source=str(file_path))

    config = _apply(
        config,
        {"strictness": env.get(STRICTNESS_ENV), "resolution": env.get(RESOLUTION_ENV)},
        source="environment",
    )
    return config


def override_config(
    config: EngineConfig, source: str = "overrides", **values: str | None
) -> EngineConfig:
    """Return config with some keys replaced, validated like any other source."""
    return _apply(config, values, source=source)
