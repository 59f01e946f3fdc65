from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

LOCAL_CONFIG_NAME = Path(".deskbridge") / "deskbridge.toml"
HOME_CONFIG_PATH = Path.home() / ".deskbridge" / "deskbridge.toml"

# Environment overrides: variable -> (section, key, kind)
ENV_OVERRIDES: dict[str, tuple[str, str, str]] = {
    "DESKBRIDGE_POLL_TIMEOUT_MS": ("polling", "timeout_ms", "int"),
    "DESKBRIDGE_POLL_INTERVAL_MS": ("polling", "interval_ms", "int"),
    "DESKBRIDGE_SKIP_POLLING": ("polling", "skip_polling", "bool"),
    "DESKBRIDGE_SCRIPT_RETRIES": ("script", "retries", "int"),
    "DESKBRIDGE_APP_NAME": ("target", "app_name", "str"),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ConfigError(RuntimeError):
    pass


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Load the TOML config.

    An explicit path must exist. Without one, the local then home candidates
    are tried and an empty config is returned when neither exists.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def _parse_env_value(name: str, raw: str, kind: str) -> Any:
    value = raw.strip()
    if kind == "int":
        try:
            parsed = int(value)
        except ValueError:
            raise ConfigError(
                f"Invalid {name} environment variable; expected an integer."
            ) from None
        if parsed <= 0:
            raise ConfigError(
                f"Invalid {name} environment variable; expected a positive integer."
            )
        return parsed
    if kind == "bool":
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"Invalid {name} environment variable; expected a boolean.")
    if not value:
        raise ConfigError(f"Invalid {name} environment variable; expected a non-empty string.")
    return value


def apply_env_overrides(
    config: Mapping[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Return a copy of `config` with DESKBRIDGE_* variables applied on top."""
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, Mapping) else value
        for key, value in config.items()
    }
    for name, (section, key, kind) in ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None:
            continue
        table = merged.get(section)
        if table is None:
            table = {}
            merged[section] = table
        elif not isinstance(table, dict):
            raise ConfigError(f"Invalid `{section}` in config; expected a table.")
        table[key] = _parse_env_value(name, raw, kind)
    return merged
