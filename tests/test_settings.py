from pathlib import Path

import pytest
from pydantic import ValidationError

from deskbridge.config import ConfigError
from deskbridge.settings import (
    DeskbridgeSettings,
    PollingSettings,
    load_settings,
    validate_settings_data,
)


def test_defaults() -> None:
    settings = DeskbridgeSettings()
    assert settings.target.app_name == "Claude"
    assert settings.target.response_start_delay_ms == 3500
    assert settings.polling.timeout_ms == 30000
    assert settings.polling.interval_ms == 1500
    assert settings.polling.required_stable_checks == 2
    assert settings.polling.skip_polling is False
    assert settings.script.retries == 3
    assert settings.script.max_script_length == 50000
    assert settings.limits.max_prompt_length == 10000
    assert settings.limits.max_conversation_id_length == 100


def test_load_settings_merges_file_and_env(tmp_path: Path) -> None:
    path = tmp_path / "deskbridge.toml"
    path.write_text(
        "[polling]\ntimeout_ms = 60000\ninterval_ms = 2000\n\n[script]\nretries = 2\n",
        encoding="utf-8",
    )

    settings, loaded_from = load_settings(
        path, environ={"DESKBRIDGE_SCRIPT_RETRIES": "4"}
    )

    assert loaded_from == path
    assert settings.polling.timeout_ms == 60000
    assert settings.polling.interval_ms == 2000
    assert settings.script.retries == 4


@pytest.mark.parametrize(
    ("data", "message"),
    [
        ({"polling": {"interval_ms": 100}}, "min_interval_ms"),
        ({"polling": {"interval_ms": 20000}}, "max_interval_ms"),
        ({"polling": {"timeout_ms": 400000}}, "max_timeout_ms"),
        ({"polling": {"required_stable_checks": 0}}, "polling.required_stable_checks"),
        ({"script": {"retries": 0}}, "script.retries"),
        ({"target": {"app_name": ""}}, "target.app_name"),
        ({"unknown": {}}, "unknown"),
    ],
)
def test_invalid_settings(data: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        validate_settings_data(data)


def test_invalid_settings_name_the_file(tmp_path: Path) -> None:
    path = tmp_path / "deskbridge.toml"
    path.write_text("[limits]\nmax_prompt_length = -1\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid config in"):
        load_settings(path, environ={})


def test_settings_are_frozen() -> None:
    polling = PollingSettings()
    with pytest.raises(ValidationError):
        polling.timeout_ms = 5  # type: ignore[misc]
