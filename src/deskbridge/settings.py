from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .config import ConfigError, apply_env_overrides, load_config


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TargetSettings(_Section):
    app_name: str = Field(default="Claude", min_length=1)
    activation_delay_ms: int = Field(default=1000, ge=0)
    window_check_retries: int = Field(default=10, ge=1)
    window_check_delay_ms: int = Field(default=500, ge=0)
    step_delay_ms: int = Field(default=500, ge=0)
    response_start_delay_ms: int = Field(default=3500, ge=0)


class PollingSettings(_Section):
    timeout_ms: int = Field(default=30000, gt=0)
    interval_ms: int = Field(default=1500, gt=0)
    min_interval_ms: int = Field(default=500, gt=0)
    max_interval_ms: int = Field(default=10000, gt=0)
    max_timeout_ms: int = Field(default=300000, gt=0)
    required_stable_checks: int = Field(default=2, ge=1)
    skip_polling: bool = False

    @model_validator(mode="after")
    def _check_bounds(self) -> PollingSettings:
        if self.min_interval_ms > self.interval_ms:
            raise ValueError("min_interval_ms cannot be greater than interval_ms")
        if self.interval_ms > self.max_interval_ms:
            raise ValueError("interval_ms cannot be greater than max_interval_ms")
        if self.timeout_ms > self.max_timeout_ms:
            raise ValueError("timeout_ms cannot be greater than max_timeout_ms")
        return self


class ScriptSettings(_Section):
    timeout_ms: int = Field(default=30000, gt=0)
    retries: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    max_script_length: int = Field(default=50000, gt=0)


class LimitsSettings(_Section):
    max_prompt_length: int = Field(default=10000, gt=0)
    max_conversation_id_length: int = Field(default=100, gt=0)


class DeskbridgeSettings(_Section):
    target: TargetSettings = Field(default_factory=TargetSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    script: ScriptSettings = Field(default_factory=ScriptSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


def validate_settings_data(
    data: Mapping[str, Any], *, config_path: Path | None = None
) -> DeskbridgeSettings:
    try:
        return DeskbridgeSettings.model_validate(dict(data))
    except ValidationError as exc:
        where = f" in {config_path}" if config_path is not None else ""
        raise ConfigError(
            f"Invalid config{where}: {_format_validation_error(exc)}"
        ) from None


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[DeskbridgeSettings, Path | None]:
    config, config_path = load_config(path)
    merged = apply_env_overrides(config, environ)
    return validate_settings_data(merged, config_path=config_path), config_path
