"""Comprehensive configuration management for the exchange ledger."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import ZERO_ADDRESS

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "LEDGER_MODE"


class AppMode(str, Enum):
    """Supported deployment profiles."""

    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.LOCAL.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.LOCAL.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


def _parse_ratio_key(key: str) -> Tuple[str, str]:
    token_one, separator, token_two = key.partition(":")
    if not separator or not token_one or not token_two:
        raise ValueError(f"Token ratio keys must look like '<token_one>:<token_two>', got {key!r}")
    return token_one.strip(), token_two.strip()


class ModeConfig(BaseModel):
    """Active profile and where it was loaded from."""

    active: AppMode = Field(default=AppMode.LOCAL)
    config_file: Optional[Path] = None


class LedgerConfig(BaseModel):
    """Balance ledger defaults shared by every component."""

    native_token: str = Field(default="native")
    token_decimals: int = Field(default=6, ge=0, le=36)


class PoolConfig(BaseModel):
    """Initial flags applied to newly created pools."""

    depositing_enabled: bool = True


class StakeConfig(BaseModel):
    """Staking parameters. Rates are fixed point with ``token_decimals`` places."""

    token_address: Optional[str] = None
    interest_rate: int = Field(default=500_000, ge=0)
    staking_enabled: bool = True
    unstaking_enabled: bool = True


class SwapConfig(BaseModel):
    """Swap engine parameters."""

    royalty_fee_wallet_address: str = Field(default="treasury")
    royalty_fee_percentage: int = Field(default=500_000, ge=0)
    swap_enabled: bool = True
    # Parity with the deployed contracts checks the token-one pool before paying out.
    check_output_pool: bool = False
    token_ratios: Dict[str, int] = Field(default_factory=dict)

    @field_validator("token_ratios")
    @classmethod
    def _validate_ratio_keys(cls, value: Dict[str, int]) -> Dict[str, int]:
        for key, ratio in value.items():
            _parse_ratio_key(key)
            if ratio < 0:
                raise ValueError(f"Token ratio for {key} must be non-negative")
        return value

    def ratio_pairs(self) -> List[Tuple[str, str, int]]:
        return [(*_parse_ratio_key(key), ratio) for key, ratio in self.token_ratios.items()]


class LockConfig(BaseModel):
    """Time-lock parameters."""

    token_address: Optional[str] = None
    claiming_enabled: bool = True


class DeploymentConfig(BaseModel):
    """Identities and tokens used when bootstrapping a deployment."""

    admin_address: str = Field(default="admin")
    pool_tokens: List[str] = Field(default_factory=list)

    @field_validator("admin_address")
    @classmethod
    def _reject_zero_admin(cls, value: str) -> str:
        if not value or value == ZERO_ADDRESS:
            raise ValueError("Administrator address cannot be the zero address")
        return value


class EventBusConfig(BaseModel):
    """Event bus tuning."""

    history_size: int = Field(default=1_000, ge=16)
    persist_events: bool = True


class StorageConfig(BaseModel):
    """Event log persistence configuration."""

    database_path: Path = Field(default=Path("./ledger_events.sqlite3"))


class MonitoringConfig(BaseModel):
    """Logging and alerting configuration."""

    log_level: str = Field(default="INFO")
    slack_webhook_url: Optional[AnyHttpUrl] = None
    webhook_urls: List[AnyHttpUrl] = Field(default_factory=list)
    alert_throttle_seconds: int = Field(default=60, ge=0)


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    stake: StakeConfig = Field(default_factory=StakeConfig)
    swap: SwapConfig = Field(default_factory=SwapConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    event_bus: EventBusConfig = Field(default_factory=EventBusConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _sync_token_defaults(self) -> "AppConfig":
        if self.stake.token_address is None and self.deployment.pool_tokens:
            self.stake.token_address = self.deployment.pool_tokens[0]
        if self.lock.token_address is None and self.deployment.pool_tokens:
            self.lock.token_address = self.deployment.pool_tokens[0]
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "DeploymentConfig",
    "EventBusConfig",
    "LedgerConfig",
    "LockConfig",
    "ModeConfig",
    "MonitoringConfig",
    "PoolConfig",
    "StakeConfig",
    "StorageConfig",
    "SwapConfig",
    "ZERO_ADDRESS",
    "get_app_config",
]
