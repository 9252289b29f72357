"""Wallet settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``ECASH_``, nested via ``__``)
2. YAML config file (``config_path`` or ``ECASH_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class SecretsPolicy(enum.StrEnum):
    """How secrets for new outputs are produced when the caller gives no policy.

    ``AUTO`` picks deterministic secrets when a seed is configured and random
    secrets otherwise.
    """

    AUTO = "auto"
    RANDOM = "random"
    DETERMINISTIC = "deterministic"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class MintConfig(BaseSettings):
    """Mint (issuer) connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="ECASH_MINT__",
        case_sensitive=False,
    )

    url: str = "http://localhost:3338"
    timeout: float = 30.0
    auth_token: str = ""


class SelectionConfig(BaseSettings):
    """Tunables for the RGLI proof selector."""

    model_config = SettingsConfigDict(
        env_prefix="ECASH_SELECTION__",
        case_sensitive=False,
    )

    max_trials: int = Field(default=60, ge=1)
    max_time_ms: int = Field(default=1000, ge=0)
    max_swap_attempts: int = Field(default=5000, ge=0)
    max_overage_percent: float = Field(
        default=0,
        ge=0,
        description="Acceptable close-match overage as a percentage of the target",
    )
    max_overage_amount: int = Field(
        default=0,
        ge=0,
        description="Acceptable close-match overage as an absolute amount",
    )


class OutputConfig(BaseSettings):
    """Output planning settings."""

    model_config = SettingsConfigDict(
        env_prefix="ECASH_OUTPUT__",
        case_sensitive=False,
    )

    denomination_target: int = Field(default=3, ge=1)
    max_fee_iterations: int = Field(default=1000, ge=1)


class RestoreConfig(BaseSettings):
    """Deterministic restore settings."""

    model_config = SettingsConfigDict(
        env_prefix="ECASH_RESTORE__",
        case_sensitive=False,
    )

    gap_limit: int = Field(default=300, ge=1)
    batch_size: int = Field(default=100, ge=1)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="ECASH_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class WalletConfig(BaseSettings):
    """Top-level wallet configuration.

    Loads settings from environment variables (``ECASH_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="ECASH_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Raises the ecash_wallet package logger to DEBUG.
    debug: bool = False
    unit: str = "sat"
    keyset_id: str = ""
    secrets_policy: SecretsPolicy = SecretsPolicy.AUTO
    config_path: str = ""

    mint: MintConfig = Field(default_factory=MintConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    restore: RestoreConfig = Field(default_factory=RestoreConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``WalletConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
