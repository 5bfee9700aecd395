"""Runtime configuration read from ``SECRETPLAN_*`` environment variables."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretPlanSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="SECRETPLAN_", case_sensitive=False, extra="ignore"
    )

    service_name: str = "secretplan"
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    max_concurrency: int = Field(default=8, ge=1, le=256)

    # Connector selection, see secretplan.secrets.connectors.build_connector
    connector: str = "environment"
    env_prefix: str | None = None
    key_mapping: dict[str, str] = Field(default_factory=dict)

    vault_addr: str | None = None
    vault_token: SecretStr | None = None
    vault_mount: str = "secret"
    vault_base_path: str = "secrets"

    doppler_token: SecretStr | None = None
    doppler_project: str | None = None
    doppler_config: str | None = None
    doppler_api_url: str = "https://api.doppler.com"

    aws_region: str | None = None
    aws_prefix: str = ""
    aws_profile: str | None = None

    secrets_file: Path | None = None
    secrets_file_encrypted: bool = False
    secrets_file_passphrase: SecretStr | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("connector", mode="before")
    @classmethod
    def _normalise_connector(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


def load_settings(**overrides: object) -> SecretPlanSettings:
    """Build settings from the environment, letting ``overrides`` win."""

    return SecretPlanSettings(**overrides)


__all__ = ["SecretPlanSettings", "load_settings"]
