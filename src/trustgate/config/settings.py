"""Settings and configuration management."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from trustgate.permissions.modes import PermissionMode
from trustgate.state.store import DEFAULT_STATE_FILE

# YAML config search paths (checked in order, first found wins)
_YAML_SEARCH_PATHS = [
    Path("trustgate.yaml"),
    Path(".trustgate") / "trustgate.yaml",
    Path.home() / ".config" / "trustgate" / "trustgate.yaml",
]


def _find_yaml_config() -> Path | None:
    """Find the first trustgate.yaml in search paths."""
    for path in _YAML_SEARCH_PATHS:
        if path.is_file():
            return path
    return None


class Settings(BaseSettings):
    """trustgate settings.

    Priority chain: init kwargs > env vars > .env file > trustgate.yaml > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="TRUSTGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings, dotenv_settings]

        yaml_path = _find_yaml_config()
        if yaml_path:
            sources.append(
                YamlConfigSettingsSource(settings_cls, yaml_file=yaml_path, yaml_file_encoding="utf-8")
            )

        sources.append(file_secret_settings)
        return tuple(sources)

    # Permissions
    mode: PermissionMode | None = Field(
        None, description="Explicit starting mode; detected from the environment when unset"
    )
    strict_unregistered: bool = Field(
        False, description="Deny tools that have no registered policy"
    )
    policy_file: Path | None = Field(None, description="YAML file with extra tool policies")

    # Session state
    state_dir: Path = Field(Path(".trustgate"), description="Directory for session state")
    persist_state: bool = Field(True, description="Persist mode and session approvals")

    # Logging
    log_level: str = Field("WARNING", description="Logging level")
    log_format: Literal["text", "json"] = Field("text", description="Log format: text or json")
    sanitize_logs: bool = Field(True, description="Redact secrets from log output")

    @field_validator("mode", mode="before")
    @classmethod
    def _empty_mode_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def state_file(self) -> Path:
        return self.state_dir / DEFAULT_STATE_FILE


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
