from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from laurel.domain.constants import (
    CORRECT_QUALITY,
    DEFAULT_SESSION_SIZE,
    DEFAULT_STATS_DAYS,
    MAX_QUALITY,
    MAX_SESSION_SIZE,
    MIN_QUALITY,
    PASSING_QUALITY,
    PERSIST_BACKOFF,
    PERSIST_RETRIES,
    WRONG_QUALITY,
)


def _toml_candidates() -> list[Path]:
    return [
        Path.home() / ".config/laurel/config.toml",
        Path.home() / ".laurel.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for Laurel.
    Supports loading from:
    1. Environment variables (LAUREL_*)
    2. Config file (~/.config/laurel/config.toml or ~/.laurel.toml)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="LAUREL_",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "sqlite"] = "sqlite"
    database_path: Path = Field(default_factory=lambda: Path.home() / ".config/laurel/laurel.db")

    # Review sessions
    user_id: str = "local"
    session_size: int = Field(default=DEFAULT_SESSION_SIZE, ge=1, le=MAX_SESSION_SIZE)
    correct_quality: int = Field(default=CORRECT_QUALITY, ge=MIN_QUALITY, le=MAX_QUALITY)
    wrong_quality: int = Field(default=WRONG_QUALITY, ge=MIN_QUALITY, le=MAX_QUALITY)

    # Persistence retries
    persist_retries: int = Field(default=PERSIST_RETRIES, ge=1)
    persist_backoff: float = Field(default=PERSIST_BACKOFF, ge=0)

    # Stats
    stats_days: int = Field(default=DEFAULT_STATS_DAYS, ge=1, le=365)

    # Server
    host: str = "127.0.0.1"
    port: int = 8780

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in _toml_candidates() if f.exists()), None)

        # Earlier sources take priority: overrides > env > file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("database_path", mode="before")
    @classmethod
    def expand_paths(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="after")
    def check_quality_mapping(self) -> "AppConfig":
        if self.correct_quality < PASSING_QUALITY:
            raise ValueError(f"correct_quality must be >= {PASSING_QUALITY}")
        if self.wrong_quality >= PASSING_QUALITY:
            raise ValueError(f"wrong_quality must be < {PASSING_QUALITY}")
        return self


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/laurel/config.toml (if exists)
    3. Environment variables (LAUREL_*)
    4. cli_overrides (non-None values only)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
