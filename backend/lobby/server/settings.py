"""Room server configuration via environment variables."""

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from pydantic_settings.sources.base import PydanticBaseSettingsSource

from shared.validators import StringListEnvSettingsSource, parse_string_list


class LobbyServerSettings(BaseSettings):
    model_config = {"env_prefix": "LOBBY_"}

    database_path: str = Field(default="backend/storage.db", min_length=1)  # ":memory:" for a throwaway store
    log_dir: str = "backend/logs/lobby"
    cors_origins: list[str] = []

    # Rooms older than this are deleted by the sweeper regardless of state.
    room_retention_seconds: int = Field(default=3600, ge=60)
    cleanup_interval_seconds: int = Field(default=3600, ge=1)

    # Attempts per room write before giving up with write-conflict.
    max_write_attempts: int = Field(default=5, ge=1)

    # When unset, results are kept in the store's own leaderboard table.
    leaderboard_url: str | None = None
    leaderboard_timeout_seconds: float = Field(default=5.0, gt=0)

    @property
    def room_retention(self) -> timedelta:
        return timedelta(seconds=self.room_retention_seconds)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
