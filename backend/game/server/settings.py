"""Game server configuration via environment variables."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from game.logic.tiles import DEFAULT_TILES_PER_PLAYER
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class StoreBackend(StrEnum):
    MEMORY = "memory"
    SQLITE = "sqlite"


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "GAME_"}

    max_games: int = Field(default=100, ge=1)
    log_dir: str = Field(default="backend/logs/game", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    store_backend: StoreBackend = StoreBackend.MEMORY
    database_path: str = Field(default="backend/storage.db", min_length=1)
    skip_turn_grace_seconds: float = Field(default=60, ge=0)
    tiles_per_player: int = Field(default=DEFAULT_TILES_PER_PLAYER, ge=1, le=20)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
