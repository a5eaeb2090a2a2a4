# Application settings.
# Created: 2026-10-19
#
# Values resolve from (highest first): constructor kwargs / config.json,
# OLLACHAT_* environment variables, .env, field defaults.

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Return the config directory, creating it if needed."""
    override = os.environ.get("OLLACHAT_CONFIG_DIR")
    config_dir = Path(override) if override else Path.home() / ".ollachat"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


class Settings(BaseSettings):
    """ollachat configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OLLACHAT_",
        env_file=".env",
        extra="ignore",
    )

    # Inference backend
    ollama_host: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    default_model: str = Field(
        default="", description="Model used by the terminal client when none is given"
    )
    connect_timeout: float = Field(default=10.0, description="Backend connect timeout (s)")
    request_timeout: float | None = Field(
        default=300.0, description="Backend read timeout between chunks (s); None disables"
    )

    # Storage
    data_dir: Path | None = Field(
        default=None, description="Chat store directory (defaults to <config dir>/chats)"
    )

    # Exchange
    open_turn_wait: float = Field(
        default=5.0,
        description="Seconds a new request waits for a previous exchange on the same chat",
    )
    max_error_chars: int = Field(default=100, description="Error annotation length cap")
    max_pending_frames: int = Field(
        default=64,
        ge=1,
        description="Frames buffered for a slow client before backend reads pause",
    )
    document_store_chars: int = Field(
        default=2000, description="Extracted document text kept in the chat record"
    )
    document_prompt_chars: int = Field(
        default=20000, description="Extracted document text sent to the model"
    )

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 3001
    api_cors_allowed_origins: list[str] = Field(default_factory=list)

    log_level: str = "INFO"

    def resolved_data_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else get_config_dir() / "chats"

    @classmethod
    def load(cls) -> Settings:
        """Load settings, overlaying config.json on env and defaults."""
        path = get_config_path()
        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config %s: %s", path, e)
        return cls(**data)

    def save(self) -> None:
        path = get_config_path()
        payload = self.model_dump(mode="json", exclude_defaults=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings.load()
