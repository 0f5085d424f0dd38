from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


def default_backup_folder() -> Path:
    """Platform default location for the mirrored backup file."""
    home = Path.home()
    if sys.platform.startswith("win"):
        return home / "Documents" / "CodeSnippets"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "CodeSnippets"
    return home / ".config" / "codesnippets"


@dataclass(frozen=True)
class BackupSettings:
    folder: Optional[Path] = None
    file_name: str = "snippets.json"
    watch: bool = True
    polling: bool = False
    poll_interval: float = 1.0

    @property
    def path(self) -> Optional[Path]:
        return self.folder / self.file_name if self.folder is not None else None


@dataclass(frozen=True)
class RemoteSettings:
    token: Optional[str] = None
    description_prefix: str = "Snippet"
    prune_missing_on_pull: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.token)


class SyncConfig(BaseSettings):
    """
    Settings for the snippet store and its replicas, based on Pydantic Settings.

    - Reads environment variables, then `.env.local`, then `.env`.
    - Components never read this object at call time; the composition root
      derives `BackupSettings` / `RemoteSettings` and passes them in.
    """

    STORE_DIR: Path = Field(
        default_factory=lambda: Path.home() / ".snipsync",
        description="Directory holding the canonical store and the gist id mapping",
    )

    BACKUP_FOLDER: Optional[Path] = Field(
        default=None, description="Folder of the mirrored backup file (e.g. inside Dropbox)"
    )
    BACKUP_FILE_NAME: str = Field(default="snippets.json", description="Mirrored backup file name")
    BACKUP_WATCH_ENABLED: bool = Field(
        default=True, description="Watch the backup file and absorb external edits"
    )
    BACKUP_WATCH_POLLING: bool = Field(
        default=False, description="Use a polling observer (network / cloud-synced drives)"
    )
    BACKUP_POLL_INTERVAL_SEC: float = Field(
        default=1.0, gt=0, le=3600, description="Polling observer interval in seconds"
    )
    AUTO_SYNC_ON_OPEN: bool = Field(
        default=False, description="Absorb the backup file when the application starts"
    )

    GITHUB_TOKEN: Optional[str] = Field(
        default=None, description="GitHub token with the gist scope"
    )
    GIST_DESCRIPTION_PREFIX: str = Field(
        default="Snippet", description="Prefix of the description of each gist"
    )
    GIST_PRUNE_MISSING_ON_PULL: bool = Field(
        default=True, description="Drop mappings of gists deleted out-of-band during pull"
    )

    LOG_LEVEL: str = Field(default="INFO", description="Minimum log level")
    LOG_FORMAT: str = Field(default="json", description="json | console")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
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
        """Chain of .env files: .env.local first, then .env, after real env vars."""
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(settings_cls, env_file=".env.local", case_sensitive=True),
            DotEnvSettingsSource(settings_cls, env_file=".env", case_sensitive=True),
            file_secret_settings,
        )

    @field_validator("STORE_DIR", mode="before")
    @classmethod
    def _expand_store_dir(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("STORE_DIR must not be empty")
        return Path(os.path.expandvars(str(v))).expanduser()

    @field_validator("BACKUP_FOLDER", mode="before")
    @classmethod
    def _expand_backup_folder(cls, v):
        if v is None or str(v).strip() == "":
            return None
        return Path(os.path.expandvars(str(v))).expanduser()

    @field_validator("BACKUP_FILE_NAME")
    @classmethod
    def _validate_backup_file_name(cls, v: str) -> str:
        name = (v or "").strip()
        if not name or Path(name).name != name:
            raise ValueError("BACKUP_FILE_NAME must be a bare file name")
        if not name.lower().endswith(".json"):
            raise ValueError("BACKUP_FILE_NAME must end with .json")
        return name

    @field_validator("LOG_LEVEL")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown LOG_LEVEL: {v}")
        return level

    @field_validator("LOG_FORMAT")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        fmt = (v or "").strip().lower()
        if fmt not in {"json", "console"}:
            raise ValueError("LOG_FORMAT must be json or console")
        return fmt

    @field_validator("GITHUB_TOKEN", mode="before")
    @classmethod
    def _blank_token_is_none(cls, v):
        if v is None:
            return None
        token = str(v).strip()
        return token or None

    def backup_settings(self) -> BackupSettings:
        return BackupSettings(
            folder=self.BACKUP_FOLDER,
            file_name=self.BACKUP_FILE_NAME,
            watch=self.BACKUP_WATCH_ENABLED,
            polling=self.BACKUP_WATCH_POLLING,
            poll_interval=self.BACKUP_POLL_INTERVAL_SEC,
        )

    def remote_settings(self) -> RemoteSettings:
        return RemoteSettings(
            token=self.GITHUB_TOKEN,
            description_prefix=self.GIST_DESCRIPTION_PREFIX,
            prune_missing_on_pull=self.GIST_PRUNE_MISSING_ON_PULL,
        )

    @property
    def store_dir(self) -> Path:
        return self.STORE_DIR


def load_config(**overrides) -> SyncConfig:
    """Build a fresh SyncConfig; keyword overrides win over the environment."""
    return SyncConfig(**overrides)
