"""Settings resolution with a 4-step precedence chain and named board profiles."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from boardsync.models import Actor, MembershipContext, Role

CONFIG_PATH = Path.home() / ".config" / "boardsync" / "config.toml"


class BoardSyncSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BOARDSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Profile selection
    default_board: str | None = None  # profile name

    # Remote store
    api_url: str | None = None  # e.g. https://board.example.com/api
    api_token: SecretStr | None = None
    request_timeout: float = 30.0

    # Board and actor
    project_id: str | None = None
    actor_id: str | None = None
    actor_name: str = ""
    actor_role: Role = Role.MEMBER
    leader_id: str | None = None

    log_level: str = "WARNING"

    def membership(self) -> MembershipContext:
        if not self.actor_id:
            raise RuntimeError("actor_id is required")
        leader_id = self.leader_id or (self.actor_id if self.actor_role is Role.LEADER else None)
        return MembershipContext(
            actor=Actor(id=self.actor_id, role=self.actor_role, name=self.actor_name),
            leader_id=leader_id,
        )


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/boardsync/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(board: str | None = None) -> BoardSyncSettings:
    """Resolve active board profile and return a fully populated BoardSyncSettings.

    Precedence (highest to lowest):
    1. board argument (--board CLI flag)
    2. BOARDSYNC_DEFAULT_BOARD env var
    3. default_board key in ~/.config/boardsync/config.toml
    4. First profile defined in ~/.config/boardsync/config.toml
    """
    toml_config = _load_toml()

    active = (
        board
        or os.environ.get("BOARDSYNC_DEFAULT_BOARD")
        or toml_config.get("default_board")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        else:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    # profile values win; env vars and .env fill whatever the profile leaves unset
    settings = BoardSyncSettings(**profile_defaults)

    missing = [name for name in ("api_url", "project_id", "actor_id") if not getattr(settings, name)]
    if missing:
        env_names = ", ".join(f"BOARDSYNC_{name.upper()}" for name in missing)
        typer.echo(
            f"Missing {', '.join(missing)}. Set {env_names} or add them to the "
            f"[{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings
