from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "gh-deps"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_LIMIT = 50
TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")


@dataclass(frozen=True)
class PollSettings:
    """Timing of the post-action status polls (seconds)."""

    merge_refresh_delay: float = 2.0
    rebase_initial_delay: float = 20.0
    max_delay: float = 160.0
    max_attempts: int = 5

    @staticmethod
    def from_dict(data: dict[str, Any]) -> PollSettings:
        defaults = PollSettings()
        return PollSettings(
            merge_refresh_delay=float(data.get("merge_refresh_delay", defaults.merge_refresh_delay)),
            rebase_initial_delay=float(data.get("rebase_initial_delay", defaults.rebase_initial_delay)),
            max_delay=float(data.get("max_delay", defaults.max_delay)),
            max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
        )


@dataclass(frozen=True)
class Viewport:
    """Terminal size used by the renderer until the first resize event."""

    width: int = 80
    height: int = 24

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Viewport:
        defaults = Viewport()
        return Viewport(
            width=int(data.get("width", defaults.width)),
            height=int(data.get("height", defaults.height)),
        )


@dataclass
class AppConfig:
    auth_token: str | None = None
    exclude_repositories: list[str] = field(default_factory=list)
    poll: PollSettings = field(default_factory=PollSettings)
    viewport: Viewport = field(default_factory=Viewport)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AppConfig:
        """Create an `AppConfig` instance from a plain dictionary.

        Args:
            data: A mapping parsed from JSON containing optional keys
                `auth_token` (str | None), `exclude_repositories` (list[str]),
                `poll` (object, see `PollSettings`) and `viewport`
                ({"width": int, "height": int}).

        Returns:
            A populated `AppConfig` object.
        """
        return AppConfig(
            auth_token=data.get("auth_token"),
            exclude_repositories=list(data.get("exclude_repositories", []) or []),
            poll=PollSettings.from_dict(data.get("poll") or {}),
            viewport=Viewport.from_dict(data.get("viewport") or {}),
        )


@dataclass(frozen=True)
class RunConfig:
    """Command-line options, fixed for the lifetime of the process."""

    target: str
    is_organization: bool
    limit: int = DEFAULT_LIMIT
    interactive: bool = False
    verbose: bool = False
    skip_checks: bool = False
    exclude_repositories: frozenset[str] = frozenset()

    @property
    def scope_label(self) -> str:
        kind = "organization" if self.is_organization else "user"
        return f"{kind}: {self.target}"


def normalize_exclusions(target: str, names: Iterable[str]) -> frozenset[str]:
    """Expand excluded repository names for lookup by "owner/repo".

    A bare "repo" is matched both as "<target>/repo" and as itself; a full
    "owner/repo" is kept as-is so repositories of other owners can be excluded.

    Args:
        target: Organization or user being scanned.
        names: Raw names from the command line and config file.

    Returns:
        The set of names to skip.
    """
    excluded: set[str] = set()
    for raw in names:
        for name in raw.split(","):
            name = name.strip()
            if not name:
                continue
            if "/" in name:
                excluded.add(name)
            else:
                excluded.add(f"{target}/{name}")
                excluded.add(name)
    return frozenset(excluded)


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from `CONFIG_PATH`, falling back to defaults.

    The file is optional and never written by gh-deps.

    Args:
        path: Override for the config file location.

    Returns:
        The loaded `AppConfig`, or a default instance if the file is missing.

    Raises:
        OSError: If reading the file fails.
        json.JSONDecodeError: If the file exists but contains invalid JSON.
    """
    path = path or CONFIG_PATH
    if not path.exists():
        return AppConfig()
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    logger.debug(f"Loaded configuration from {path}")
    return AppConfig.from_dict(data)


def resolve_token(cfg: AppConfig) -> str | None:
    """Find a GitHub token: config file, environment, then the `gh` CLI.

    Args:
        cfg: Loaded application configuration.

    Returns:
        The token, or None when no source provides one.
    """
    if cfg.auth_token:
        return cfg.auth_token
    for var in TOKEN_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, check=False)
    except FileNotFoundError:
        logger.debug("gh CLI not found; no token from `gh auth token`")
        return None
    token = result.stdout.strip()
    return token or None
