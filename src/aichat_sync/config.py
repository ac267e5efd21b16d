"""Platform-aware path resolution and run configuration."""

import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path


def _cursor_user_dir() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Cursor" / "User"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "Cursor" / "User"
    else:  # Linux
        return Path.home() / ".config" / "Cursor" / "User"


def get_cursor_workspace_path() -> Path:
    """Return the path to Cursor's workspaceStorage directory."""
    env = os.environ.get("AICHAT_CURSOR_PATH")
    if env:
        return Path(env)
    return _cursor_user_dir() / "workspaceStorage"


def get_cursor_global_path() -> Path:
    """Return the path to Cursor's globalStorage state.vscdb."""
    env = os.environ.get("AICHAT_CURSOR_PATH")
    if env:
        # If custom path set, assume it's the parent and globalStorage is alongside workspaceStorage
        return Path(env).parent / "globalStorage" / "state.vscdb"
    return _cursor_user_dir() / "globalStorage" / "state.vscdb"


def get_claude_code_path() -> Path:
    """Return the path to Claude Code's projects directory."""
    env = os.environ.get("AICHAT_CLAUDE_PATH")
    if env:
        return Path(env)

    return Path.home() / ".claude" / "projects"


def _int_env(name: str) -> int | None:
    value = os.environ.get(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class SyncConfig:
    """Settings for one extraction/sync run.

    Built once at startup and handed to the providers and the sink.
    """

    claude_path: Path = field(default_factory=get_claude_code_path)
    cursor_workspace_path: Path = field(default_factory=get_cursor_workspace_path)
    cursor_global_path: Path = field(default_factory=get_cursor_global_path)
    lookback_days: int | None = None  # only artifacts modified in this window
    sink_url: str | None = None
    sink_key: str | None = None
    account_id: str | None = None

    @classmethod
    def from_env(cls, **overrides) -> "SyncConfig":
        values = {
            "lookback_days": _int_env("AICHAT_LOOKBACK_DAYS"),
            "sink_url": os.environ.get("AICHAT_SINK_URL") or None,
            "sink_key": os.environ.get("AICHAT_SINK_KEY") or None,
            "account_id": os.environ.get("AICHAT_ACCOUNT_ID") or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def cutoff(self, now: datetime | None = None) -> datetime | None:
        """Modification-time cutoff for the artifact pre-filter."""
        if not self.lookback_days or self.lookback_days <= 0:
            return None
        now = now or datetime.now(timezone.utc)
        return now - timedelta(days=self.lookback_days)
