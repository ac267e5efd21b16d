"""Abstract base class for chat history providers."""

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .core import AgentType, ExtractionResult, ExtractionStats, Session

logger = logging.getLogger(__name__)


class ChatProvider(ABC):
    """Base class for on-disk chat history formats.

    Each backend (Claude Code, Cursor composer, Cursor Copilot) implements
    artifact discovery and per-artifact parsing. The batch loop, the
    modification-time pre-filter and failure isolation live here, so one
    unreadable file never takes down a whole pass.
    """

    name: str  # "claude_code", "cursor_composer", "cursor_copilot"
    agent_type: AgentType
    source: str  # SessionMetadata.source value

    def __init__(self, base_path: Path | None = None):
        self._base_path = Path(base_path) if base_path is not None else None

    @abstractmethod
    def default_base_path(self) -> Path:
        """Return the platform default location of this format's data."""
        ...

    def get_base_path(self) -> Path:
        """Return the root where this IDE stores chat data."""
        if self._base_path is not None:
            return self._base_path
        return self.default_base_path()

    def is_available(self) -> bool:
        """Return True if this IDE's data exists on this machine."""
        return self.get_base_path().exists()

    @abstractmethod
    def iter_artifacts(self) -> Iterator[Path]:
        """Yield every file this provider knows how to parse."""
        ...

    @abstractmethod
    def parse_artifact(self, path: Path, stats: ExtractionStats) -> list[Session]:
        """Parse one artifact into sessions.

        May raise on unreadable input; ``extract`` handles that.
        """
        ...

    def extract(self, since: datetime | None = None) -> ExtractionResult:
        """Parse every artifact, skipping ones unmodified since ``since``."""
        result = ExtractionResult()
        stats = result.stats

        if not self.get_base_path().exists():
            logger.info("%s: no data at %s", self.name, self.get_base_path())
            return result

        try:
            artifacts = list(self.iter_artifacts())
        except OSError as e:
            logger.warning("%s: cannot list %s: %s", self.name, self.get_base_path(), e)
            return result

        for path in artifacts:
            stats.artifacts_scanned += 1

            if since is not None and _mtime(path) < since:
                stats.artifacts_filtered += 1
                continue

            artifact_stats = ExtractionStats()
            try:
                sessions = self.parse_artifact(path, artifact_stats)
            except (OSError, sqlite3.Error, ValueError) as e:
                stats.artifacts_skipped += 1
                logger.warning("%s: skipping unreadable artifact %s: %s", self.name, path, e)
                continue
            except Exception as e:
                stats.artifacts_skipped += 1
                logger.warning("%s: failed to parse %s: %s", self.name, path, e, exc_info=True)
                continue

            # A failed artifact contributes neither sessions nor counters.
            result.stats = stats = stats + artifact_stats
            result.sessions.extend(sessions)

        logger.info(
            "%s: %d sessions from %d artifacts (%d filtered, %d skipped, %d empty)",
            self.name, len(result.sessions), stats.artifacts_scanned,
            stats.artifacts_filtered, stats.artifacts_skipped, stats.empty_sessions,
        )
        return result


def _mtime(path: Path) -> datetime:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        # Let the parser report it as unreadable.
        return datetime.max.replace(tzinfo=timezone.utc)


def connect_readonly(db_path: Path) -> sqlite3.Connection:
    """Open a SQLite database without any chance of writing to it."""
    if not Path(db_path).is_file():
        raise FileNotFoundError(f"No database at {db_path}")
    return sqlite3.connect(f"{Path(db_path).resolve().as_uri()}?mode=ro", uri=True)


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    )
    return cur.fetchone() is not None


def decode_value(val) -> str | None:
    """SQLite values may come back as TEXT, BLOB or a stray INTEGER/REAL."""
    if val is None:
        return None
    if isinstance(val, str):
        return val
    if isinstance(val, (bytes, bytearray, memoryview)):
        return bytes(val).decode("utf-8", errors="replace")
    return str(val)
