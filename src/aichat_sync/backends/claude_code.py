"""Claude Code chat history backend.

Reads chat data from ~/.claude/projects/ directory structure.
Each project folder holds one .jsonl log per session, plus an optional
sessions-index.json.

JSONL entry types:
- "user" or "human": User turns. Content is a string or an array of blocks;
  tool_result blocks carry no display text.
- "assistant": AI turns. Only text blocks are kept (tool_use/thinking dropped).
- "summary": Session title. The last one in the file wins.
- "file-history-snapshot", "progress", "system", "queue-operation": Skipped.

Every line may also carry ``sessionId`` (overrides the filename-derived id,
last one wins) and ``cwd`` (used for project inference).
"""

import json
import logging
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from ..assembler import assemble_session
from ..config import get_claude_code_path
from ..core import AgentType, ExtractionStats, RawRecord, Session, SessionMetadata
from ..projects import infer_project, project_dir_to_path
from ..provider import ChatProvider
from ..schemas import ClaudeEntry

logger = logging.getLogger(__name__)

_MESSAGE_TYPES = {"user": "user", "human": "user", "assistant": "assistant"}


class ClaudeCodeProvider(ChatProvider):
    """Provider for Claude Code JSONL session logs."""

    name = "claude_code"
    agent_type = AgentType.CLAUDE_CODE
    source = "claude_code"

    def default_base_path(self) -> Path:
        return get_claude_code_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def iter_artifacts(self) -> Iterator[Path]:
        base = self.get_base_path()
        for project_dir in sorted(base.iterdir()):
            if not project_dir.is_dir():
                continue
            yield from sorted(project_dir.glob("*.jsonl"))

    def parse_artifact(self, path: Path, stats: ExtractionStats) -> list[Session]:
        """Parse one session log into at most one Session."""
        session_id = path.stem
        records: list[RawRecord] = []
        summary = None
        cwd = None

        with path.open(encoding="utf-8", errors="replace") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = ClaudeEntry.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    stats.records_skipped += 1
                    logger.debug("Skipping bad line %s:%d: %s", path, line_num, e)
                    continue

                if entry.sessionId:
                    session_id = entry.sessionId
                if entry.cwd:
                    cwd = entry.cwd

                if entry.type == "summary":
                    if entry.summary and entry.summary.strip():
                        summary = entry.summary
                    continue

                if entry.type not in _MESSAGE_TYPES:
                    continue

                if entry.message is None:
                    stats.records_skipped += 1
                    logger.debug("Malformed %s entry at %s:%d", entry.type, path, line_num)
                    continue
                records.append(self._entry_to_record(entry))

        workspace_folder = cwd or self._resolve_display_path(path.parent)
        project = infer_project([workspace_folder], workspace_folder=workspace_folder)

        metadata = SessionMetadata(
            project_path=project.path,
            project_name=project.name,
            source=self.source,
            extra={"projectDir": path.parent.name, "cwd": cwd},
        )
        session = assemble_session(
            session_id,
            records,
            agent_type=self.agent_type,
            metadata=metadata,
            stats=stats,
            summary=summary,
        )
        return [session] if session else []

    # ── Private helpers ──────────────────────────────────────────────

    def _entry_to_record(self, entry: ClaudeEntry) -> RawRecord:
        """Convert a user/assistant entry that carries a message to a RawRecord."""
        return RawRecord(
            role_hint=_MESSAGE_TYPES[entry.type],
            raw_content=entry.message.content,
            raw_timestamp=entry.timestamp,
            source_keys={"uuid": entry.uuid or ""},
            pasted_contents=entry.pastedContents,
        )

    def _resolve_display_path(self, project_dir: Path) -> str:
        """Resolve the original project path for a project directory.

        First checks sessions-index.json for projectPath,
        then falls back to deriving from directory name.
        """
        index_path = project_dir / "sessions-index.json"
        if index_path.exists():
            try:
                data = json.loads(index_path.read_text(encoding="utf-8"))
                if isinstance(data, list) and data and isinstance(data[0], dict):
                    path = data[0].get("projectPath")
                    if path:
                        return path
            except (json.JSONDecodeError, OSError):
                pass

        # Derive from folder name: -Users-farhaj-dev-foo -> /Users/farhaj/dev/foo
        return project_dir_to_path(project_dir.name)
