"""Cursor Copilot (interactive chat) backend.

Reads per-workspace databases under workspaceStorage/<hash>/state.vscdb.
The ``ItemTable`` key ``interactive.sessions`` holds a JSON array of chat
sessions, each with a ``requests`` list of prompt/response pairs. Sessions
have no native id, so one is derived from the workspace hash and the
session's position in the array.
"""

import json
import logging
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from ..assembler import assemble_session
from ..config import get_cursor_workspace_path
from ..core import AgentType, ExtractionStats, RawRecord, Session, SessionMetadata
from ..normalize import deterministic_uuid
from ..projects import folder_from_uri, infer_project
from ..provider import ChatProvider, connect_readonly, decode_value, table_exists
from ..schemas import CopilotRequest, CopilotSession

logger = logging.getLogger(__name__)

SESSIONS_KEY = "interactive.sessions"


def copilot_session_id(workspace_id: str, index: int) -> str:
    """Stable id for the session at ``index`` in a workspace's session array."""
    return deterministic_uuid(f"{workspace_id}-session-{index}")


def request_to_records(request: CopilotRequest) -> list[RawRecord]:
    """Split one prompt/response request into user and assistant records."""
    records = []
    timestamp = request.timestamp

    if request.message is not None and request.message.text:
        records.append(RawRecord("user", request.message.text, timestamp))

    parts = [part.value for part in request.response if part.value and part.value.strip()]
    if parts:
        records.append(RawRecord("assistant", "\n".join(parts), timestamp))

    return records


class CursorCopilotProvider(ChatProvider):
    """Provider for Cursor's per-workspace interactive chat sessions."""

    name = "cursor_copilot"
    agent_type = AgentType.CURSOR
    source = "cursor-copilot"

    def default_base_path(self) -> Path:
        return get_cursor_workspace_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def iter_artifacts(self) -> Iterator[Path]:
        base = self.get_base_path()
        for ws_dir in sorted(base.iterdir()):
            db_path = ws_dir / "state.vscdb"
            if ws_dir.is_dir() and db_path.is_file():
                yield db_path

    def parse_artifact(self, path: Path, stats: ExtractionStats) -> list[Session]:
        workspace_id = path.parent.name
        folder = self._read_workspace_folder(path.parent)

        conn = connect_readonly(path)
        try:
            if not table_exists(conn, "ItemTable"):
                return []
            row = conn.execute(
                "SELECT value FROM ItemTable WHERE key = ?", (SESSIONS_KEY,)
            ).fetchone()
        finally:
            conn.close()

        if not row:
            return []

        sessions_data = json.loads(decode_value(row[0]) or "")
        if not isinstance(sessions_data, list):
            raise ValueError(f"{SESSIONS_KEY} is not a list")

        project = infer_project([folder], workspace_folder=folder)
        sessions = []

        for index, raw_session in enumerate(sessions_data):
            try:
                session_data = CopilotSession.model_validate(raw_session)
            except ValidationError:
                stats.records_skipped += 1
                logger.debug("Malformed Copilot session #%d in %s", index, path)
                continue

            records = []
            for raw_request in session_data.requests:
                try:
                    request = CopilotRequest.model_validate(raw_request)
                except ValidationError:
                    stats.records_skipped += 1
                    continue
                records.extend(request_to_records(request))

            metadata = SessionMetadata(
                project_path=project.path,
                project_name=project.name,
                workspace_id=workspace_id,
                source=self.source,
                extra={"workspace": folder},
            )
            session = assemble_session(
                copilot_session_id(workspace_id, index),
                records,
                agent_type=self.agent_type,
                metadata=metadata,
                stats=stats,
            )
            if session is not None:
                sessions.append(session)

        return sessions

    def _read_workspace_folder(self, ws_dir: Path) -> str | None:
        """Extract the project folder from workspace.json."""
        ws_json = ws_dir / "workspace.json"
        if not ws_json.exists():
            return None
        try:
            data = json.loads(ws_json.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read workspace.json in %s: %s", ws_dir, e)
            return None
        if not isinstance(data, dict):
            return None
        return folder_from_uri(data.get("folder"))
