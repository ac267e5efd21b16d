"""Tests for the Cursor Copilot backend."""

import json
import sqlite3
import uuid

from aichat_sync.backends.copilot import (
    CursorCopilotProvider,
    copilot_session_id,
    request_to_records,
)
from aichat_sync.core import AgentType
from aichat_sync.schemas import CopilotRequest


class TestRequestToRecords:

    def test_prompt_and_response(self):
        records = request_to_records(CopilotRequest.model_validate({
            "message": {"text": "q"},
            "response": [{"value": "a"}, {"value": "b"}],
            "timestamp": 123,
        }))
        assert [(r.role_hint, r.raw_content) for r in records] == [("user", "q"), ("assistant", "a\nb")]
        assert all(r.raw_timestamp == 123 for r in records)

    def test_blank_response_parts_ignored(self):
        request = CopilotRequest.model_validate(
            {"message": {"text": "q"}, "response": [{"value": " "}, {"kind": "x"}, {"value": {"md": "x"}}]}
        )
        records = request_to_records(request)
        assert [r.role_hint for r in records] == ["user"]

    def test_empty_request(self):
        assert request_to_records(CopilotRequest()) == []


class TestCursorCopilotProvider:
    """Tests for CursorCopilotProvider."""

    def test_is_available(self, tmp_cursor_workspace, tmp_path):
        assert CursorCopilotProvider(tmp_cursor_workspace).is_available() is True
        assert CursorCopilotProvider(tmp_path / "nonexistent").is_available() is False

    def test_iter_artifacts(self, tmp_cursor_workspace):
        names = [p.parent.name for p in CursorCopilotProvider(tmp_cursor_workspace).iter_artifacts()]
        assert names == ["abc123hash", "bare999", "corrupt000"]

    def test_extract(self, tmp_cursor_workspace):
        result = CursorCopilotProvider(tmp_cursor_workspace).extract()

        assert len(result.sessions) == 2
        assert result.stats.artifacts_scanned == 3
        assert result.stats.artifacts_skipped == 1  # corrupt000
        assert result.stats.records_skipped == 1  # "requests": "oops"
        assert result.stats.empty_sessions == 1  # "requests": []
        assert result.stats.sessions == 2

    def test_session_ids_are_deterministic(self, tmp_cursor_workspace):
        first = [s.id for s in CursorCopilotProvider(tmp_cursor_workspace).extract().sessions]
        second = [s.id for s in CursorCopilotProvider(tmp_cursor_workspace).extract().sessions]

        assert first == second
        assert first == [
            copilot_session_id("abc123hash", 0),
            copilot_session_id("abc123hash", 3),
        ]
        assert uuid.UUID(first[0]).version == 4

    def test_messages(self, tmp_cursor_workspace):
        session = CursorCopilotProvider(tmp_cursor_workspace).extract().sessions[0]

        assert session.agent_type == AgentType.CURSOR
        assert [(m.role, m.display_text) for m in session.messages] == [
            ("user", "How do I parse JSON?"),
            ("assistant", "Use json.loads"),
            ("user", "And write it?"),
            ("assistant", "json.dumps"),
        ]
        assert session.messages[0].timestamp_iso == "2025-01-15T10:00:00.000Z"
        assert session.timestamp_iso == "2025-01-15T10:01:00.000Z"
        assert session.title == "How do I parse JSON?"

    def test_seconds_timestamp(self, tmp_cursor_workspace):
        session = CursorCopilotProvider(tmp_cursor_workspace).extract().sessions[1]
        assert session.timestamp_iso == "2025-01-15T11:00:00.000Z"

    def test_metadata(self, tmp_cursor_workspace):
        session = CursorCopilotProvider(tmp_cursor_workspace).extract().sessions[0]
        meta = session.metadata

        assert meta.source == "cursor-copilot"
        assert meta.workspace_id == "abc123hash"
        assert meta.project_name == "my project"
        assert meta.project_path == "/Users/testuser/Developer/my project"
        assert meta.to_dict()["workspace"] == "/Users/testuser/Developer/my project"

    def test_workspace_without_folder(self, tmp_path):
        ws_dir = tmp_path / "workspaceStorage" / "nofolder"
        ws_dir.mkdir(parents=True)
        conn = sqlite3.connect(str(ws_dir / "state.vscdb"))
        conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
        conn.execute(
            "INSERT INTO ItemTable VALUES (?, ?)",
            ("interactive.sessions", json.dumps([{"requests": [{"message": {"text": "hi"}}]}])),
        )
        conn.commit()
        conn.close()

        session = CursorCopilotProvider(tmp_path / "workspaceStorage").extract().sessions[0]
        assert session.metadata.project_path is None
        assert session.metadata.workspace_id == "nofolder"

    def test_sessions_value_not_a_list(self, tmp_path):
        ws_dir = tmp_path / "workspaceStorage" / "weird"
        ws_dir.mkdir(parents=True)
        conn = sqlite3.connect(str(ws_dir / "state.vscdb"))
        conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
        conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("interactive.sessions", '{"a": 1}'))
        conn.commit()
        conn.close()

        result = CursorCopilotProvider(tmp_path / "workspaceStorage").extract()
        assert result.sessions == []
        assert result.stats.artifacts_skipped == 1

    def test_mistyped_requests_are_skipped_alone(self, tmp_path):
        ws_dir = tmp_path / "workspaceStorage" / "mixed"
        ws_dir.mkdir(parents=True)
        sessions = [
            {"requests": [
                {"message": {"text": 5}},
                "not a request",
                {"message": {"text": "kept"}, "response": None},
            ]},
            "not a session",
        ]
        conn = sqlite3.connect(str(ws_dir / "state.vscdb"))
        conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
        conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("interactive.sessions", json.dumps(sessions)))
        conn.commit()
        conn.close()

        result = CursorCopilotProvider(tmp_path / "workspaceStorage").extract()

        assert result.stats.artifacts_skipped == 0
        assert result.stats.records_skipped == 3
        assert [m.display_text for m in result.sessions[0].messages] == ["kept"]
        assert result.sessions[0].id == copilot_session_id("mixed", 0)
