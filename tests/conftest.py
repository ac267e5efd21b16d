"""Shared test fixtures for aichat-sync."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def _create_state_db(db_path, item_table=True, disk_kv=True):
    conn = sqlite3.connect(str(db_path))
    if item_table:
        conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    if disk_kv:
        conn.execute("CREATE TABLE cursorDiskKV (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    return conn


RICH_TEXT = json.dumps({
    "root": {
        "children": [
            {"type": "paragraph", "children": [{"text": "Updated"}, {"text": "token validation"}]},
        ]
    }
})


@pytest.fixture
def write_jsonl(tmp_path):
    """Return a helper that writes JSONL lines into a Claude Code project dir."""
    projects = tmp_path / "projects"

    def _write(project_dir: str, filename: str, lines: list):
        target = projects / project_dir
        target.mkdir(parents=True, exist_ok=True)
        text = "\n".join(line if isinstance(line, str) else json.dumps(line) for line in lines)
        path = target / filename
        path.write_text(text, encoding="utf-8")
        return projects

    return _write


@pytest.fixture
def tmp_claude_code_dir(tmp_path):
    """Create a synthetic Claude Code projects directory with realistic JSONL.

    Includes:
    - User text messages (array and plain string content)
    - Assistant text + tool_use / thinking in the same entry
    - User tool_result entries (no display text)
    - Two summary entries (last one wins)
    - One invalid JSON line
    - file-history-snapshot / progress entries (ignored)
    """
    projects = tmp_path / "projects"
    project_dir = projects / "-Users-testuser-Developer-myapp"
    project_dir.mkdir(parents=True)

    index = [
        {
            "sessionId": "session-001",
            "firstPrompt": "Help me refactor the auth module",
            "projectPath": "/Users/testuser/Developer/myapp",
        },
    ]
    (project_dir / "sessions-index.json").write_text(json.dumps(index), encoding="utf-8")

    lines = [
        json.dumps({"type": "summary", "summary": "Early title"}),
        json.dumps({
            "type": "user",
            "sessionId": "session-001",
            "cwd": "/Users/testuser/Developer/myapp",
            "message": {"role": "user", "content": [{"type": "text", "text": "Help me refactor the auth module"}]},
            "timestamp": "2025-01-20T10:00:00Z",
            "uuid": "uuid-001",
        }),
        json.dumps({
            "type": "assistant",
            "sessionId": "session-001",
            "message": {"role": "assistant", "content": [
                {"type": "text", "text": "I'll help you refactor the auth module."},
                {"type": "tool_use", "id": "toolu_001", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
            ]},
            "timestamp": "2025-01-20T10:00:30Z",
            "uuid": "uuid-002",
        }),
        json.dumps({
            "type": "user",
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_001", "content": "export function authenticate() {}"},
            ]},
            "timestamp": "2025-01-20T10:00:31Z",
            "uuid": "uuid-003",
        }),
        json.dumps({
            "type": "assistant",
            "message": {"role": "assistant", "content": [
                {"type": "thinking", "thinking": "Split validation from refresh."},
                {"type": "text", "text": "I can see the auth module. Let me refactor it."},
                {"type": "tool_use", "id": "toolu_002", "name": "Edit", "input": {"file_path": "/src/auth.ts"}},
            ]},
            "timestamp": "2025-01-20T10:01:00Z",
            "uuid": "uuid-004",
        }),
        json.dumps({"type": "file-history-snapshot", "files": [{"path": "/src/auth.ts"}]}),
        '{"type": "user", "message": {not valid json',
        json.dumps({
            "type": "human",
            "message": {"role": "user", "content": [{"type": "text", "text": "Looks good, now split it into separate files"}]},
            "timestamp": "2025-01-20T10:05:00Z",
            "uuid": "uuid-006",
        }),
        json.dumps({
            "type": "assistant",
            "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "toolu_003", "name": "Bash", "input": {"command": "mkdir -p /src/auth/"}},
            ]},
            "timestamp": "2025-01-20T10:05:30Z",
            "uuid": "uuid-007",
        }),
        json.dumps({"type": "progress", "data": {"type": "hook_progress"}}),
        json.dumps({"type": "summary", "summary": "Refactored auth module into separate files"}),
        json.dumps({
            "type": "user",
            "message": {"role": "user", "content": "Thanks!"},
            "timestamp": _ms(2025, 1, 20, 10, 6, 0),
            "pastedContents": {"1": {"type": "text", "content": "pasted snippet"}},
            "uuid": "uuid-008",
        }),
    ]
    (project_dir / "transcript.jsonl").write_text("\n".join(lines), encoding="utf-8")

    other_dir = projects / "-Users-testuser-dev-other"
    other_dir.mkdir(parents=True)
    other_lines = [
        json.dumps({
            "type": "user",
            "message": {"role": "user", "content": "hi"},
            "timestamp": "2025-01-21T09:00:00Z",
        }),
        json.dumps({
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": "hello"}]},
            "timestamp": "2025-01-21T09:00:05Z",
        }),
    ]
    (other_dir / "session-002.jsonl").write_text("\n".join(other_lines), encoding="utf-8")

    return projects


@pytest.fixture
def tmp_cursor_global(tmp_path):
    """Create a Cursor global state.vscdb in the cursorDiskKV layout.

    - comp-inline: inline conversation, one rich-text bubble, one empty bubble
    - comp-separate: bubbles in separate rows, ordered by headers
    - comp-both: inline wins over separate rows
    - comp-empty: no messages anywhere
    - comp-bad + one bubble row: malformed JSON
    """
    global_dir = tmp_path / "globalStorage"
    global_dir.mkdir(parents=True)
    db_path = global_dir / "state.vscdb"
    conn = _create_state_db(db_path)

    composers = {
        "comp-inline": {
            "composerId": "comp-inline",
            "name": "Fix auth bug",
            "createdAt": _ms(2025, 1, 15, 10, 0, 0),
            "lastUpdatedAt": _ms(2025, 1, 15, 11, 0, 0),
            "conversation": [
                {"type": 1, "bubbleId": "b1", "text": "Fix the login bug"},
                {"type": 2, "bubbleId": "b2", "text": "", "richText": RICH_TEXT,
                 "modelInfo": {"modelName": "claude-3.5-sonnet"}},
                {"type": 2, "bubbleId": "b3"},
            ],
            "context": {
                "fileSelections": [
                    {"uri": {"fsPath": "/Users/testuser/Developer/webapp/src/auth.ts"}},
                ],
            },
        },
        "comp-separate": {
            "createdAt": 1736942400,  # seconds: 2025-01-15T12:00:00Z
            "conversation": [],
            "fullConversationHeadersOnly": [
                {"bubbleId": "s1", "type": 1},
                {"bubbleId": "s2", "type": 2},
            ],
            "context": {
                "folderSelections": [{"uri": {"fsPath": "/Users/testuser/Projects/theme-kit"}}],
            },
        },
        "comp-both": {
            "conversation": [
                {"type": 1, "bubbleId": "i1", "text": "inline question"},
                {"bubbleId": "i2", "text": "untyped reply"},
            ],
        },
        "comp-empty": {"conversation": []},
    }
    for composer_id, data in composers.items():
        conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)", (f"composerData:{composer_id}", json.dumps(data)))
    conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)", ("composerData:comp-bad", "not json"))

    # Row order deliberately differs from header order.
    conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)",
                 ("bubbleId:comp-separate:s2", json.dumps({"type": 2, "text": "Dark mode added"})))
    conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)",
                 ("bubbleId:comp-separate:s1", json.dumps({"type": 1, "text": "Add dark mode"})))
    conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)",
                 ("bubbleId:comp-separate:bad", "{"))
    conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)",
                 ("bubbleId:comp-both:x", json.dumps({"type": 2, "text": "should be ignored"})))
    conn.commit()
    conn.close()

    return db_path


@pytest.fixture
def tmp_cursor_global_item_table(tmp_path):
    """Create a Cursor global state.vscdb in the newer ItemTable layout (metadata only)."""
    global_dir = tmp_path / "globalStorageNew"
    global_dir.mkdir(parents=True)
    db_path = global_dir / "state.vscdb"
    conn = _create_state_db(db_path)

    composer_data = {
        "allComposers": [
            {"composerId": "it-001", "name": "Fix auth bug", "createdAt": _ms(2025, 1, 15, 10, 0, 0)},
            {"composerId": "it-002", "name": "Add dark mode"},
            {"name": "no id"},
        ],
        "selectedComposerIds": ["it-001"],
    }
    conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("composer.composerData", json.dumps(composer_data)))
    conn.commit()
    conn.close()

    return db_path


@pytest.fixture
def tmp_cursor_workspace(tmp_path):
    """Create Cursor workspaceStorage with Copilot-style interactive sessions."""
    ws_storage = tmp_path / "workspaceStorage"
    ws_dir = ws_storage / "abc123hash"
    ws_dir.mkdir(parents=True)

    workspace_json = {"folder": "file:///Users/testuser/Developer/my%20project"}
    (ws_dir / "workspace.json").write_text(json.dumps(workspace_json), encoding="utf-8")

    conn = _create_state_db(ws_dir / "state.vscdb")
    sessions = [
        {
            "requests": [
                {
                    "message": {"text": "How do I parse JSON?"},
                    "response": [{"value": "Use json.loads"}, {"value": "  "}, {"kind": "codeblock"}],
                    "timestamp": _ms(2025, 1, 15, 10, 0, 0),
                },
                {
                    "message": {"text": "And write it?"},
                    "response": [{"value": "json.dumps"}],
                    "timestamp": _ms(2025, 1, 15, 10, 1, 0),
                },
            ]
        },
        {"requests": "oops"},
        {"requests": []},
        {
            "requests": [
                {"message": {"text": "Second chat"}, "timestamp": 1736938800},  # seconds
            ]
        },
    ]
    conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("interactive.sessions", json.dumps(sessions)))
    conn.commit()
    conn.close()

    # Workspace database without an ItemTable.
    bare_dir = ws_storage / "bare999"
    bare_dir.mkdir()
    _create_state_db(bare_dir / "state.vscdb", item_table=False).close()

    # Not a database at all.
    corrupt_dir = ws_storage / "corrupt000"
    corrupt_dir.mkdir()
    (corrupt_dir / "state.vscdb").write_bytes(b"this is not sqlite" * 100)

    return ws_storage
