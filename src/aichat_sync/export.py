"""Flatten sessions and projects for upsert, and render sessions as Markdown/JSON."""

import json

from .core import ProjectInfo, Session
from .normalize import now_iso, parse_iso


def message_to_dict(msg) -> dict:
    return {
        "display": msg.display_text,
        "pastedContents": dict(msg.pasted_contents),
        "role": msg.role,
        "timestamp": msg.timestamp_iso,
    }


def session_to_record(session: Session, account_id: str | None = None) -> dict:
    """Flatten a Session into the row shape the remote store upserts on ``id``."""
    latest = max(
        (m.timestamp_iso for m in session.messages),
        key=lambda ts: parse_iso(ts),
        default=None,
    )
    return {
        "id": session.id,
        "timestamp": session.timestamp_iso,
        "messages": [message_to_dict(m) for m in session.messages],
        "metadata": session.metadata.to_dict(),
        "agent_type": session.agent_type.value,
        "account_id": account_id,
        "latest_message_timestamp": latest,
        "updated_at": now_iso(),
    }


def project_to_record(project: ProjectInfo, account_id: str | None = None) -> dict:
    """Flatten a ProjectInfo into the row shape keyed by (account_id, project_path)."""
    return {
        "account_id": account_id,
        "project_path": project.path,
        "name": project.name,
        "workspace_ids": sorted(project.workspace_ids),
        "composer_count": project.composer_count,
        "copilot_session_count": project.copilot_session_count,
        "claude_code_session_count": project.claude_code_session_count,
        "session_counts": dict(project.session_counts),
        "last_activity": project.last_activity_iso,
    }


def session_to_markdown(session: Session) -> str:
    """Export a session and its messages as clean Markdown."""
    meta = session.metadata
    lines = [f"# {session.title}", ""]

    if meta.project_path:
        lines.append(f"**Project:** {meta.project_path}")
    lines.append(f"**Source:** {meta.source or session.agent_type.value}")
    lines.append(f"**Updated:** {session.timestamp_iso}")
    lines.append(f"**Messages:** {session.message_count}")
    lines.extend(["", "---", ""])

    for msg in session.messages:
        ts = ""
        dt = parse_iso(msg.timestamp_iso)
        if dt:
            ts = f" ({dt.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {msg.role.capitalize()}{ts}")
        lines.append("")
        lines.append(msg.display_text)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def session_to_json(session: Session) -> str:
    """Export a session and its messages as structured JSON."""
    data = {
        "session": {
            "id": session.id,
            "title": session.title,
            "agent_type": session.agent_type.value,
            "timestamp": session.timestamp_iso,
            "message_count": session.message_count,
            "metadata": session.metadata.to_dict(),
        },
        "messages": [message_to_dict(m) for m in session.messages],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
