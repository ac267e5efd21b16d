"""Turn raw per-source records into canonical Sessions."""

import logging
from datetime import datetime
from typing import Any, Iterable

from .core import (
    AgentType,
    ExtractionStats,
    Message,
    RawRecord,
    Session,
    SessionMetadata,
)
from .normalize import extract_text, normalize_timestamp, parse_iso, role_from_hint

logger = logging.getLogger(__name__)


def record_to_message(record: RawRecord, now: datetime | None = None) -> Message | None:
    """Normalize one RawRecord, or return None if it carries no text."""
    text = extract_text(record.raw_content)
    if not text.strip():
        return None
    return Message(
        display_text=text,
        role=role_from_hint(record.role_hint),
        timestamp_iso=normalize_timestamp(record.raw_timestamp, now),
        pasted_contents=dict(record.pasted_contents or {}),
    )


def assemble_session(
    session_id: str,
    records: Iterable[RawRecord],
    *,
    agent_type: AgentType,
    metadata: SessionMetadata,
    stats: ExtractionStats,
    summary: str | None = None,
    last_activity: Any = None,
    now: datetime | None = None,
) -> Session | None:
    """Build a Session from one conversation's records.

    Returns None (and counts an empty session) when no record yields text.
    ``last_activity`` is a source-level "last updated" value that can push
    the session timestamp past the newest message.
    """
    messages = []
    for record in records:
        msg = record_to_message(record, now)
        if msg is None:
            stats.records_dropped += 1
            continue
        messages.append(msg)

    if not messages:
        stats.empty_sessions += 1
        logger.debug("Session %s has no extractable messages, skipping", session_id)
        return None

    candidates = [m.timestamp_iso for m in messages]
    if last_activity is not None:
        candidates.append(normalize_timestamp(last_activity, now))
    timestamp_iso = max(candidates, key=lambda ts: parse_iso(ts))

    if summary:
        metadata.summary = summary

    stats.sessions += 1
    return Session(
        id=session_id,
        timestamp_iso=timestamp_iso,
        messages=tuple(messages),
        agent_type=agent_type,
        metadata=metadata,
    )
