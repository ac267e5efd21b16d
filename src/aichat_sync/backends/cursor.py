"""Cursor composer chat history backend.

Reads composer conversations from Cursor's global SQLite database
(globalStorage/state.vscdb). All database access is read-only.

Two storage layouts exist and exactly one is used per database:
- DISK_KV: ``cursorDiskKV`` rows ``composerData:<composerId>`` hold the
  composer, either with an inline ``conversation`` array or with bubbles in
  separate ``bubbleId:<composerId>:<bubbleId>`` rows.
- ITEM_TABLE: ``ItemTable`` key ``composer.composerData`` holds
  ``allComposers`` metadata only; messages are not stored there.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

from ..assembler import assemble_session
from ..config import get_cursor_global_path
from ..core import (
    AgentType,
    ExtractionStats,
    RawRecord,
    RichTextDocument,
    Session,
    SessionMetadata,
)
from ..normalize import role_from_type_code
from ..projects import infer_project
from ..provider import ChatProvider, connect_readonly, decode_value, table_exists
from ..schemas import Bubble, BubbleHeader, ComposerData, ComposerHead

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class StorageVariant(Enum):
    DISK_KV = "cursorDiskKV"
    ITEM_TABLE = "ItemTable"


@dataclass
class Composer:
    """One composer conversation as stored, before normalization."""

    composer_id: str
    data: ComposerData
    bubbles: list[Bubble] = field(default_factory=list)
    from_inline: bool = False


def detect_variant(conn: sqlite3.Connection) -> StorageVariant | None:
    """Figure out which layout this database uses, or None if it has no composers."""
    if table_exists(conn, "cursorDiskKV"):
        row = conn.execute(
            "SELECT COUNT(*) FROM cursorDiskKV WHERE key LIKE 'composerData:%'"
        ).fetchone()
        if row and row[0] > 0:
            return StorageVariant.DISK_KV

    if table_exists(conn, "ItemTable"):
        row = conn.execute(
            "SELECT COUNT(*) FROM ItemTable WHERE key = 'composer.composerData'"
        ).fetchone()
        if row and row[0] > 0:
            return StorageVariant.ITEM_TABLE

    return None


def _load_row(value, model: type[M]) -> M | None:
    """Decode one stored JSON value into ``model``, or None if it does not fit."""
    try:
        return model.model_validate(json.loads(decode_value(value) or ""))
    except (json.JSONDecodeError, ValidationError):
        return None


def _load_disk_kv(conn: sqlite3.Connection, stats: ExtractionStats) -> list[Composer]:
    composers: dict[str, Composer] = {}
    for key, value in conn.execute(
        "SELECT key, value FROM cursorDiskKV WHERE key LIKE 'composerData:%'"
    ):
        composer_id = key[len("composerData:"):]
        data = _load_row(value, ComposerData)
        if not composer_id or data is None:
            stats.records_skipped += 1
            logger.debug("Malformed composerData row %s", key)
            continue
        composers[composer_id] = Composer(composer_id, data)

    separate = _load_separate_bubbles(conn, stats)

    for composer in composers.values():
        if composer.data.conversation:
            composer.bubbles = _validate_bubbles(composer.data.conversation, stats)
            composer.from_inline = True
        else:
            composer.bubbles = _order_by_headers(
                separate.get(composer.composer_id, []),
                composer.data.fullConversationHeadersOnly,
            )

    return list(composers.values())


def _validate_bubbles(raw: list, stats: ExtractionStats) -> list[Bubble]:
    bubbles = []
    for item in raw:
        try:
            bubbles.append(Bubble.model_validate(item))
        except ValidationError:
            stats.records_skipped += 1
    return bubbles


def _load_separate_bubbles(
    conn: sqlite3.Connection, stats: ExtractionStats
) -> dict[str, list[Bubble]]:
    """Group ``bubbleId:<composer>:<bubble>`` rows by composer, in row order."""
    by_composer: dict[str, list[Bubble]] = {}
    for key, value in conn.execute(
        "SELECT key, value FROM cursorDiskKV WHERE key LIKE 'bubbleId:%' ORDER BY rowid"
    ):
        parts = key.split(":")
        if len(parts) < 3 or not parts[1] or not parts[2]:
            stats.records_skipped += 1
            continue
        bubble = _load_row(value, Bubble)
        if bubble is None:
            stats.records_skipped += 1
            logger.debug("Malformed bubble row %s", key)
            continue
        bubble.bubbleId = parts[2]
        by_composer.setdefault(parts[1], []).append(bubble)
    return by_composer


def _order_by_headers(bubbles: list[Bubble], headers: list) -> list[Bubble]:
    """Sort separate bubbles by the composer's header list; unlisted ones go last."""
    position: dict[str, int] = {}
    for idx, raw in enumerate(headers):
        try:
            header = BubbleHeader.model_validate(raw)
        except ValidationError:
            continue
        position.setdefault(header.bubbleId, idx)
    if not position:
        return bubbles
    return sorted(bubbles, key=lambda b: position.get(b.bubbleId, len(headers)))


def _load_item_table(conn: sqlite3.Connection, stats: ExtractionStats) -> list[Composer]:
    row = conn.execute(
        "SELECT value FROM ItemTable WHERE key = 'composer.composerData'"
    ).fetchone()
    if not row:
        return []

    data = json.loads(decode_value(row[0]) or "")
    all_composers = data.get("allComposers") if isinstance(data, dict) else None
    if not isinstance(all_composers, list):
        raise ValueError("composer.composerData has no allComposers list")

    composers = []
    for entry in all_composers:
        try:
            head = ComposerHead.model_validate(entry)
        except ValidationError:
            stats.records_skipped += 1
            continue
        composers.append(Composer(head.composerId, head))
    return composers


_VARIANT_LOADERS: dict[StorageVariant, Callable[..., list[Composer]]] = {
    StorageVariant.DISK_KV: _load_disk_kv,
    StorageVariant.ITEM_TABLE: _load_item_table,
}


def bubble_to_record(bubble: Bubble, timestamp) -> RawRecord:
    """Convert a stored bubble to a RawRecord.

    ``text`` wins over ``richText``; a bubble with neither yields a record
    with no content, which the assembler drops.
    """
    if bubble.text and bubble.text.strip():
        content = bubble.text
    elif bubble.richText and bubble.richText.strip():
        content = RichTextDocument(bubble.richText)
    else:
        content = None

    keys = {"bubbleId": bubble.bubbleId or ""}
    if bubble.modelInfo and bubble.modelInfo.get("modelName"):
        keys["modelName"] = str(bubble.modelInfo["modelName"])

    return RawRecord(
        role_hint=role_from_type_code(bubble.type),
        raw_content=content,
        raw_timestamp=timestamp,
        source_keys=keys,
    )


class CursorComposerProvider(ChatProvider):
    """Provider for Cursor composer conversations."""

    name = "cursor_composer"
    agent_type = AgentType.CURSOR
    source = "cursor-composer"

    def default_base_path(self) -> Path:
        return get_cursor_global_path()

    def iter_artifacts(self) -> Iterator[Path]:
        db_path = self.get_base_path()
        if db_path.is_file():
            yield db_path

    def parse_artifact(self, path: Path, stats: ExtractionStats) -> list[Session]:
        conn = connect_readonly(path)
        try:
            variant = detect_variant(conn)
            if variant is None:
                logger.info("No composer data in %s", path)
                return []
            composers = _VARIANT_LOADERS[variant](conn, stats)
        finally:
            conn.close()

        logger.info("Found %d composers in %s format", len(composers), variant.value)

        empty_before = stats.empty_sessions
        sessions = []
        for composer in composers:
            session = self._composer_to_session(composer, stats)
            if session is not None:
                sessions.append(session)
        empty = stats.empty_sessions - empty_before

        logger.info(
            "Composer stats: %d from inline conversation, %d from bubble entries, %d without messages",
            sum(1 for c in composers if c.from_inline),
            sum(1 for c in composers if c.bubbles and not c.from_inline),
            empty,
        )
        if variant is StorageVariant.ITEM_TABLE and empty:
            logger.warning(
                "%d composers in %s carry no messages; this layout stores metadata only",
                empty, path,
            )
        return sessions

    def _composer_to_session(self, composer: Composer, stats: ExtractionStats) -> Session | None:
        data = composer.data
        # Bubble-level timestamps are unreliable; anchor messages to the composer start.
        records = [bubble_to_record(b, data.createdAt) for b in composer.bubbles]

        project = infer_project(data.context.paths() if data.context else [])
        name = data.name

        metadata = SessionMetadata(
            project_path=project.path,
            project_name=project.name,
            conversation_name=name if name and name.strip() else None,
            source=self.source,
            extra={"workspace": data.workspace},
        )
        return assemble_session(
            composer.composer_id,
            records,
            agent_type=self.agent_type,
            metadata=metadata,
            stats=stats,
            last_activity=data.lastUpdatedAt or data.createdAt,
        )
