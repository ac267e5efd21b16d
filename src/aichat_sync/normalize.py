"""Content, timestamp, role and identity normalization.

These helpers never raise on bad input. Each one degrades to a safe value
(raw string, wall-clock time, "assistant") so a single odd record cannot
abort an extraction pass.
"""

import hashlib
import json
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from .core import RichTextDocument

logger = logging.getLogger(__name__)

# Anything at or below these is not a plausible post-2000 timestamp.
MS_EPOCH_THRESHOLD = 946684800000
SECONDS_EPOCH_THRESHOLD = 946684800

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Content ──────────────────────────────────────────────────────


def extract_text(raw_content: Any) -> str:
    """Reduce any supported content shape to plain display text."""
    if raw_content is None:
        return ""
    if isinstance(raw_content, RichTextDocument):
        return text_from_rich_text(raw_content.raw)
    if isinstance(raw_content, str):
        return raw_content
    if isinstance(raw_content, dict):
        return text_from_parts([raw_content])
    if isinstance(raw_content, list):
        return text_from_parts(raw_content)
    return ""


def text_from_parts(parts: list) -> str:
    """Join the textual parts of a typed content-part array.

    Tool calls, tool results, images and other non-text parts are ignored.
    """
    texts = []
    for part in parts:
        if isinstance(part, str):
            if part:
                texts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            if isinstance(text, str) and text:
                texts.append(text)
    return "\n".join(texts)


def text_from_rich_text(raw: str) -> str:
    """Flatten a serialized rich-text tree into space-joined text.

    Walks ``root.children`` depth-first, pre-order. Anything that does not
    look like such a tree comes back unchanged.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return raw

    root = data.get("root") if isinstance(data, dict) else None
    children = root.get("children") if isinstance(root, dict) else None
    if not isinstance(children, list):
        return raw

    parts: list[str] = []
    stack = list(reversed(children))
    while stack:
        node = stack.pop()
        if not isinstance(node, dict):
            continue
        text = node.get("text")
        if isinstance(text, str) and text:
            parts.append(text)
        sub = node.get("children")
        if isinstance(sub, list):
            stack.extend(reversed(sub))
    return " ".join(parts)


# ── Timestamps ───────────────────────────────────────────────────


def format_iso(dt: datetime) -> str:
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_iso(now: datetime | None = None) -> str:
    """Current time, or ``now`` when given, in the canonical ISO form."""
    return format_iso(now or datetime.now(timezone.utc))


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string; naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_timestamp(value: Any, now: datetime | None = None) -> str:
    """Canonicalize a timestamp of unknown shape into an ISO 8601 string.

    Epoch numbers carry no unit, so the unit is chosen by plausibility:
    above the year-2000 mark in milliseconds means milliseconds, above the
    year-2000 mark in seconds means seconds. Anything missing, unparseable
    or implausibly small becomes the current time rather than 1970.
    """
    if value is None or isinstance(value, bool):
        return now_iso(now)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return now_iso(now)
        if _INTEGER_RE.match(text):
            value = int(text)
        else:
            dt = parse_iso(text)
            if dt is None:
                logger.debug("Unparseable timestamp %r, using current time", value)
                return now_iso(now)
            try:
                return format_iso(dt)
            except (OverflowError, ValueError):
                logger.debug("Out-of-range timestamp %r, using current time", value)
                return now_iso(now)

    if isinstance(value, (int, float)):
        try:
            if value > MS_EPOCH_THRESHOLD:
                return format_iso(_EPOCH + timedelta(milliseconds=value))
            if value > SECONDS_EPOCH_THRESHOLD:
                return format_iso(_EPOCH + timedelta(seconds=value))
        except (ValueError, OverflowError):
            logger.debug("Out-of-range timestamp %r, using current time", value)

    return now_iso(now)


# ── Roles ────────────────────────────────────────────────────────


def role_from_type_code(code: Any) -> str:
    """Map a Cursor bubble type code to a role: 1 is the user, all else assistant."""
    if isinstance(code, bool):
        return "assistant"
    return "user" if code == 1 else "assistant"


def role_from_hint(hint: str | None) -> str:
    """Anything but an explicit user hint is the assistant."""
    return "user" if hint == "user" else "assistant"


# ── Identity ─────────────────────────────────────────────────────


def deterministic_uuid(key: str) -> str:
    """Derive a stable UUID-v4-shaped id from a string key."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))
