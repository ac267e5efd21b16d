"""Core data models for aichat-sync."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class AgentType(str, Enum):
    """The assistant/IDE that produced a session."""

    CLAUDE_CODE = "claude_code"
    CURSOR = "cursor"
    CODEX = "codex"
    WINDSURF = "windsurf"
    OTHER = "other"


@dataclass(frozen=True)
class RichTextDocument:
    """A serialized rich-text node tree (Cursor ``richText``)."""

    raw: str


@dataclass
class RawRecord:
    """One extracted turn before normalization."""

    role_hint: str  # "user" | "assistant" | "unknown"
    raw_content: Any  # str | list | dict | RichTextDocument | None
    raw_timestamp: Any = None  # ISO string | epoch number | numeric string | None
    source_keys: dict[str, str] = field(default_factory=dict)
    pasted_contents: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Message:
    """A canonical chat turn."""

    display_text: str
    role: str  # "user" | "assistant"
    timestamp_iso: str
    pasted_contents: Mapping = field(default_factory=dict)


@dataclass
class SessionMetadata:
    """Session metadata with reserved keys plus source-specific extras."""

    project_path: Optional[str] = None
    project_name: Optional[str] = None
    conversation_name: Optional[str] = None
    workspace_id: Optional[str] = None
    source: Optional[str] = None  # "claude_code" | "cursor-composer" | "cursor-copilot"
    summary: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Flatten to the stored JSON object; extras first, reserved keys win."""
        data = {
            key: value
            for key, value in self.extra.items()
            if value is not None
        }
        reserved = {
            "projectPath": self.project_path,
            "projectName": self.project_name,
            "conversationName": self.conversation_name,
            "workspaceId": self.workspace_id,
            "source": self.source,
            "summary": self.summary,
        }
        data.update({k: v for k, v in reserved.items() if v is not None})
        return data


@dataclass(frozen=True)
class Session:
    """A single normalized conversation, ready for upsert."""

    id: str
    timestamp_iso: str  # latest message timestamp
    messages: tuple[Message, ...]
    agent_type: AgentType
    metadata: SessionMetadata = field(default_factory=SessionMetadata)

    @property
    def message_count(self) -> int:
        """Number of kept messages."""
        return len(self.messages)

    @property
    def title(self) -> str:
        """Conversation name, else summary, else the first user message."""
        if self.metadata.conversation_name:
            return self.metadata.conversation_name
        if self.metadata.summary:
            return self.metadata.summary
        for msg in self.messages:
            if msg.role == "user":
                return _truncate(msg.display_text.strip(), 80)
        return "Untitled"


@dataclass(frozen=True)
class ProjectInfo:
    """Activity summary for one canonical project path."""

    name: str
    path: str  # canonical path, the merge key
    workspace_ids: frozenset[str] = frozenset()
    session_counts: Mapping[str, int] = field(default_factory=dict)  # per source kind
    last_activity_iso: str = ""

    @property
    def composer_count(self) -> int:
        return self.session_counts.get("cursor-composer", 0)

    @property
    def copilot_session_count(self) -> int:
        return self.session_counts.get("cursor-copilot", 0)

    @property
    def claude_code_session_count(self) -> int:
        return self.session_counts.get("claude_code", 0)

    @property
    def total_sessions(self) -> int:
        return sum(self.session_counts.values())


@dataclass
class ExtractionStats:
    """Diagnostic counters for one extraction pass."""

    artifacts_scanned: int = 0
    artifacts_filtered: int = 0  # unmodified since the cutoff
    artifacts_skipped: int = 0  # unreadable or corrupt
    records_skipped: int = 0  # malformed line/row
    records_dropped: int = 0  # no extractable text
    empty_sessions: int = 0
    sessions: int = 0

    def __add__(self, other: "ExtractionStats") -> "ExtractionStats":
        if not isinstance(other, ExtractionStats):
            return NotImplemented
        return ExtractionStats(**{
            key: value + getattr(other, key)
            for key, value in self.as_dict().items()
        })

    def as_dict(self) -> dict[str, int]:
        return {
            "artifacts_scanned": self.artifacts_scanned,
            "artifacts_filtered": self.artifacts_filtered,
            "artifacts_skipped": self.artifacts_skipped,
            "records_skipped": self.records_skipped,
            "records_dropped": self.records_dropped,
            "empty_sessions": self.empty_sessions,
            "sessions": self.sessions,
        }


@dataclass
class ExtractionResult:
    """Sessions produced by one provider plus its diagnostics."""

    sessions: list[Session] = field(default_factory=list)
    stats: ExtractionStats = field(default_factory=ExtractionStats)


def _truncate(text: str, max_len: int) -> str:
    """Truncate text to max_len, adding ellipsis if needed."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
