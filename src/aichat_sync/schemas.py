"""
Pydantic models for the raw payloads each backend reads.

These describe records as they are stored on disk, before normalization
into ``RawRecord``. Fields a backend relies on are declared; everything
else is allowed through untouched. A payload that fails validation is one
skipped record, never a failed artifact.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Claude Code ──────────────────────────────────────────────────


class ClaudeMessage(BaseModel):
    """The ``message`` object of a user/assistant log entry."""

    model_config = ConfigDict(extra="allow")

    content: Any = Field(..., description="String or array of content blocks")
    role: Optional[str] = None


class ClaudeEntry(BaseModel):
    """One line of a Claude Code JSONL session log."""

    model_config = ConfigDict(extra="allow")

    type: str = Field("", description="user, human, assistant, summary, progress, ...")
    sessionId: Optional[str] = None
    cwd: Optional[str] = None
    summary: Optional[str] = None
    uuid: Optional[str] = None
    timestamp: Any = Field(None, description="ISO string or epoch number")
    message: Optional[ClaudeMessage] = None
    pastedContents: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("pastedContents", mode="before")
    @classmethod
    def drop_unknown_pasted(cls, v: Any) -> Dict[str, Any]:
        """Pasted content only counts when it is a keyed object."""
        return v if isinstance(v, dict) else {}


# ── Cursor composer ──────────────────────────────────────────────


class BubbleHeader(BaseModel):
    """Entry of ``fullConversationHeadersOnly``; orders separately stored bubbles."""

    model_config = ConfigDict(extra="allow")

    bubbleId: str = Field(..., min_length=1)
    type: Optional[int] = None


class Bubble(BaseModel):
    """
    One composer message, inline in ``conversation`` or stored at
    ``bubbleId:<composerId>:<bubbleId>``.
    """

    model_config = ConfigDict(extra="allow")

    bubbleId: Optional[str] = None
    type: Optional[int] = Field(None, description="1 = user, anything else = assistant")
    text: Optional[str] = None
    richText: Optional[str] = Field(None, description="Serialized rich-text tree")
    modelInfo: Optional[Dict[str, Any]] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Optional[int]:
        """Keep integer codes only; anything else is an unknown code."""
        if isinstance(v, int) and not isinstance(v, bool):
            return v
        return None

    @field_validator("modelInfo", mode="before")
    @classmethod
    def drop_unknown_model_info(cls, v: Any) -> Optional[Dict[str, Any]]:
        return v if isinstance(v, dict) else None


class FileUri(BaseModel):
    model_config = ConfigDict(extra="allow")

    fsPath: Optional[str] = None


class Selection(BaseModel):
    model_config = ConfigDict(extra="allow")

    uri: Optional[FileUri] = None


class ComposerContext(BaseModel):
    """Files and folders attached to a composer; used for project inference."""

    model_config = ConfigDict(extra="allow")

    fileSelections: List[Selection] = Field(default_factory=list)
    folderSelections: List[Selection] = Field(default_factory=list)

    def paths(self) -> List[str]:
        """Every non-empty ``fsPath``, files first."""
        return [
            s.uri.fsPath
            for s in self.fileSelections + self.folderSelections
            if s.uri is not None and s.uri.fsPath
        ]


class ComposerData(BaseModel):
    """
    A composer as stored at ``composerData:<composerId>``.

    ``conversation`` and ``fullConversationHeadersOnly`` stay as raw lists so
    one malformed bubble or header is skipped alone.
    """

    model_config = ConfigDict(extra="allow")

    composerId: Optional[str] = None
    name: Optional[str] = None
    createdAt: Any = Field(None, description="Epoch ms, epoch seconds or ISO string")
    lastUpdatedAt: Any = None
    conversation: List[Any] = Field(default_factory=list)
    fullConversationHeadersOnly: List[Any] = Field(default_factory=list)
    context: Optional[ComposerContext] = None
    workspace: Any = None

    @field_validator("conversation", "fullConversationHeadersOnly", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ComposerHead(ComposerData):
    """An ``allComposers`` entry of the ItemTable layout: metadata, no messages."""

    composerId: str = Field(..., min_length=1)


# ── Cursor Copilot ───────────────────────────────────────────────


class CopilotPrompt(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None


class CopilotResponsePart(BaseModel):
    """One response fragment; only string ``value`` parts are display text."""

    model_config = ConfigDict(extra="allow")

    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def strings_only(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None


class CopilotRequest(BaseModel):
    """A prompt/response pair inside an interactive session."""

    model_config = ConfigDict(extra="allow")

    message: Optional[CopilotPrompt] = None
    response: List[CopilotResponsePart] = Field(default_factory=list)
    timestamp: Any = None

    @field_validator("response", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class CopilotSession(BaseModel):
    """One element of the ``interactive.sessions`` array."""

    model_config = ConfigDict(extra="allow")

    requests: List[Any] = Field(..., description="Raw requests, validated one by one")
