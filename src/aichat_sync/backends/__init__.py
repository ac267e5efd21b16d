"""Auto-detect installed IDE backends and provide a unified registry."""

import logging

from ..config import SyncConfig
from ..provider import ChatProvider
from .claude_code import ClaudeCodeProvider
from .copilot import CursorCopilotProvider
from .cursor import CursorComposerProvider

logger = logging.getLogger(__name__)


def build_providers(config: SyncConfig) -> list[ChatProvider]:
    """Instantiate every known provider against the configured paths."""
    return [
        ClaudeCodeProvider(config.claude_path),
        CursorComposerProvider(config.cursor_global_path),
        CursorCopilotProvider(config.cursor_workspace_path),
    ]


def get_available_providers(config: SyncConfig | None = None) -> list[ChatProvider]:
    """Return the providers whose data exists on this machine."""
    providers = []
    for provider in build_providers(config or SyncConfig()):
        try:
            if provider.is_available():
                providers.append(provider)
        except OSError as e:
            logger.warning("Cannot check %s: %s", provider.name, e)
    return providers
