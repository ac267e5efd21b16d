"""FastAPI JSON API over the latest extraction pass."""

import logging
import re

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from .backends import get_available_providers
from .config import SyncConfig
from .core import Session
from .export import message_to_dict, project_to_record, session_to_json, session_to_markdown
from .pipeline import ExtractionReport, run_extraction
from .provider import ChatProvider

logger = logging.getLogger(__name__)

app = FastAPI(title="aichat-sync", version="0.1.0")

# Populated on first request, dropped by /api/refresh
_providers: list[ChatProvider] | None = None
_report: ExtractionReport | None = None

_SORT_KEYS = {
    "newest": (lambda s: s.timestamp_iso, True),
    "messages": (lambda s: s.message_count, True),
    "project": (lambda s: s.metadata.project_path or "", False),
}

_EXPORTERS = {
    "md": (session_to_markdown, "text/markdown", "md"),
    "json": (session_to_json, "application/json", "json"),
}


def _get_providers() -> list[ChatProvider]:
    global _providers
    if _providers is None:
        _providers = get_available_providers(SyncConfig.from_env())
        logger.info("Providers with data on this machine: %s", [p.name for p in _providers])
    return _providers


def _get_report() -> ExtractionReport:
    global _report
    if _report is None:
        _report = run_extraction(SyncConfig.from_env(), providers=_get_providers())
    return _report


def _require_session(session_id: str) -> Session:
    session = _get_report().find_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No session {session_id!r}")
    return session


def _summary(session: Session) -> dict:
    meta = session.metadata
    return {
        "id": session.id,
        "title": session.title,
        "agent_type": session.agent_type.value,
        "source": meta.source,
        "timestamp": session.timestamp_iso,
        "message_count": session.message_count,
        "project_name": meta.project_name,
        "project_path": meta.project_path,
    }


def _matches(session: Session, needle: str) -> bool:
    haystack = (session.title, session.metadata.project_path or "")
    return any(needle in field.lower() for field in haystack)


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/sources")
async def get_sources():
    """Names of the providers that found data."""
    return [p.name for p in _get_providers()]


@app.post("/api/refresh")
async def refresh():
    """Drop the cached extraction and run a new pass."""
    global _report
    _report = None
    return _get_report().stats.as_dict()


@app.get("/api/stats")
async def get_stats():
    report = _get_report()
    return {
        "total": report.stats.as_dict(),
        "providers": {name: s.as_dict() for name, s in report.per_provider.items()},
    }


@app.get("/api/sessions")
async def list_sessions(
    source: str | None = Query(None, description="Metadata source, e.g. cursor-composer"),
    search: str | None = Query(None, description="Substring of title or project path"),
    project: str | None = Query(None, description="Exact project path"),
    sort: str = Query("newest", description="newest, messages or project"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Page through extracted sessions."""
    selected = [
        s for s in _get_report().sessions
        if (not source or s.metadata.source == source)
        and (not project or s.metadata.project_path == project)
        and (not search or _matches(s, search.lower()))
    ]

    if sort in _SORT_KEYS:
        key, reverse = _SORT_KEYS[sort]
        selected.sort(key=key, reverse=reverse)

    return {
        "total": len(selected),
        "sessions": [_summary(s) for s in selected[offset:offset + limit]],
    }


@app.get("/api/session/{session_id:path}")
async def get_session(session_id: str):
    """One session with every message."""
    session = _require_session(session_id)
    return {
        "session_id": session.id,
        "session": _summary(session),
        "metadata": session.metadata.to_dict(),
        "messages": [message_to_dict(m) for m in session.messages],
    }


@app.get("/api/projects")
async def get_projects():
    """The unified per-project view."""
    return [project_to_record(p) for p in _get_report().projects]


@app.get("/api/export/{session_id:path}")
async def export_session(
    session_id: str,
    format: str = Query("md", description="md or json"),
):
    """Download a session as Markdown or JSON."""
    session = _require_session(session_id)
    render, media_type, extension = _EXPORTERS.get(format, _EXPORTERS["md"])
    filename = re.sub(r"[^\w\- ]", "", session.title, flags=re.ASCII)[:50] or session.id

    return Response(
        content=render(session),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}.{extension}"'},
    )
