"""Project inference and cross-source project aggregation."""

import logging
import os
import re
import urllib.parse
from collections import defaultdict
from typing import Iterable, NamedTuple

from .core import ProjectInfo, Session
from .normalize import parse_iso

logger = logging.getLogger(__name__)

# Conventional folders people keep source trees under. The segment right
# after one of these is taken as the project directory.
PROJECT_ROOTS = ("Developer", "Projects", "projects", "dev", "repos")

CANONICAL_MAX_SEGMENTS = 6

UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_PATH = "(uncategorized)"


class ProjectRef(NamedTuple):
    name: str | None
    path: str | None


def _clean(path: str) -> str:
    """Strip a file:// scheme and use forward slashes."""
    if path.startswith("file://"):
        path = urllib.parse.unquote(path[7:])
    return path.replace("\\", "/")


def _segments(path: str) -> list[str]:
    """Non-empty components of a slash-separated path."""
    return [p for p in path.split("/") if p]


def infer_project(
    candidates: Iterable[str | None],
    workspace_folder: str | None = None,
) -> ProjectRef:
    """Derive (name, path) from the paths a session touched.

    The first candidate containing a known projects-root segment decides.
    """
    cleaned = [_clean(c) for c in candidates if isinstance(c, str) and c.strip()]

    for path in cleaned:
        parts = path.split("/")
        for idx, part in enumerate(parts):
            if part in PROJECT_ROOTS and idx + 1 < len(parts) and parts[idx + 1]:
                return ProjectRef(parts[idx + 1], "/".join(parts[: idx + 2]))

    if workspace_folder:
        folder = _clean(workspace_folder).rstrip("/")
        segments = _segments(folder)
        if segments:
            return ProjectRef(segments[-1], folder)

    if cleaned:
        segments = _segments(cleaned[0])
        if segments:
            return ProjectRef("/".join(segments[-2:]), None)

    return ProjectRef(None, None)


def canonical_path(path: str, home: str | None = None) -> str:
    """Normalize a project path into the merge key used by the aggregator.

    ``/Users/me/Developer/app`` and ``file:///Users/me/Developer/app/``
    both become ``~/Developer/app``.
    """
    path = re.sub(r"/{2,}", "/", _clean(path.strip()))
    if len(path) > 1:
        path = path.rstrip("/")

    home = _clean(home if home is not None else os.path.expanduser("~")).rstrip("/")
    if home and (path == home or path.startswith(home + "/")):
        path = "~" + path[len(home):]

    segments = _segments(path)
    if len(segments) > CANONICAL_MAX_SEGMENTS:
        path = "/".join(segments[-CANONICAL_MAX_SEGMENTS:])
    return path


def projects_from_sessions(
    sessions: Iterable[Session], home: str | None = None
) -> list[ProjectInfo]:
    """Summarize one batch of sessions into per-path ProjectInfo partials."""
    buckets: dict[str, dict] = {}

    for session in sessions:
        meta = session.metadata
        if meta.project_path:
            key = canonical_path(meta.project_path, home)
            name = meta.project_name or (_segments(key) or [key])[-1]
        else:
            key = UNCATEGORIZED_PATH
            name = UNCATEGORIZED_NAME

        bucket = buckets.setdefault(key, {
            "name": name,
            "workspace_ids": set(),
            "counts": defaultdict(int),
            "last": None,
        })
        if meta.workspace_id:
            bucket["workspace_ids"].add(meta.workspace_id)
        bucket["counts"][meta.source or session.agent_type.value] += 1

        ts = parse_iso(session.timestamp_iso)
        if ts is not None and (bucket["last"] is None or ts > bucket["last"][0]):
            bucket["last"] = (ts, session.timestamp_iso)

    return [
        ProjectInfo(
            name=b["name"],
            path=key,
            workspace_ids=frozenset(b["workspace_ids"]),
            session_counts=dict(b["counts"]),
            last_activity_iso=b["last"][1] if b["last"] else "",
        )
        for key, b in sorted(buckets.items())
    ]


def _activity_key(info: ProjectInfo):
    ts = parse_iso(info.last_activity_iso)
    return ts.timestamp() if ts else float("-inf")


def merge_projects(infos: Iterable[ProjectInfo]) -> list[ProjectInfo]:
    """Merge partials that share a canonical path.

    Counts are summed per source kind, workspace ids unioned and the latest
    activity kept. The result does not depend on input order.
    """
    grouped: dict[str, list[ProjectInfo]] = defaultdict(list)
    for info in infos:
        grouped[info.path].append(info)

    merged = []
    for path in sorted(grouped):
        group = grouped[path]
        counts: dict[str, int] = defaultdict(int)
        workspace_ids: set[str] = set()
        for info in group:
            workspace_ids |= info.workspace_ids
            for source, count in info.session_counts.items():
                counts[source] += count

        latest = max(group, key=_activity_key)
        # Name from the most recently active partial; ties go to the smaller name.
        best_key = _activity_key(latest)
        name = min(p.name for p in group if _activity_key(p) == best_key)

        merged.append(ProjectInfo(
            name=name,
            path=path,
            workspace_ids=frozenset(workspace_ids),
            session_counts=dict(counts),
            last_activity_iso=latest.last_activity_iso,
        ))
    return merged


def aggregate_projects(
    *session_batches: Iterable[Session], home: str | None = None
) -> list[ProjectInfo]:
    """Recompute the unified project view from scratch for this run."""
    partials: list[ProjectInfo] = []
    for batch in session_batches:
        partials.extend(projects_from_sessions(batch, home))
    projects = merge_projects(partials)
    logger.info("Aggregated %d projects from %d partials", len(projects), len(partials))
    return projects


def project_dir_to_path(name: str) -> str:
    """Decode a Claude Code project folder name: -Users-a-b -> /Users/a/b."""
    if name.startswith("-"):
        return name.replace("-", "/")
    return name


def folder_from_uri(folder) -> str | None:
    """Resolve a VS Code-style workspace ``folder`` value to a filesystem path."""
    if isinstance(folder, dict):
        folder = folder.get("path") or folder.get("fsPath")
    if not isinstance(folder, str) or not folder:
        return None
    if folder.startswith("file://"):
        return urllib.parse.unquote(folder[7:])
    return folder
