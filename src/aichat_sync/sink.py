"""Upsert sinks for extracted sessions and projects.

The remote store is treated as a plain insert-or-update endpoint keyed by
session ``id`` and by ``(account_id, project_path)`` for projects; the
last write wins.
"""

import json
import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

import httpx

from .export import project_to_record, session_to_record

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "chat_histories"
PROJECTS_TABLE = "projects"


@dataclass
class SyncOutcome:
    succeeded: int = 0
    failed: int = 0


class UpsertSink(ABC):
    """Destination for flattened session and project rows."""

    @abstractmethod
    def upsert_sessions(self, records: Iterable[dict]) -> SyncOutcome:
        ...

    @abstractmethod
    def upsert_projects(self, records: Iterable[dict]) -> SyncOutcome:
        ...

    def close(self) -> None:
        pass


def _project_key(record: dict) -> str:
    """Upsert key for project rows: account id plus canonical path."""
    return f"{record.get('account_id') or ''}\x1f{record['project_path']}"


class JsonlUpsertSink(UpsertSink):
    """Local store: one JSONL file per table, rewritten on each upsert."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def upsert_sessions(self, records: Iterable[dict]) -> SyncOutcome:
        return self._upsert("sessions.jsonl", records, lambda r: r["id"])

    def upsert_projects(self, records: Iterable[dict]) -> SyncOutcome:
        return self._upsert("projects.jsonl", records, _project_key)

    def read(self, filename: str) -> list[dict]:
        path = self.directory / filename
        if not path.exists():
            return []
        rows = []
        with path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Ignoring bad row at %s:%d: %s", path, line_num, e)
        return rows

    def _upsert(self, filename: str, records: Iterable[dict], key: Callable[[dict], str]) -> SyncOutcome:
        self.directory.mkdir(parents=True, exist_ok=True)
        rows = {key(row): row for row in self.read(filename)}

        outcome = SyncOutcome()
        for record in records:
            rows[key(record)] = record
            outcome.succeeded += 1

        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{filename}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for row in rows.values():
                    f.write(json.dumps(row, ensure_ascii=False) + "\n")
            os.replace(tmp, self.directory / filename)
        except BaseException:
            os.unlink(tmp)
            raise
        return outcome


@dataclass
class RequestPolicy:
    timeout_s: float = 20.0
    max_retries: int = 3
    base_backoff_s: float = 0.8
    max_backoff_s: float = 10.0
    user_agent: str = "aichat-sync/0.1"


class HttpUpsertSink(UpsertSink):
    """PostgREST-style upsert over HTTP with retry + exponential backoff.

    Transport errors, 429 and 5xx responses are retried; other 4xx
    responses fail the row immediately. A failed row never aborts the batch.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        policy: RequestPolicy | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or RequestPolicy()
        self._sleep = sleep
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=self.policy.timeout_s,
        )
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates",
            "User-Agent": self.policy.user_agent,
        }

    def upsert_sessions(self, records: Iterable[dict]) -> SyncOutcome:
        return self._upsert_all(SESSIONS_TABLE, "id", records)

    def upsert_projects(self, records: Iterable[dict]) -> SyncOutcome:
        return self._upsert_all(PROJECTS_TABLE, "account_id,project_path", records)

    def close(self) -> None:
        self._client.close()

    def _upsert_all(self, table: str, on_conflict: str, records: Iterable[dict]) -> SyncOutcome:
        outcome = SyncOutcome()
        for record in records:
            if self._post(table, on_conflict, record):
                outcome.succeeded += 1
            else:
                outcome.failed += 1
        logger.info("Upserted %d rows into %s (%d failed)", outcome.succeeded, table, outcome.failed)
        return outcome

    def _post(self, table: str, on_conflict: str, record: dict) -> bool:
        last_err: str = ""
        for attempt in range(self.policy.max_retries + 1):
            try:
                resp = self._client.post(
                    f"/rest/v1/{table}",
                    params={"on_conflict": on_conflict},
                    json=record,
                    headers=self._headers,
                )
            except httpx.TransportError as e:
                last_err = str(e) or type(e).__name__
            else:
                if resp.status_code < 400:
                    return True
                last_err = f"HTTP {resp.status_code}: {resp.text[:200]}"
                if resp.status_code != 429 and resp.status_code < 500:
                    break

            if attempt >= self.policy.max_retries:
                break
            backoff = min(self.policy.max_backoff_s, self.policy.base_backoff_s * (2**attempt))
            self._sleep(backoff)

        logger.error("Upsert into %s failed for %s: %s", table, _row_label(record), last_err)
        return False


def _row_label(record: dict) -> str:
    return str(record.get("id") or record.get("project_path") or "?")


def sync_report(report, sink: UpsertSink, account_id: str | None = None) -> dict[str, SyncOutcome]:
    """Push one extraction report: projects first, then sessions."""
    projects = sink.upsert_projects(project_to_record(p, account_id) for p in report.projects)
    sessions = sink.upsert_sessions(session_to_record(s, account_id) for s in report.sessions)
    return {"projects": projects, "sessions": sessions}
