"""One full extraction pass across every available provider."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from .backends import get_available_providers
from .config import SyncConfig
from .core import ExtractionStats, ProjectInfo, Session
from .projects import aggregate_projects
from .provider import ChatProvider

logger = logging.getLogger(__name__)


@dataclass
class ExtractionReport:
    """Everything a single run produced."""

    sessions: list[Session] = field(default_factory=list)
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    per_provider: dict[str, ExtractionStats] = field(default_factory=dict)
    projects: list[ProjectInfo] = field(default_factory=list)

    def find_session(self, session_id: str) -> Session | None:
        return next((s for s in self.sessions if s.id == session_id), None)


def run_extraction(
    config: SyncConfig,
    providers: list[ChatProvider] | None = None,
    now: datetime | None = None,
) -> ExtractionReport:
    """Extract from every provider, then aggregate projects from scratch."""
    if providers is None:
        providers = get_available_providers(config)

    since = config.cutoff(now)
    if since is not None:
        logger.info("Only reading artifacts modified after %s", since.isoformat())

    report = ExtractionReport()
    batches = []
    for provider in providers:
        result = provider.extract(since=since)
        report.per_provider[provider.name] = result.stats
        report.stats = report.stats + result.stats
        report.sessions.extend(result.sessions)
        batches.append(result.sessions)

    report.projects = aggregate_projects(*batches)

    logger.info(
        "Extracted %d sessions (%d empty, %d artifacts skipped, %d records skipped)",
        len(report.sessions), report.stats.empty_sessions,
        report.stats.artifacts_skipped, report.stats.records_skipped,
    )
    return report
