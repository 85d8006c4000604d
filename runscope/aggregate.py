"""
Merged run timeline across several repositories.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from runscope.client import GitHubClient
from runscope.config import Source
from runscope.errors import NoRunsError, RunscopeError
from runscope.logging import get_logger, log_extra
from runscope.models import SourcedRun

logger = get_logger(__name__)

RUNS_PER_SOURCE = 5


@dataclass(frozen=True)
class AggregateResult:
    runs: List[SourcedRun] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)


def merge_sourced_runs(runs: Sequence[SourcedRun]) -> List[SourcedRun]:
    """Order runs from every source by last update, newest first."""
    return sorted(runs, key=lambda item: item.sort_key, reverse=True)


def fetch_sourced_runs(
    client: GitHubClient,
    sources: Sequence[Source],
    status: Optional[str] = None,
    per_source: int = RUNS_PER_SOURCE,
) -> AggregateResult:
    """
    Fetch the most recent runs of every source and merge them.

    A source that fails is skipped (and reported in ``failed_sources``) so
    one unreachable repository does not hide the others.

    Raises:
        NoRunsError: If no source returned any run.
    """
    collected: List[SourcedRun] = []
    failed: List[str] = []
    for source in sources:
        try:
            runs = client.fetch_runs(source, branch=source.branch, status=status, page=1, per_page=per_source)
        except RunscopeError as exc:
            failed.append(source.slug)
            logger.warning("source_fetch_failed", extra=log_extra(repo=source.slug, error=str(exc)))
            continue
        collected.extend(SourcedRun(source=source, run=run) for run in runs)

    if not collected:
        raise NoRunsError(
            "no workflow runs found across repositories",
            metadata={"sources": [s.slug for s in sources], "failed_sources": failed},
        )
    return AggregateResult(runs=merge_sourced_runs(collected), failed_sources=failed)
