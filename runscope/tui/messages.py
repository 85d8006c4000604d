"""
Messages consumed by ``Controller.update``.

Each background command produces at most one of these; input events from
the terminal are messages too. They are plain frozen records so they can
cross from worker threads into the update loop.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from runscope.aggregate import AggregateResult
from runscope.config import Source
from runscope.logs import ParsedLogs
from runscope.models import Artifact, Branch, Job, Run


class Message:
    """Base class for update-loop messages."""


# Input

@dataclass(frozen=True)
class KeyPressed(Message):
    key: str


@dataclass(frozen=True)
class Resized(Message):
    width: int
    height: int


# Fetch completions

@dataclass(frozen=True)
class RunsLoaded(Message):
    source: Source
    status_filter: str
    runs: List[Run] = field(default_factory=list)


@dataclass(frozen=True)
class SourcedRunsLoaded(Message):
    status_filter: str
    result: AggregateResult


@dataclass(frozen=True)
class JobsLoaded(Message):
    run_id: int
    jobs: List[Job] = field(default_factory=list)


@dataclass(frozen=True)
class JobDetailLoaded(Message):
    job: Job


@dataclass(frozen=True)
class LogsLoaded(Message):
    job_id: int
    generation: int
    logs: ParsedLogs


@dataclass(frozen=True)
class LogsUpdated(Message):
    """Live refresh result; ``logs``/``job`` are None when the refresh failed."""

    job_id: int
    generation: int
    logs: Optional[ParsedLogs] = None
    job: Optional[Job] = None


@dataclass(frozen=True)
class ParsedLogsLoaded(Message):
    job_id: int
    logs: ParsedLogs


@dataclass(frozen=True)
class MultiJobLogsLoaded(Message):
    job_ids: Tuple[int, ...]
    contents: Dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CompareLogsLoaded(Message):
    run_ids: Tuple[int, int]
    left: str
    right: str
    labels: Tuple[str, str] = ("", "")


@dataclass(frozen=True)
class BranchesLoaded(Message):
    branches: List[Branch] = field(default_factory=list)


@dataclass(frozen=True)
class WorkflowLoaded(Message):
    path: str
    content: str


@dataclass(frozen=True)
class ArtifactsLoaded(Message):
    run_id: int
    artifacts: List[Artifact] = field(default_factory=list)


@dataclass(frozen=True)
class ArtifactDownloaded(Message):
    path: Path


@dataclass(frozen=True)
class LogsExported(Message):
    path: Optional[Path] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ActionCompleted(Message):
    action: str
    run_id: Optional[int]
    description: str


@dataclass(frozen=True)
class ErrorOccurred(Message):
    error: BaseException
    command: str = ""


# Timers

@dataclass(frozen=True)
class PollTick(Message):
    generation: int


@dataclass(frozen=True)
class LogTick(Message):
    job_id: int
    generation: int
