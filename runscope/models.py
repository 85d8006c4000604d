"""
Runscope Domain Models

Pydantic models for the workflow-run payloads returned by the Actions API.
Models are immutable: a refresh replaces them wholesale.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from runscope.config import Source
from runscope.logging import EXIT_FAILURE, EXIT_NO_RUN, EXIT_SUCCESS


# Status Constants

class RunStatus:
    """Run and job status values."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Conclusion:
    """Outcome of a completed run or job."""
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    NEUTRAL = "neutral"


SUCCESS_CONCLUSIONS = frozenset({Conclusion.SUCCESS, Conclusion.NEUTRAL, Conclusion.SKIPPED})
FAILURE_CONCLUSIONS = frozenset(
    {Conclusion.FAILURE, Conclusion.CANCELLED, Conclusion.TIMED_OUT, Conclusion.ACTION_REQUIRED}
)
RUNNING_STATUSES = frozenset({RunStatus.QUEUED, RunStatus.IN_PROGRESS})


class APIModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # The API sends null for unset strings (head_branch on some events); let the field default apply.
        if not isinstance(data, dict):
            return data
        fields = cls.model_fields
        return {
            key: value
            for key, value in data.items()
            if value is not None
            or key not in fields
            or fields[key].is_required()
            or fields[key].default is None
        }


def _drop_pending_conclusion(data: Any) -> Any:
    # The API occasionally reports a stale conclusion while a rerun is in flight.
    if isinstance(data, dict) and data.get("status") != RunStatus.COMPLETED and data.get("conclusion"):
        data = {**data, "conclusion": None}
    return data


class Actor(APIModel):
    login: str = ""


class Run(APIModel):
    """One execution of a workflow."""

    id: int
    name: str = ""
    run_number: int = 0
    status: str = RunStatus.QUEUED
    conclusion: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    head_branch: str = ""
    head_sha: str = ""
    event: str = ""
    actor: Optional[Actor] = None
    html_url: str = ""
    path: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize_conclusion(cls, data: Any) -> Any:
        return _drop_pending_conclusion(data)

    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def is_success(self) -> bool:
        return self.conclusion in SUCCESS_CONCLUSIONS

    def is_failure(self) -> bool:
        return self.conclusion in FAILURE_CONCLUSIONS

    @property
    def actor_login(self) -> str:
        return self.actor.login if self.actor else ""

    @property
    def workflow_file(self) -> str:
        """Workflow file name (``ci.yml``) derived from ``.github/workflows/ci.yml``."""
        return self.path.rsplit("/", 1)[-1] if self.path else ""


class Step(APIModel):
    number: int
    name: str = ""
    status: str = RunStatus.QUEUED
    conclusion: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class Job(APIModel):
    """One independently scheduled unit of work within a run."""

    id: int
    run_id: Optional[int] = None
    name: str = ""
    status: str = RunStatus.QUEUED
    conclusion: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    runner_name: Optional[str] = None
    html_url: str = ""
    steps: List[Step] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize_conclusion(cls, data: Any) -> Any:
        return _drop_pending_conclusion(data)

    def duration(self) -> timedelta:
        if self.started_at is None or self.completed_at is None:
            return timedelta(0)
        return self.completed_at - self.started_at

    def is_running(self) -> bool:
        return self.status in RUNNING_STATUSES

    def is_success(self) -> bool:
        return self.conclusion in SUCCESS_CONCLUSIONS

    def is_failure(self) -> bool:
        return self.conclusion in FAILURE_CONCLUSIONS


class Commit(APIModel):
    sha: str = ""


class Branch(APIModel):
    name: str
    commit: Commit = Field(default_factory=Commit)
    protected: bool = False


class Artifact(APIModel):
    id: int
    name: str
    size_in_bytes: int = 0
    expired: bool = False
    archive_download_url: str = ""


class Repository(APIModel):
    name: str = ""
    full_name: str = ""
    default_branch: str = "main"


@dataclass(frozen=True)
class SourcedRun:
    """A run tagged with the repository it came from (multi-source mode)."""

    source: Source
    run: Run

    @property
    def sort_key(self) -> datetime:
        return self.run.updated_at or self.run.created_at or datetime.min.replace(tzinfo=timezone.utc)


def format_duration(value: timedelta) -> str:
    seconds = int(value.total_seconds())
    if seconds <= 0:
        return "-"
    minutes, seconds = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


def exit_code_for(run: Optional[Run]) -> int:
    """Process exit code for a resolved run: 0 passed or still running, 1 failed, 2 no run."""
    if run is None:
        return EXIT_NO_RUN
    if run.is_failure():
        return EXIT_FAILURE
    return EXIT_SUCCESS
