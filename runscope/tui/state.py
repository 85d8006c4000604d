"""
Session state for the interactive monitor.

Pure data, no Textual imports. Created once per session and mutated only by
``Controller.update``; background commands receive value snapshots, never
this object.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from runscope.config import Source
from runscope.diff import DiffLine
from runscope.logging import EXIT_NO_RUN
from runscope.logs import ParsedLogs
from runscope.models import Artifact, Branch, Job, Run, SourcedRun


class Screen(str, Enum):
    LOADING = "loading"
    READY = "ready"
    WATCHING = "watching"
    ERROR = "error"
    JOB_DETAILS = "job_details"
    LOG_VIEWER = "log_viewer"
    BRANCH_SELECTION = "branch_selection"
    STATUS_FILTER = "status_filter"
    HELP = "help"
    WORKFLOW_VIEWER = "workflow_viewer"
    ARTIFACT_SELECTION = "artifact_selection"
    LOG_FILTER = "log_filter"
    MULTI_JOB_SELECT = "multi_job_select"
    COMPARE_SELECT = "compare_select"
    COMPARE_VIEW = "compare_view"


DASHBOARD_SCREENS = frozenset({Screen.READY, Screen.WATCHING})

STATUS_FILTER_OPTIONS = ("", "success", "failure", "in_progress", "completed", "queued")
MAX_MULTI_JOBS = 4

# Rows taken by header, footer and borders around scrollable panes.
LOG_CHROME_ROWS = 8
DIFF_CHROME_ROWS = 10


def clamp_index(index: int, length: int) -> int:
    """Clamp a cursor into ``[0, length - 1]``; -1 when the collection is empty."""
    if length <= 0:
        return -1
    return max(0, min(index, length - 1))


@dataclass
class SessionState:
    # List cursors are -1 while their collection is empty. run_index and
    # sourced_index are positions rather than cursors: they stay 0 and are
    # re-validated whenever runs load.
    screen: Screen = Screen.LOADING
    loading_message: str = "Loading workflow runs..."
    # What the loading screen waits for ("runs", "branches", ...); None when idle.
    loading_for: Optional[str] = "runs"
    status_message: str = ""

    # Sources
    sources: List[Source] = field(default_factory=list)
    source: Optional[Source] = None
    multi_source: bool = False
    failed_sources: List[str] = field(default_factory=list)

    # Runs
    runs: List[Run] = field(default_factory=list)
    run_index: int = 0
    run: Optional[Run] = None
    sourced_runs: List[SourcedRun] = field(default_factory=list)
    sourced_index: int = 0
    status_filter: str = ""
    filter_cursor: int = 0

    # Jobs
    jobs: List[Job] = field(default_factory=list)
    job_cursor: int = -1
    pending_job_id: Optional[int] = None
    selected_job: Optional[Job] = None
    step_cursor: int = -1

    # Branches
    branches: List[Branch] = field(default_factory=list)
    branch_cursor: int = -1

    # Log viewer
    log_job_id: Optional[int] = None
    log_content: str = ""
    log_loading: bool = False
    log_scroll: int = 0
    log_streaming: bool = False
    log_generation: int = 0
    log_return_screen: Screen = Screen.READY
    syntax_enabled: bool = True
    search_input_mode: bool = False
    search_buffer: str = ""
    search_term: str = ""
    search_matches: List[int] = field(default_factory=list)
    search_index: int = 0

    # Step filter
    parsed_logs: Optional[ParsedLogs] = None
    log_filter_steps: List[int] = field(default_factory=list)
    log_filter_cursor: int = -1

    # Multi-job view
    multi_job_ids: List[int] = field(default_factory=list)
    multi_job_contents: Dict[int, str] = field(default_factory=dict)
    multi_job_mode: bool = False
    multi_job_split: bool = False
    multi_job_cursor: int = -1

    # Run comparison
    compare_cursor: int = -1
    compare_step: int = 0
    compare_first: int = -1
    compare_second: int = -1
    compare_diff: List[DiffLine] = field(default_factory=list)
    compare_labels: tuple = ("", "")
    compare_scroll: int = 0

    # Workflow file and artifacts
    workflow_path: str = ""
    workflow_content: str = ""
    workflow_scroll: int = 0
    artifacts: List[Artifact] = field(default_factory=list)
    artifact_cursor: int = -1

    # Watch mode
    watching: bool = False
    notification_sent: bool = False
    poll_generation: int = 0

    # Errors and exit
    error: Optional[BaseException] = None
    error_hint: str = ""
    exit_code: int = EXIT_NO_RUN
    quit_requested: bool = False

    width: int = 80
    height: int = 24

    @property
    def log_viewport(self) -> int:
        return max(1, self.height - LOG_CHROME_ROWS)

    @property
    def diff_viewport(self) -> int:
        return max(1, self.height - DIFF_CHROME_ROWS)

    @property
    def current_job(self) -> Optional[Job]:
        index = clamp_index(self.job_cursor, len(self.jobs))
        return self.jobs[index] if index >= 0 else None

    @property
    def branch_name(self) -> str:
        if self.source is not None and self.source.branch:
            return self.source.branch
        if self.run is not None:
            return self.run.head_branch
        return ""

    def job_by_id(self, job_id: Optional[int]) -> Optional[Job]:
        for job in self.jobs:
            if job.id == job_id:
                return job
        if self.selected_job is not None and self.selected_job.id == job_id:
            return self.selected_job
        return None

    def log_lines(self) -> List[str]:
        return self.log_content.rstrip("\n").split("\n") if self.log_content else []
