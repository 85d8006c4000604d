"""
Deferred units of work issued by the controller.

A command wraps a blocking callable that runs off the update loop and
returns at most one message. Factories close over value snapshots (sources,
ids, run objects) so a command never reads live session state.
"""

import webbrowser
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from runscope.aggregate import fetch_sourced_runs
from runscope.client import GitHubClient
from runscope.config import Source
from runscope.errors import RunscopeError
from runscope.export import export_logs
from runscope.logging import get_logger, log_extra
from runscope.models import Artifact, Run
from runscope.notify import HookData, notify_completion
from runscope.tui.messages import (
    ActionCompleted,
    ArtifactDownloaded,
    ArtifactsLoaded,
    BranchesLoaded,
    CompareLogsLoaded,
    JobDetailLoaded,
    JobsLoaded,
    LogsExported,
    LogsLoaded,
    LogsUpdated,
    LogTick,
    Message,
    MultiJobLogsLoaded,
    ParsedLogsLoaded,
    PollTick,
    RunsLoaded,
    SourcedRunsLoaded,
    WorkflowLoaded,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class Command:
    name: str
    run: Callable[[], Optional[Message]]
    delay: float = 0.0


# Runs and jobs

def fetch_runs(client: GitHubClient, source: Source, status_filter: str, per_page: int) -> Command:
    def run() -> Message:
        runs = client.fetch_runs(source, branch=source.branch, status=status_filter or None, page=1, per_page=per_page)
        return RunsLoaded(source=source, status_filter=status_filter, runs=runs)

    return Command("fetch_runs", run)


def fetch_all_sources(
    client: GitHubClient, sources: Sequence[Source], status_filter: str, per_source: int
) -> Command:
    snapshot = tuple(sources)

    def run() -> Message:
        result = fetch_sourced_runs(client, snapshot, status=status_filter or None, per_source=per_source)
        return SourcedRunsLoaded(status_filter=status_filter, result=result)

    return Command("fetch_all_sources", run)


def fetch_jobs(client: GitHubClient, source: Source, run_id: int) -> Command:
    def run() -> Message:
        return JobsLoaded(run_id=run_id, jobs=client.fetch_jobs(source, run_id))

    return Command("fetch_jobs", run)


def fetch_job_detail(client: GitHubClient, source: Source, job_id: int) -> Command:
    def run() -> Message:
        return JobDetailLoaded(job=client.fetch_job_detail(source, job_id))

    return Command("fetch_job_detail", run)


# Logs

def fetch_logs(client: GitHubClient, source: Source, job_id: int, generation: int) -> Command:
    def run() -> Message:
        return LogsLoaded(job_id=job_id, generation=generation, logs=client.fetch_logs(source, job_id))

    return Command("fetch_logs", run)


def refresh_logs(client: GitHubClient, source: Source, job_id: int, generation: int) -> Command:
    """Re-fetch a streaming job's logs and status; failures keep the previous content."""

    def run() -> Message:
        try:
            logs = client.fetch_logs(source, job_id)
            job = client.fetch_job_detail(source, job_id)
        except RunscopeError as exc:
            log.warning("log_refresh_failed", extra=log_extra(repo=source.slug, job_id=job_id, error=str(exc)))
            return LogsUpdated(job_id=job_id, generation=generation)
        return LogsUpdated(job_id=job_id, generation=generation, logs=logs, job=job)

    return Command("refresh_logs", run)


def fetch_parsed_logs(client: GitHubClient, source: Source, job_id: int) -> Command:
    def run() -> Message:
        return ParsedLogsLoaded(job_id=job_id, logs=client.fetch_logs(source, job_id))

    return Command("fetch_parsed_logs", run)


def fetch_multi_job_logs(client: GitHubClient, source: Source, job_ids: Sequence[int]) -> Command:
    snapshot = tuple(job_ids)

    def run() -> Message:
        contents: Dict[int, str] = {}
        for job_id in snapshot:
            try:
                contents[job_id] = client.fetch_logs(source, job_id).combined
            except RunscopeError as exc:
                contents[job_id] = f"Error loading logs: {exc}"
        return MultiJobLogsLoaded(job_ids=snapshot, contents=contents)

    return Command("fetch_multi_job_logs", run)


def _first_job_logs(client: GitHubClient, source: Source, run: Run) -> str:
    try:
        jobs = client.fetch_jobs(source, run.id)
    except RunscopeError as exc:
        return f"Error loading jobs for run #{run.run_number}: {exc}"
    if not jobs:
        return f"No jobs found for run #{run.run_number}"
    try:
        return client.fetch_logs(source, jobs[0].id).combined
    except RunscopeError as exc:
        return f"Error loading logs: {exc}"


def fetch_compare_logs(client: GitHubClient, source: Source, left: Run, right: Run) -> Command:
    def run() -> Message:
        return CompareLogsLoaded(
            run_ids=(left.id, right.id),
            left=_first_job_logs(client, source, left),
            right=_first_job_logs(client, source, right),
            labels=(f"Run #{left.run_number}", f"Run #{right.run_number}"),
        )

    return Command("fetch_compare_logs", run)


def export_current_logs(
    directory: Path,
    source: Source,
    branch: str,
    run: Optional[Run],
    job_id: Optional[int],
    content: str,
) -> Command:
    def run_export() -> Message:
        try:
            path = export_logs(directory, source, branch, run, job_id, content, now=datetime.now().astimezone())
        except OSError as exc:
            return LogsExported(error=str(exc))
        return LogsExported(path=path)

    return Command("export_logs", run_export)


# Repository data

def fetch_branches(client: GitHubClient, source: Source) -> Command:
    def run() -> Message:
        return BranchesLoaded(branches=client.fetch_branches(source))

    return Command("fetch_branches", run)


def fetch_workflow(client: GitHubClient, source: Source, path: str, ref: Optional[str]) -> Command:
    def run() -> Message:
        return WorkflowLoaded(path=path, content=client.fetch_file_content(source, path, ref=ref))

    return Command("fetch_workflow", run)


def fetch_artifacts(client: GitHubClient, source: Source, run_id: int) -> Command:
    def run() -> Message:
        return ArtifactsLoaded(run_id=run_id, artifacts=client.fetch_artifacts(source, run_id))

    return Command("fetch_artifacts", run)


def download_artifact(client: GitHubClient, source: Source, artifact: Artifact, directory: Path) -> Command:
    def run() -> Message:
        path = client.download_artifact(source, artifact.id, Path(directory) / f"{artifact.name}.zip")
        return ArtifactDownloaded(path=path)

    return Command("download_artifact", run)


# Run actions

def rerun_run(client: GitHubClient, source: Source, run: Run) -> Command:
    def execute() -> Message:
        client.rerun(source, run.id)
        return ActionCompleted(action="rerun", run_id=run.id, description=f"Rerun requested for run #{run.run_number}")

    return Command("rerun", execute)


def cancel_run(client: GitHubClient, source: Source, run: Run) -> Command:
    def execute() -> Message:
        client.cancel(source, run.id)
        return ActionCompleted(action="cancel", run_id=run.id, description=f"Cancel requested for run #{run.run_number}")

    return Command("cancel", execute)


def dispatch_workflow(client: GitHubClient, source: Source, workflow_file: str, ref: str) -> Command:
    def execute() -> Message:
        client.dispatch(source, workflow_file, ref)
        return ActionCompleted(action="dispatch", run_id=None, description=f"Dispatched {workflow_file} on {ref}")

    return Command("dispatch", execute)


# Fire-and-forget

def notify(data: HookData, desktop: bool, hook_path: Optional[str]) -> Command:
    def run() -> None:
        notify_completion(data, desktop=desktop, hook_path=hook_path)
        return None

    return Command("notify", run)


def open_url(url: str) -> Command:
    def run() -> None:
        webbrowser.open(url)
        return None

    return Command("open_url", run)


# Timers

def poll_tick(generation: int, delay: float) -> Command:
    return Command("poll_tick", lambda: PollTick(generation=generation), delay=delay)


def log_tick(job_id: int, generation: int, delay: float) -> Command:
    return Command("log_tick", lambda: LogTick(job_id=job_id, generation=generation), delay=delay)


def names(commands: List[Command]) -> List[str]:
    return [command.name for command in commands]
