"""
Completion notifications: desktop notification and user hook script.

Both are fire-and-forget. The child process is started and not waited for;
failures are logged and never reach the session controller.
"""

import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from runscope.errors import HookError
from runscope.logging import get_logger, log_extra
from runscope.models import Job, Run

logger = get_logger(__name__)

_ICONS = {
    "success": "✓",
    "failure": "✗",
    "cancelled": "⊘",
    "timed_out": "⏱",
}


@dataclass(frozen=True)
class HookData:
    """Flat record describing a finished run, exported to hooks as RUNSCOPE_* variables."""

    workflow_name: str
    run_number: int
    run_id: int
    status: str
    conclusion: str
    repo: str
    branch: str
    event: str
    actor: str
    html_url: str
    job_count: int = 0
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def from_run(cls, repo: str, run: Run, jobs: Sequence[Job]) -> "HookData":
        return cls(
            workflow_name=run.name,
            run_number=run.run_number,
            run_id=run.id,
            status=run.status,
            conclusion=run.conclusion or "",
            repo=repo,
            branch=run.head_branch,
            event=run.event,
            actor=run.actor_login,
            html_url=run.html_url,
            job_count=len(jobs),
            success_count=sum(1 for job in jobs if job.conclusion == "success"),
            failure_count=sum(1 for job in jobs if job.conclusion == "failure"),
        )

    def to_env(self) -> Dict[str, str]:
        return {
            "RUNSCOPE_WORKFLOW_NAME": self.workflow_name,
            "RUNSCOPE_RUN_NUMBER": str(self.run_number),
            "RUNSCOPE_RUN_ID": str(self.run_id),
            "RUNSCOPE_STATUS": self.status,
            "RUNSCOPE_CONCLUSION": self.conclusion,
            "RUNSCOPE_REPO": self.repo,
            "RUNSCOPE_BRANCH": self.branch,
            "RUNSCOPE_EVENT": self.event,
            "RUNSCOPE_ACTOR": self.actor,
            "RUNSCOPE_HTML_URL": self.html_url,
            "RUNSCOPE_JOB_COUNT": str(self.job_count),
            "RUNSCOPE_SUCCESS_COUNT": str(self.success_count),
            "RUNSCOPE_FAILURE_COUNT": str(self.failure_count),
        }


def notification_title(data: HookData) -> str:
    icon = _ICONS.get(data.conclusion, "●")
    return f"{icon} {data.workflow_name} #{data.run_number}"


def notification_body(data: HookData) -> str:
    return f"{data.repo} on {data.branch} - {data.conclusion or 'completed'}"


def notification_urgency(conclusion: str) -> str:
    if conclusion in ("failure", "timed_out"):
        return "critical"
    if conclusion == "cancelled":
        return "normal"
    return "low"


def notification_command(data: HookData, platform: Optional[str] = None) -> Optional[List[str]]:
    """Build the OS notification command, or None when the platform has none."""
    platform = platform or sys.platform
    title = notification_title(data)
    body = notification_body(data)
    if platform.startswith("linux"):
        if not shutil.which("notify-send"):
            return None
        return ["notify-send", "-u", notification_urgency(data.conclusion), "-a", "runscope", title, body]
    if platform == "darwin":
        script = f'display notification "{body}" with title "{title}" sound name "default"'
        return ["osascript", "-e", script]
    return None


def send_desktop_notification(data: HookData) -> bool:
    cmd = notification_command(data)
    if cmd is None:
        logger.info("notification_unavailable", extra={"platform": sys.platform})
        return False
    try:
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as exc:
        logger.warning("notification_failed", extra={"error": str(exc)})
        return False
    return True


def resolve_hook_path(hook_path: str) -> Path:
    path = Path(hook_path).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def validate_hook_path(hook_path: Optional[str]) -> None:
    """
    Check a hook path without running it. An empty path means no hook.

    Raises:
        HookError: If the hook is missing, a directory, or not executable.
    """
    if not hook_path:
        return
    path = resolve_hook_path(hook_path)
    if not path.exists():
        raise HookError(f"hook file not found: {path}", metadata={"path": str(path)})
    if path.is_dir():
        raise HookError(f"hook path is a directory, not a file: {path}", metadata={"path": str(path)})
    if os.name != "nt" and not os.access(path, os.X_OK):
        raise HookError(f"hook file is not executable: {path} (try: chmod +x {path})", metadata={"path": str(path)})


def execute_hook(hook_path: str, data: HookData) -> bool:
    """Start the hook with run data in its environment; does not wait for it."""
    try:
        validate_hook_path(hook_path)
    except HookError as exc:
        logger.warning("hook_invalid", extra=log_extra(repo=data.repo, run_id=data.run_id, error=str(exc)))
        return False
    env = {**os.environ, **data.to_env()}
    try:
        subprocess.Popen(
            [str(resolve_hook_path(hook_path))],
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.warning("hook_failed", extra=log_extra(repo=data.repo, run_id=data.run_id, error=str(exc)))
        return False
    logger.info("hook_started", extra=log_extra(repo=data.repo, run_id=data.run_id, hook=hook_path))
    return True


def notify_completion(data: HookData, desktop: bool, hook_path: Optional[str]) -> None:
    if desktop:
        send_desktop_notification(data)
    if hook_path:
        execute_hook(hook_path, data)
