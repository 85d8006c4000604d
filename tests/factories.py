"""Builders shared by the test modules."""

import io
import zipfile
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from runscope.client import GitHubClient
from runscope.config import Settings, Source
from runscope.logs import ParsedLogs, StepLog, build_parsed_logs
from runscope.models import Job, Run
from runscope.retry import RetryPolicy

SOURCE = Source(owner="octo", repo="app", branch="main")
API = "https://api.test"


def run_payload(run_id: int = 1, **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": run_id,
        "name": "CI",
        "run_number": run_id,
        "status": "completed",
        "conclusion": "success",
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:05:00Z",
        "head_branch": "main",
        "head_sha": "abc1234def",
        "event": "push",
        "actor": {"login": "octocat"},
        "html_url": f"https://github.com/octo/app/actions/runs/{run_id}",
        "path": ".github/workflows/ci.yml",
    }
    data.update(overrides)
    return data


def make_run(run_id: int = 1, **overrides: Any) -> Run:
    return Run.model_validate(run_payload(run_id, **overrides))


def job_payload(job_id: int = 10, **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": job_id,
        "run_id": 1,
        "name": f"job-{job_id}",
        "status": "completed",
        "conclusion": "success",
        "started_at": "2024-01-01T00:00:00Z",
        "completed_at": "2024-01-01T00:01:30Z",
        "html_url": f"https://github.com/octo/app/actions/runs/1/job/{job_id}",
        "steps": [
            {"number": 1, "name": "Set up job", "status": "completed", "conclusion": "success"},
            {"number": 2, "name": "Run tests", "status": "completed", "conclusion": "success"},
        ],
    }
    data.update(overrides)
    return data


def make_job(job_id: int = 10, **overrides: Any) -> Job:
    return Job.model_validate(job_payload(job_id, **overrides))


def build_zip(files: Dict[str, str], directories: Iterable[str] = ()) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for directory in directories:
            archive.writestr(zipfile.ZipInfo(directory.rstrip("/") + "/"), "")
        for name, content in files.items():
            archive.writestr(name, content)
    return buf.getvalue()


def sample_logs() -> ParsedLogs:
    return build_parsed_logs(
        [
            StepLog(number=1, name="Set up job", content="hello"),
            StepLog(number=2, name="Run tests", content="error: boom\nok"),
        ]
    )


def make_client(
    handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    max_retries: int = 2,
) -> GitHubClient:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request: {request.method} {request.url}")

    return GitHubClient(
        base_url=API,
        token="test-token",
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=0.0, max_delay=0.0),
        transport=httpx.MockTransport(handler or refuse),
        sleep=lambda _: None,
    )


def make_settings(**overrides: Any) -> Settings:
    return Settings(**overrides)