import base64
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from runscope.config import Settings, Source
from runscope.errors import GitHubAPIError, NoRunsError, classify_error
from runscope.logging import get_logger, log_extra
from runscope.logs import ParsedLogs, parse_log_archive
from runscope.models import Artifact, Branch, Job, Repository, Run
from runscope.retry import RetryPolicy, retry_with_backoff

log = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

API_VERSION = "2022-11-28"


def _seg(value: Any) -> str:
    return quote(str(value), safe="")


def _repo_path(source: Source) -> str:
    return f"repos/{_seg(source.owner)}/{_seg(source.repo)}"


def _parse(model: Type[M], data: Any, path: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise GitHubAPIError(
            f"unexpected {model.__name__.lower()} payload: {exc.error_count()} invalid field(s)",
            metadata={"path": path, "fields": [".".join(str(part) for part in err["loc"]) for err in exc.errors()]},
        ) from exc


def _items(data: Any, key: Optional[str], path: str) -> List[Any]:
    """Pull the item list out of a listing response (``key=None`` for bare arrays)."""
    if key is not None:
        if not isinstance(data, dict):
            raise GitHubAPIError(f"expected an object with '{key}'", metadata={"path": path})
        data = data.get(key)
    if data is None:
        return []
    if not isinstance(data, list):
        raise GitHubAPIError("expected a list of items", metadata={"path": path})
    return data


@dataclass
class GitHubClient:
    """
    Thin Actions REST client.

    Every call is classified (auth, not found, rate limit, transient) and
    transient failures are retried with capped exponential backoff.
    """

    base_url: str = "https://api.github.com"
    token: Optional[str] = None
    timeout: float = 20.0
    download_timeout: float = 60.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    transport: Optional[httpx.BaseTransport] = None
    sleep: Optional[Callable[[float], None]] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "GitHubClient":
        return cls(
            base_url=settings.api_base,
            token=settings.token,
            timeout=settings.request_timeout,
            download_timeout=settings.download_timeout,
            retry_policy=settings.retry_policy,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "runscope",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, *, timeout: Optional[float] = None, **kwargs: Any) -> httpx.Response:
        url = path if path.startswith("http") else path.lstrip("/")
        try:
            with httpx.Client(
                base_url=self.base_url.rstrip("/"),
                headers=self._headers(),
                transport=self.transport,
                timeout=timeout or self.timeout,
            ) as client:
                resp = client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise GitHubAPIError(f"network error: {type(exc).__name__}: {exc}") from exc
        if not resp.is_success:
            detail = resp.text
            try:
                data = resp.json()
                if isinstance(data, dict):
                    detail = data.get("message") or detail
            except ValueError:
                pass
            raise GitHubAPIError(
                f"{resp.status_code} {resp.reason_phrase}: {detail}",
                status_code=resp.status_code,
                metadata={"method": method, "path": url},
            )
        return resp

    def _classified(self, func: Callable[[], T]) -> Callable[[], T]:
        def call() -> T:
            try:
                return func()
            except GitHubAPIError as exc:
                classified = classify_error(exc)
                if classified is exc:
                    raise
                raise classified from exc

        return call

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request under the classification and retry policy."""
        call = self._classified(lambda: self._send(method, path, **kwargs))
        if self.sleep is not None:
            return retry_with_backoff(call, self.retry_policy, sleep=self.sleep)
        return retry_with_backoff(call, self.retry_policy)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self.request("GET", path, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise GitHubAPIError(
                f"invalid JSON response: {exc}", status_code=resp.status_code, metadata={"path": path}
            ) from exc

    def post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> None:
        kwargs: Dict[str, Any] = {}
        if payload is not None:
            kwargs["json"] = payload
        self.request("POST", path, **kwargs)

    # -- runs -------------------------------------------------------------

    def fetch_runs(
        self,
        source: Source,
        branch: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> List[Run]:
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        branch = branch if branch is not None else source.branch
        if branch:
            params["branch"] = branch
        if status:
            params["status"] = status
        path = f"{_repo_path(source)}/actions/runs"
        data = self.get(path, params=params)
        runs = [_parse(Run, item, path) for item in _items(data, "workflow_runs", path)]
        log.debug("runs_fetched", extra=log_extra(repo=source.slug, count=len(runs), branch=branch, status=status))
        return runs

    def fetch_latest_run(self, source: Source, branch: Optional[str] = None) -> Run:
        runs = self.fetch_runs(source, branch=branch, per_page=1)
        if not runs:
            raise NoRunsError(f"no workflow runs found for {source.slug}", metadata={"repo": source.slug})
        return runs[0]

    def fetch_run(self, source: Source, run_id: int) -> Run:
        path = f"{_repo_path(source)}/actions/runs/{run_id}"
        return _parse(Run, self.get(path), path)

    # -- jobs & logs ------------------------------------------------------

    def fetch_jobs(self, source: Source, run_id: int) -> List[Job]:
        path = f"{_repo_path(source)}/actions/runs/{run_id}/jobs"
        data = self.get(path, params={"per_page": 100})
        jobs = [_parse(Job, item, path) for item in _items(data, "jobs", path)]
        log.debug("jobs_fetched", extra=log_extra(repo=source.slug, run_id=run_id, count=len(jobs)))
        return jobs

    def fetch_job_detail(self, source: Source, job_id: int) -> Job:
        path = f"{_repo_path(source)}/actions/jobs/{job_id}"
        return _parse(Job, self.get(path), path)

    def fetch_logs_raw(self, source: Source, job_id: int) -> bytes:
        """Download the log bundle for a job (the API answers with a redirect)."""
        resp = self.request(
            "GET",
            f"{_repo_path(source)}/actions/jobs/{job_id}/logs",
            timeout=self.download_timeout,
            follow_redirects=True,
        )
        return resp.content

    def fetch_logs(self, source: Source, job_id: int) -> ParsedLogs:
        return parse_log_archive(self.fetch_logs_raw(source, job_id))

    # -- repository data ----------------------------------------------------

    def fetch_branches(self, source: Source) -> List[Branch]:
        path = f"{_repo_path(source)}/branches"
        data = self.get(path, params={"per_page": 100})
        return [_parse(Branch, item, path) for item in _items(data, None, path)]

    def fetch_artifacts(self, source: Source, run_id: int) -> List[Artifact]:
        path = f"{_repo_path(source)}/actions/runs/{run_id}/artifacts"
        data = self.get(path)
        return [_parse(Artifact, item, path) for item in _items(data, "artifacts", path)]

    def download_artifact(self, source: Source, artifact_id: int, destination: Path) -> Path:
        """Download an artifact zip, writing it atomically to ``destination``."""
        resp = self.request(
            "GET",
            f"{_repo_path(source)}/actions/artifacts/{artifact_id}/zip",
            timeout=self.download_timeout,
            follow_redirects=True,
        )
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".runscope-artifact-", suffix=".zip", dir=destination.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(resp.content)
            os.replace(tmp_name, destination)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log.info("artifact_downloaded", extra=log_extra(repo=source.slug, artifact_id=artifact_id, path=str(destination)))
        return destination

    def fetch_file_content(self, source: Source, path: str, ref: Optional[str] = None) -> str:
        params = {"ref": ref} if ref else None
        encoded = "/".join(_seg(part) for part in path.split("/"))
        data = self.get(f"{_repo_path(source)}/contents/{encoded}", params=params)
        if not isinstance(data, dict):
            raise GitHubAPIError("expected a file object", metadata={"path": path})
        encoding = data.get("encoding")
        if encoding != "base64":
            raise GitHubAPIError(f"unexpected content encoding: {encoding}", metadata={"path": path})
        try:
            return base64.b64decode(data.get("content") or "").decode("utf-8", errors="replace")
        except ValueError as exc:
            raise GitHubAPIError(f"failed to decode base64 content: {exc}", metadata={"path": path}) from exc

    def get_repository(self, source: Source) -> Repository:
        path = _repo_path(source)
        return _parse(Repository, self.get(path), path)

    # -- actions ------------------------------------------------------------

    def rerun(self, source: Source, run_id: int) -> None:
        self.post(f"{_repo_path(source)}/actions/runs/{run_id}/rerun")
        log.info("run_rerun_requested", extra=log_extra(repo=source.slug, run_id=run_id))

    def cancel(self, source: Source, run_id: int) -> None:
        self.post(f"{_repo_path(source)}/actions/runs/{run_id}/cancel")
        log.info("run_cancel_requested", extra=log_extra(repo=source.slug, run_id=run_id))

    def dispatch(self, source: Source, workflow_file: str, ref: str) -> None:
        self.post(
            f"{_repo_path(source)}/actions/workflows/{_seg(workflow_file)}/dispatches",
            {"ref": ref},
        )
        log.info("workflow_dispatched", extra=log_extra(repo=source.slug, workflow=workflow_file, ref=ref))
