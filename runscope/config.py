"""
Runscope Configuration

Pydantic-backed settings loaded from environment variables (RUNSCOPE_
prefix), plus the monitored-source model and the optional YAML file that
lists several sources for the aggregated view.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from runscope.errors import ConfigError
from runscope.retry import RetryPolicy

_TRUTHY = ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Pydantic-backed configuration loaded from environment variables.

    Key env vars:
    - RUNSCOPE_API_BASE (default: https://api.github.com)
    - RUNSCOPE_TOKEN, GITHUB_TOKEN or GH_TOKEN (bearer token, first one set wins)
    - RUNSCOPE_LOG_LEVEL / RUNSCOPE_LOG_JSON / RUNSCOPE_LOG_FILE
    - RUNSCOPE_POLL_INTERVAL (watch-mode polling, seconds)
    - RUNSCOPE_LOG_REFRESH_INTERVAL (live log refresh, seconds)
    - RUNSCOPE_RETRY_MAX / RUNSCOPE_RETRY_BASE_DELAY / RUNSCOPE_RETRY_MAX_DELAY
    - RUNSCOPE_CONFIG_FILE (YAML list of repositories, default: runscope.yml)
    - RUNSCOPE_NOTIFY / RUNSCOPE_HOOK (completion notification and hook script)
    """

    api_base: str = Field(default="https://api.github.com")
    token: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    log_file: Optional[str] = Field(default=None)

    poll_interval: float = Field(default=5.0)
    log_refresh_interval: float = Field(default=3.0)
    runs_page_size: int = Field(default=10)
    runs_per_source: int = Field(default=5)
    request_timeout: float = Field(default=20.0)
    download_timeout: float = Field(default=60.0)

    retry_max_retries: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=30.0)

    export_dir: Path = Field(default=Path("."))
    config_file: Path = Field(default=Path("runscope.yml"))
    notify: bool = Field(default=False)
    hook: Optional[str] = Field(default=None)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


def load_config() -> Settings:
    """
    Load runscope settings from environment.
    """
    token = (
        os.environ.get("RUNSCOPE_TOKEN")
        or os.environ.get("GITHUB_TOKEN")
        or os.environ.get("GH_TOKEN")
        or None
    )
    return Settings(
        api_base=os.environ.get("RUNSCOPE_API_BASE", "https://api.github.com"),
        token=token,
        log_level=os.environ.get("RUNSCOPE_LOG_LEVEL", "INFO"),
        log_json=os.environ.get("RUNSCOPE_LOG_JSON", "false").lower() in _TRUTHY,
        log_file=os.environ.get("RUNSCOPE_LOG_FILE") or None,
        poll_interval=float(os.environ.get("RUNSCOPE_POLL_INTERVAL", "5")),
        log_refresh_interval=float(os.environ.get("RUNSCOPE_LOG_REFRESH_INTERVAL", "3")),
        runs_page_size=int(os.environ.get("RUNSCOPE_RUNS_PAGE_SIZE", "10")),
        runs_per_source=int(os.environ.get("RUNSCOPE_RUNS_PER_SOURCE", "5")),
        request_timeout=float(os.environ.get("RUNSCOPE_REQUEST_TIMEOUT", "20")),
        download_timeout=float(os.environ.get("RUNSCOPE_DOWNLOAD_TIMEOUT", "60")),
        retry_max_retries=int(os.environ.get("RUNSCOPE_RETRY_MAX", "3")),
        retry_base_delay=float(os.environ.get("RUNSCOPE_RETRY_BASE_DELAY", "1.0")),
        retry_max_delay=float(os.environ.get("RUNSCOPE_RETRY_MAX_DELAY", "30.0")),
        export_dir=Path(os.environ.get("RUNSCOPE_EXPORT_DIR", ".")).expanduser(),
        config_file=Path(os.environ.get("RUNSCOPE_CONFIG_FILE", "runscope.yml")).expanduser(),
        notify=os.environ.get("RUNSCOPE_NOTIFY", "false").lower() in _TRUTHY,
        hook=os.environ.get("RUNSCOPE_HOOK") or None,
    )


# =============================================================================
# Sources
# =============================================================================

@dataclass(frozen=True)
class Source:
    """One monitored repository, optionally pinned to a branch."""

    owner: str
    repo: str
    branch: Optional[str] = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def with_branch(self, branch: Optional[str]) -> "Source":
        return replace(self, branch=branch)

    def __str__(self) -> str:
        return self.slug


def parse_source(value: str, branch: Optional[str] = None) -> Source:
    """Parse an ``owner/repo`` string."""
    text = (value or "").strip()
    parts = text.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ConfigError(f"invalid repository '{value}': expected owner/repo", metadata={"value": value})
    return Source(owner=parts[0], repo=parts[1], branch=branch)


def parse_sources(values: str) -> List[Source]:
    """Parse a comma separated ``owner/repo,owner/repo`` list."""
    return [parse_source(item) for item in values.split(",") if item.strip()]


def load_sources_file(path: Union[str, Path]) -> List[Source]:
    """
    Load the ``repositories`` list from a YAML config file.

    A missing file yields an empty list; malformed content raises ConfigError.

    Example file:
        repositories:
          - octo/api
          - octo/web
    """
    config_path = Path(path)
    if not config_path.exists():
        return []
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse {config_path}: {exc}", metadata={"path": str(config_path)}) from exc
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level", metadata={"path": str(config_path)})
    repositories = data.get("repositories") or []
    if not isinstance(repositories, list):
        raise ConfigError(f"{config_path}: 'repositories' must be a list", metadata={"path": str(config_path)})
    return [parse_source(str(item)) for item in repositories]
