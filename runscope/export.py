"""
Save the log view to a text file with a metadata header.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from runscope.config import Source
from runscope.logging import get_logger, log_extra
from runscope.models import Run

logger = get_logger(__name__)


def export_filename(source: Source, run_id: int, now: datetime) -> str:
    return f"runscope-logs-{source.repo}-{run_id}-{now.strftime('%Y%m%d-%H%M%S')}.txt"


def build_export(
    source: Source,
    branch: str,
    run: Optional[Run],
    job_id: Optional[int],
    content: str,
    now: datetime,
) -> str:
    lines = [
        "# Runscope Log Export",
        f"# Repository: {source.slug}",
        f"# Branch: {branch}",
    ]
    if run is not None:
        lines.append(f"# Run: #{run.run_number} (ID: {run.id})")
    lines.append(f"# Job ID: {job_id if job_id is not None else '-'}")
    lines.append(f"# Exported: {now.isoformat(timespec='seconds')}")
    lines.append("#")
    return "\n".join(lines) + "\n\n" + content


def export_logs(
    directory: Union[str, Path],
    source: Source,
    branch: str,
    run: Optional[Run],
    job_id: Optional[int],
    content: str,
    now: Optional[datetime] = None,
) -> Path:
    """Write ``content`` to a new export file and return its path."""
    now = now or datetime.now().astimezone()
    run_id = run.id if run is not None else 0
    path = Path(directory) / export_filename(source, run_id, now)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_export(source, branch, run, job_id, content, now), encoding="utf-8")
    logger.info("logs_exported", extra=log_extra(repo=source.slug, run_id=run_id, job_id=job_id, path=str(path)))
    return path
