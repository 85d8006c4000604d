"""
Log bundle structuring.

A run's job log bundle is a zip archive with one text file per executed
step, named ``{step_number}_{step_name}.txt`` (possibly inside a per-job
directory). This module turns the bundle into ordered per-step records and
a combined text view that can be filtered by step number.
"""

import io
import re
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from runscope.errors import LogArchiveError
from runscope.logging import get_logger

logger = get_logger(__name__)

_STEP_FILE_RE = re.compile(r"^(\d+)_(.+)\.txt$")


@dataclass(frozen=True)
class StepLog:
    number: int
    name: str
    content: str

    @property
    def key(self) -> str:
        return f"{self.number}_{self.name}"

    def block(self) -> str:
        return f"=== {self.key} ===\n{self.content}\n\n"


@dataclass(frozen=True)
class ParsedLogs:
    steps: List[StepLog] = field(default_factory=list)
    combined: str = ""
    steps_by_key: Dict[str, StepLog] = field(default_factory=dict)

    @property
    def step_numbers(self) -> List[int]:
        return [step.number for step in self.steps]

    def filtered_content(self, numbers: Optional[Iterable[int]]) -> str:
        """Combined-format text for the given step numbers; empty means everything."""
        wanted = set(numbers or ())
        if not wanted:
            return self.combined
        return "".join(step.block() for step in self.steps if step.number in wanted)


def _step_from_filename(filename: str) -> tuple:
    base = filename.rsplit("/", 1)[-1]
    match = _STEP_FILE_RE.match(base)
    if match:
        return int(match.group(1)), match.group(2)
    name = base[:-4] if base.endswith(".txt") else base
    return 0, name


def build_parsed_logs(steps: Iterable[StepLog]) -> ParsedLogs:
    ordered = sorted(steps, key=lambda step: step.number)
    return ParsedLogs(
        steps=ordered,
        combined="".join(step.block() for step in ordered),
        steps_by_key={step.key: step for step in ordered},
    )


def parse_log_archive(data: bytes) -> ParsedLogs:
    """
    Decode a log bundle into per-step records.

    Directory entries and members that cannot be read are skipped. A payload
    that is not a zip archive at all (single-job log endpoints return plain
    text) becomes one step 0 named ``log``.

    Raises:
        LogArchiveError: If the payload looks like a zip archive but cannot be opened.
    """
    if not zipfile.is_zipfile(io.BytesIO(data)):
        text = data.decode("utf-8", errors="replace")
        return build_parsed_logs([StepLog(number=0, name="log", content=text)])

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, OSError) as exc:
        raise LogArchiveError(f"failed to open log archive: {exc}") from exc

    steps: List[StepLog] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            try:
                raw = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, EOFError, OSError, RuntimeError, NotImplementedError) as exc:
                logger.debug("log_member_skipped", extra={"member": info.filename, "error": str(exc)})
                continue
            number, name = _step_from_filename(info.filename)
            steps.append(StepLog(number=number, name=name, content=raw.decode("utf-8", errors="replace")))

    return build_parsed_logs(steps)
