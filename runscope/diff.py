"""
Positional line diff between two log texts.

Lines are compared index by index, not aligned on a longest common
subsequence: one inserted or deleted line shows every following line as
changed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

MAX_DIFF_LINES = 10_000


class DiffKind(str, Enum):
    CONTEXT = "context"
    REMOVED = "removed"
    ADDED = "added"


_PREFIX = {
    DiffKind.CONTEXT: "  ",
    DiffKind.REMOVED: "- ",
    DiffKind.ADDED: "+ ",
}


@dataclass(frozen=True)
class DiffLine:
    kind: DiffKind
    text: str
    line_number: int

    def render(self) -> str:
        return _PREFIX[self.kind] + self.text


def compute_diff(left: str, right: str) -> List[DiffLine]:
    left_lines = left.split("\n")
    right_lines = right.split("\n")
    total = min(max(len(left_lines), len(right_lines)), MAX_DIFF_LINES)

    result: List[DiffLine] = []
    for index in range(total):
        left_line = left_lines[index] if index < len(left_lines) else ""
        right_line = right_lines[index] if index < len(right_lines) else ""
        if left_line == right_line:
            result.append(DiffLine(DiffKind.CONTEXT, left_line, index + 1))
            continue
        if left_line:
            result.append(DiffLine(DiffKind.REMOVED, left_line, index + 1))
        if right_line:
            result.append(DiffLine(DiffKind.ADDED, right_line, index + 1))
    return result


def diff_stats(lines: List[DiffLine]) -> dict:
    return {
        "added": sum(1 for line in lines if line.kind is DiffKind.ADDED),
        "removed": sum(1 for line in lines if line.kind is DiffKind.REMOVED),
    }
