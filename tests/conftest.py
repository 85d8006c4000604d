import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so the in-tree package imports cleanly.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("RUNSCOPE_TOKEN", "GITHUB_TOKEN", "GH_TOKEN", "RUNSCOPE_LOG_FILE", "RUNSCOPE_HOOK", "RUNSCOPE_NOTIFY"):
        monkeypatch.delenv(key, raising=False)
