import os
import stat
from pathlib import Path
from typing import List

import pytest

from factories import make_job, make_run
from runscope import notify
from runscope.errors import HookError
from runscope.notify import HookData


def _data(conclusion: str = "failure") -> HookData:
    jobs = [
        make_job(1, conclusion="success"),
        make_job(2, conclusion="failure"),
        make_job(3, conclusion="skipped"),
        make_job(4, conclusion="cancelled"),
    ]
    return HookData.from_run("octo/app", make_run(42, conclusion=conclusion), jobs)


def test_hook_data_counts_exact_conclusions() -> None:
    data = _data()
    assert (data.job_count, data.success_count, data.failure_count) == (4, 1, 1)
    assert data.actor == "octocat"
    assert data.branch == "main"


def test_hook_env() -> None:
    env = _data().to_env()
    assert env["RUNSCOPE_RUN_ID"] == "42"
    assert env["RUNSCOPE_CONCLUSION"] == "failure"
    assert env["RUNSCOPE_REPO"] == "octo/app"
    assert env["RUNSCOPE_JOB_COUNT"] == "4"
    assert all(key.startswith("RUNSCOPE_") for key in env)
    assert all(isinstance(value, str) for value in env.values())


def test_notification_text() -> None:
    data = _data()
    assert notify.notification_title(data) == "✗ CI #42"
    assert notify.notification_body(data) == "octo/app on main - failure"
    assert notify.notification_urgency("failure") == "critical"
    assert notify.notification_urgency("cancelled") == "normal"
    assert notify.notification_urgency("success") == "low"


def test_notification_command_per_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    data = _data("success")
    monkeypatch.setattr(notify.shutil, "which", lambda name: "/usr/bin/notify-send")
    linux = notify.notification_command(data, platform="linux")
    assert linux is not None
    assert linux[:3] == ["notify-send", "-u", "low"]

    monkeypatch.setattr(notify.shutil, "which", lambda name: None)
    assert notify.notification_command(data, platform="linux") is None

    darwin = notify.notification_command(data, platform="darwin")
    assert darwin is not None
    assert darwin[0] == "osascript"
    assert "✓ CI #42" in darwin[2]

    assert notify.notification_command(data, platform="win32") is None


def _script(tmp_path: Path, executable: bool = True) -> Path:
    path = tmp_path / "hook.sh"
    path.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def test_validate_hook_path(tmp_path: Path) -> None:
    notify.validate_hook_path(None)
    notify.validate_hook_path(str(_script(tmp_path)))
    with pytest.raises(HookError, match="not found"):
        notify.validate_hook_path(str(tmp_path / "missing.sh"))
    with pytest.raises(HookError, match="directory"):
        notify.validate_hook_path(str(tmp_path))


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_validate_hook_requires_executable(tmp_path: Path) -> None:
    with pytest.raises(HookError, match="not executable"):
        notify.validate_hook_path(str(_script(tmp_path, executable=False)))


class FakePopen:
    calls: List[dict] = []

    def __init__(self, args, **kwargs) -> None:
        FakePopen.calls.append({"args": args, **kwargs})


def test_execute_hook_passes_run_data(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    FakePopen.calls = []
    monkeypatch.setattr(notify.subprocess, "Popen", FakePopen)
    script = _script(tmp_path)

    assert notify.execute_hook(str(script), _data())
    (call,) = FakePopen.calls
    assert call["args"] == [str(script)]
    assert call["env"]["RUNSCOPE_WORKFLOW_NAME"] == "CI"
    assert call["env"]["RUNSCOPE_FAILURE_COUNT"] == "1"


def test_execute_hook_invalid_path_is_not_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    FakePopen.calls = []
    monkeypatch.setattr(notify.subprocess, "Popen", FakePopen)
    assert not notify.execute_hook(str(tmp_path / "nope.sh"), _data())
    assert FakePopen.calls == []


def test_notify_completion_runs_both(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    FakePopen.calls = []
    monkeypatch.setattr(notify.subprocess, "Popen", FakePopen)
    monkeypatch.setattr(notify.sys, "platform", "darwin")
    notify.notify_completion(_data(), desktop=True, hook_path=str(_script(tmp_path)))
    assert [call["args"][0] for call in FakePopen.calls] == ["osascript", str(tmp_path / "hook.sh")]
