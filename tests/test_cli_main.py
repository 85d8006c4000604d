import json
import logging

import httpx
import pytest
from click.testing import CliRunner

from factories import job_payload, make_client, run_payload
from runscope.cli.main import build_settings, cli, resolve_sources
from runscope.client import GitHubClient
from runscope.errors import ConfigError


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def api(runs=None, jobs=None, default_branch="main", calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if calls is not None:
            calls.append((request.method, path, dict(request.url.params)))
        if request.method == "POST":
            return httpx.Response(201)
        if path.endswith("/actions/runs"):
            return httpx.Response(200, json={"workflow_runs": runs if runs is not None else [run_payload(1)]})
        if "/actions/runs/" in path and path.endswith("/jobs"):
            return httpx.Response(200, json={"jobs": jobs if jobs is not None else [job_payload(10)]})
        if "/actions/runs/" in path:
            run_id = int(path.rsplit("/", 1)[-1])
            matching = [run for run in (runs or [run_payload(1)]) if run["id"] == run_id]
            if matching:
                return httpx.Response(200, json=matching[0])
            return httpx.Response(404, json={"message": "Not Found"})
        if path.count("/") == 3:
            return httpx.Response(200, json={"full_name": path[len("/repos/"):], "default_branch": default_branch})
        return httpx.Response(404, json={"message": "Not Found"})

    return handler


@pytest.fixture
def use_api(monkeypatch: pytest.MonkeyPatch):
    def install(**kwargs):
        client = make_client(api(**kwargs))
        monkeypatch.setattr(GitHubClient, "from_settings", staticmethod(lambda settings: client))
        return client

    return install


def invoke(*args: str):
    return CliRunner().invoke(cli, ["--log-level", "WARNING", *args], obj={})


def test_json_reports_failed_run(use_api) -> None:
    use_api(runs=[run_payload(7, conclusion="failure")], jobs=[job_payload(70, conclusion="failure")])
    result = invoke("--repo", "octo/app", "--json")
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["repository"] == "octo/app"
    assert payload["branch"] == "main"
    assert payload["run"]["id"] == 7
    assert payload["jobs"][0]["conclusion"] == "failure"
    assert payload["error"] is None


def test_plain_output_for_successful_run(use_api) -> None:
    use_api()
    result = invoke("--repo", "octo/app", "--branch", "dev", "--plain")
    assert result.exit_code == 0
    assert "octo/app" in result.stdout
    assert "job-10" in result.stdout


def test_json_without_runs_exits_two(use_api) -> None:
    use_api(runs=[])
    result = invoke("--repo", "octo/app", "--json")
    assert result.exit_code == 2
    assert "no workflow runs" in json.loads(result.stdout)["error"]


def test_several_repositories_report_worst_outcome(use_api) -> None:
    calls = []
    use_api(runs=[run_payload(3, conclusion="cancelled")], calls=calls)
    result = invoke("--repos", "octo/api,octo/web", "--json")
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert [item["repository"] for item in payload] == ["octo/api", "octo/web"]
    # No default-branch lookup when several repositories are given.
    assert not any(path in ("/repos/octo/api", "/repos/octo/web") for _, path, _ in calls)


def test_missing_repository_is_a_config_error(use_api, tmp_path) -> None:
    use_api()
    result = invoke("--json", "--config", str(tmp_path / "missing.yml"))
    assert result.exit_code == 2
    assert "no repository given" in json.loads(result.stdout)["error"]


def test_retry_requests_rerun(use_api) -> None:
    calls = []
    use_api(runs=[run_payload(5)], calls=calls)
    result = invoke("--repo", "octo/app", "--branch", "main", "retry", "5", "--yes")
    assert result.exit_code == 0
    assert "Rerun requested for run #5" in result.stdout
    assert ("POST", "/repos/octo/app/actions/runs/5/rerun", {}) in calls


def test_retry_asks_for_confirmation(use_api) -> None:
    calls = []
    use_api(runs=[run_payload(5)], calls=calls)
    result = CliRunner().invoke(
        cli, ["--log-level", "WARNING", "--repo", "octo/app", "-b", "main", "retry", "5"], obj={}, input="n\n"
    )
    assert result.exit_code == 1
    assert not any(method == "POST" for method, _, _ in calls)


def test_cancel_rejects_completed_run(use_api) -> None:
    use_api(runs=[run_payload(6)])
    result = invoke("--json", "--repo", "octo/app", "--branch", "main", "cancel", "6", "--yes")
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["success"] is False
    assert "already completed" in payload["message"]


def test_dispatch_on_selected_branch(use_api) -> None:
    calls = []
    use_api(calls=calls)
    result = invoke("--repo", "octo/app", "--branch", "release", "dispatch", "ci.yml", "--yes")
    assert result.exit_code == 0
    assert "Dispatched ci.yml on release" in result.stdout
    assert ("POST", "/repos/octo/app/actions/workflows/ci.yml/dispatches", {}) in calls


def test_actions_need_a_single_repository(use_api) -> None:
    use_api()
    result = invoke("--repos", "octo/a,octo/b", "retry", "--yes")
    assert result.exit_code == 2
    assert "exactly one repository" in result.output


def test_resolve_sources_precedence(tmp_path) -> None:
    config = tmp_path / "runscope.yml"
    config.write_text("repositories:\n  - octo/from-file\n", encoding="utf-8")
    settings = build_settings(config_file=str(config))
    client = make_client(api(default_branch="trunk"))

    assert [s.slug for s in resolve_sources(settings, client, repos="a/b,c/d", repo="x/y")] == ["a/b", "c/d"]
    assert resolve_sources(settings, client, repo="x/y", branch="dev")[0].branch == "dev"
    (from_file,) = resolve_sources(settings, client)
    assert (from_file.slug, from_file.branch) == ("octo/from-file", "trunk")

    with pytest.raises(ConfigError):
        resolve_sources(build_settings(config_file=str(tmp_path / "none.yml")), client)


def test_build_settings_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNSCOPE_POLL_INTERVAL", "9")
    settings = build_settings(poll=2.5, notify=True, hook="./hook.sh", log_level="DEBUG")
    assert settings.poll_interval == 2.5
    assert settings.notify
    assert settings.hook == "./hook.sh"
    assert settings.log_level == "DEBUG"
    assert build_settings().poll_interval == 9
