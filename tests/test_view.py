import pytest
from rich.console import Console

from factories import SOURCE, make_job, make_run, sample_logs
from runscope.config import Source
from runscope.diff import compute_diff
from runscope.errors import GitHubAPIError
from runscope.models import Artifact, Branch, SourcedRun
from runscope.tui.state import Screen, SessionState
from runscope.tui.view import highlight_log_line, render, render_footer, render_header, status_badge


def plain(renderable) -> str:
    console = Console(record=True, width=120, color_system=None)
    console.print(renderable)
    return console.export_text()


def dashboard_state(**overrides) -> SessionState:
    state = SessionState(
        screen=Screen.READY,
        sources=[SOURCE],
        source=SOURCE,
        runs=[make_run(2), make_run(1)],
        run=make_run(2),
        jobs=[make_job(10), make_job(11, conclusion="failure")],
    )
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


def test_status_badge_prefers_conclusion_once_completed() -> None:
    assert status_badge("completed", "failure").plain == "✗ failure"
    assert status_badge("in_progress", None).plain == "● in_progress"
    assert status_badge("waiting", None).plain == "? waiting"


def test_highlight_marks_errors_and_search_terms() -> None:
    line = highlight_log_line("error: Boom happened", syntax=True, term="boom")
    styles = {str(span.style) for span in line.spans}
    assert "bold red" in styles
    assert "reverse" in styles
    assert highlight_log_line("error: boom", syntax=False).spans == []


def test_header_shows_source_branch_and_watch() -> None:
    state = dashboard_state(watching=True, status_filter="failure")
    header = render_header(state).plain
    assert "octo/app" in header
    assert "⎇ main" in header
    assert "filter: failure" in header
    assert "[watching]" in header


def test_header_counts_unavailable_sources() -> None:
    state = SessionState(multi_source=True, sources=[Source("a", "b"), Source("c", "d")], failed_sources=["c/d"])
    assert "(1 sources unavailable)" in render_header(state).plain


def test_footer_includes_status_message() -> None:
    assert render_footer(SessionState(status_message="Saved to x.txt")).plain.startswith("Saved to x.txt")


def test_dashboard_lists_jobs() -> None:
    text = plain(render(dashboard_state()))
    assert "CI #2" in text
    assert "Run 1/2" in text
    assert "job-10" in text
    assert "✗ failure" in text
    assert "1m30s" in text


def test_dashboard_without_run() -> None:
    assert "No workflow runs found." in plain(render(SessionState(screen=Screen.READY)))


def test_multi_source_dashboard() -> None:
    other = Source("octo", "web")
    state = SessionState(
        screen=Screen.WATCHING,
        multi_source=True,
        sources=[SOURCE, other],
        sourced_runs=[SourcedRun(other, make_run(5)), SourcedRun(SOURCE, make_run(4))],
    )
    text = plain(render(state))
    assert "octo/web" in text
    assert "CI #5" in text


def test_error_screen() -> None:
    state = SessionState(screen=Screen.ERROR, error=GitHubAPIError("404 Not Found"), error_hint="Check the repo")
    text = plain(render(state))
    assert "404 Not Found" in text
    assert "Check the repo" in text


def test_log_viewer_window_and_search_prompt() -> None:
    state = dashboard_state(
        screen=Screen.LOG_VIEWER,
        log_job_id=10,
        log_content=sample_logs().combined,
        log_streaming=True,
        search_term="boom",
        search_matches=[4],
    )
    text = plain(render(state))
    assert "job-10" in text
    assert "● live" in text
    assert "error: boom" in text
    assert "'boom' 1/1 (n/N)" in text


def test_log_viewer_split_columns() -> None:
    state = dashboard_state(
        screen=Screen.LOG_VIEWER,
        multi_job_mode=True,
        multi_job_split=True,
        multi_job_ids=[10, 11],
        multi_job_contents={10: "alpha", 11: "beta"},
        log_content="x",
    )
    text = plain(render(state))
    assert "alpha" in text and "beta" in text
    assert "2 jobs" in text


def test_compare_view_shows_stats() -> None:
    state = SessionState(
        screen=Screen.COMPARE_VIEW,
        compare_diff=compute_diff("a\nb", "a\nc"),
        compare_labels=("Run #2", "Run #1"),
    )
    text = plain(render(state))
    assert "Run #2 → Run #1" in text
    assert "+1 -1" in text
    assert "- b" in text
    assert "+ c" in text


@pytest.mark.parametrize(
    "screen,overrides,expected",
    [
        (Screen.LOADING, {"loading_message": "Loading branches..."}, "Loading branches..."),
        (Screen.HELP, {}, "press any key to close"),
        (Screen.STATUS_FILTER, {"filter_cursor": 1}, "› success"),
        (Screen.BRANCH_SELECTION, {"branches": [Branch(name="main", protected=True)]}, "main  protected"),
        (Screen.ARTIFACT_SELECTION, {"artifacts": [Artifact(id=1, name="dist", expired=True)]}, "expired"),
        (Screen.WORKFLOW_VIEWER, {"workflow_path": "ci.yml", "workflow_content": "name: CI"}, "name: CI"),
        (Screen.LOG_FILTER, {"parsed_logs": sample_logs(), "log_filter_steps": [2]}, "[x] 2. Run tests"),
        (Screen.MULTI_JOB_SELECT, {"multi_job_ids": [10]}, "Select jobs (1 selected)"),
        (Screen.COMPARE_SELECT, {"compare_first": 0, "compare_step": 1}, "pick the second run"),
        (Screen.JOB_DETAILS, {"selected_job": make_job(10)}, "Run tests"),
    ],
)
def test_every_screen_renders(screen, overrides, expected) -> None:
    state = dashboard_state(screen=screen, **overrides)
    assert expected in plain(render(state))
