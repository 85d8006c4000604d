"""
Rendering of the session state into rich renderables.

Everything here is a pure function of ``SessionState``; the Textual app
just pushes the result into its body widget.
"""

from typing import Callable, Dict, List, Optional

from rich.columns import Columns
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from runscope.diff import DiffKind, diff_stats
from runscope.models import Job, Run, format_duration
from runscope.tui.state import MAX_MULTI_JOBS, STATUS_FILTER_OPTIONS, Screen, SessionState

_STATUS_STYLE = {
    "success": ("✓", "green"),
    "failure": ("✗", "red"),
    "cancelled": ("⊘", "yellow"),
    "timed_out": ("⏱", "red"),
    "skipped": ("↷", "dim"),
    "neutral": ("○", "dim"),
    "action_required": ("!", "yellow"),
    "in_progress": ("●", "cyan"),
    "queued": ("◌", "dim"),
}

_DIFF_STYLE = {
    DiffKind.CONTEXT: "",
    DiffKind.REMOVED: "red",
    DiffKind.ADDED: "green",
}

HELP_ROWS = [
    ("Dashboard", "↑/↓ j/k select • enter details • l logs • ←/→ previous/next run"),
    ("", "b branches • f status filter • m multi-job logs • c compare runs"),
    ("", "y workflow file • a artifacts • R rerun • X cancel • D dispatch"),
    ("Log viewer", "/ search • n/N next/previous match • g/G top/bottom • pgup/pgdn"),
    ("", "F filter steps • H highlighting • s save to file • v split (multi-job)"),
    ("Anywhere", "r refresh • w watch • o open in browser • ? help • q quit"),
]


def status_badge(status: str, conclusion: Optional[str]) -> Text:
    key = conclusion if status == "completed" and conclusion else status
    icon, style = _STATUS_STYLE.get(key, ("?", ""))
    return Text(f"{icon} {key}", style=style)


def highlight_log_line(line: str, syntax: bool, term: str = "") -> Text:
    text = Text(line)
    if syntax:
        lower = line.lower()
        if "##[error]" in lower or "error:" in lower or " failed" in lower:
            text.stylize("bold red")
        elif "##[warning]" in lower or "warning:" in lower:
            text.stylize("yellow")
        elif line.startswith("=== ") or "##[group]" in lower:
            text.stylize("bold cyan")
        elif "##[endgroup]" in lower:
            text.stylize("dim")
    if term:
        text.highlight_words([term], style="reverse", case_sensitive=False)
    return text


def render_header(state: SessionState) -> Text:
    header = Text("runscope", style="bold")
    if state.multi_source:
        header.append(f"  {len(state.sources)} repositories", style="cyan")
        if state.failed_sources:
            header.append(f"  ({len(state.failed_sources)} sources unavailable)", style="yellow")
    elif state.source is not None:
        header.append(f"  {state.source.slug}", style="cyan")
        if state.branch_name:
            header.append(f"  ⎇ {state.branch_name}", style="magenta")
    if state.status_filter:
        header.append(f"  filter: {state.status_filter}", style="yellow")
    if state.watching:
        header.append("  [watching]", style="bold green")
    return header


def render_footer(state: SessionState) -> Text:
    footer = Text(state.status_message or "", style="dim")
    if footer.plain:
        footer.append("  ")
    footer.append("? help • q quit", style="dim")
    return footer


def _run_summary(run: Run) -> Text:
    text = Text(f"{run.name} #{run.run_number}  ", style="bold")
    text.append_text(status_badge(run.status, run.conclusion))
    details = [run.head_branch, run.event, run.actor_login, run.head_sha[:7]]
    text.append("  " + " • ".join(part for part in details if part), style="dim")
    return text


def _jobs_table(jobs: List[Job], cursor: int) -> Table:
    table = Table(expand=True, box=None, show_edge=False, pad_edge=False)
    table.add_column("")
    table.add_column("Job")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for index, job in enumerate(jobs):
        marker = "›" if index == cursor else " "
        style = "reverse" if index == cursor else ""
        table.add_row(marker, job.name, status_badge(job.status, job.conclusion), format_duration(job.duration()), style=style)
    return table


def render_loading(state: SessionState) -> RenderableType:
    return Text(f"⟳ {state.loading_message}", style="cyan")


def render_dashboard(state: SessionState) -> RenderableType:
    parts: List[RenderableType] = []
    if state.multi_source:
        table = Table(expand=True, box=None, show_edge=False, pad_edge=False)
        table.add_column("")
        table.add_column("Repository")
        table.add_column("Workflow")
        table.add_column("Branch")
        table.add_column("Status")
        for index, sourced in enumerate(state.sourced_runs):
            selected = index == state.sourced_index
            run = sourced.run
            table.add_row(
                "›" if selected else " ",
                sourced.source.slug,
                f"{run.name} #{run.run_number}",
                run.head_branch,
                status_badge(run.status, run.conclusion),
                style="reverse" if selected else "",
            )
        parts.append(table)
        if state.run is not None:
            parts.append(Text(""))
    if state.run is None:
        parts.append(Text("No workflow runs found.", style="yellow"))
        return Group(*parts)
    if not state.multi_source and len(state.runs) > 1:
        parts.append(Text(f"Run {state.run_index + 1}/{len(state.runs)} (←/→ to switch)", style="dim"))
    parts.append(_run_summary(state.run))
    parts.append(_jobs_table(state.jobs, state.job_cursor if not state.multi_source else -1))
    return Group(*parts)


def render_error(state: SessionState) -> RenderableType:
    body = Text(str(state.error) if state.error is not None else "Unknown error", style="red")
    body.append("\n\n")
    body.append(state.error_hint, style="yellow")
    return Panel(body, title="Error", border_style="red")


def render_job_details(state: SessionState) -> RenderableType:
    job = state.selected_job
    if job is None:
        return Text("No job selected.")
    title = Text(f"{job.name}  ", style="bold")
    title.append_text(status_badge(job.status, job.conclusion))
    if job.runner_name:
        title.append(f"  runner: {job.runner_name}", style="dim")
    table = Table(expand=True, box=None, show_edge=False, pad_edge=False)
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    for index, step in enumerate(job.steps):
        table.add_row(
            str(step.number),
            step.name,
            status_badge(step.status, step.conclusion),
            style="reverse" if index == state.step_cursor else "",
        )
    hint = Text("l logs • y workflow • a artifacts • esc back", style="dim")
    return Group(title, Text(""), table, Text(""), hint)


def _log_window(state: SessionState, lines: List[str]) -> Text:
    window = Text()
    visible = lines[state.log_scroll : state.log_scroll + state.log_viewport]
    for offset, line in enumerate(visible):
        if offset:
            window.append("\n")
        window.append_text(highlight_log_line(line, state.syntax_enabled, state.search_term))
    return window


def _multi_job_columns(state: SessionState) -> RenderableType:
    names = {job.id: job.name for job in state.jobs}
    panels = []
    for job_id in state.multi_job_ids[:MAX_MULTI_JOBS]:
        content = state.multi_job_contents.get(job_id, "")
        lines = content.split("\n")[state.log_scroll : state.log_scroll + state.log_viewport]
        body = Text("\n").join(highlight_log_line(line, state.syntax_enabled, state.search_term) for line in lines)
        panels.append(Panel(body, title=names.get(job_id) or f"Job {job_id}"))
    return Columns(panels, expand=True, equal=True)


def render_log_viewer(state: SessionState) -> RenderableType:
    if state.log_loading:
        return Text("⟳ Loading logs...", style="cyan")
    lines = state.log_lines()
    title = Text("Logs", style="bold")
    job = state.job_by_id(state.log_job_id)
    if state.multi_job_mode:
        title.append(f"  {len(state.multi_job_ids)} jobs", style="cyan")
    elif job is not None:
        title.append(f"  {job.name}", style="cyan")
    if state.log_streaming:
        title.append("  ● live", style="bold green")
    if state.log_filter_steps:
        title.append(f"  steps: {', '.join(str(n) for n in sorted(state.log_filter_steps))}", style="yellow")
    title.append(f"  {min(state.log_scroll + 1, len(lines))}-{min(state.log_scroll + state.log_viewport, len(lines))}/{len(lines)}", style="dim")

    if state.multi_job_mode and state.multi_job_split:
        body: RenderableType = _multi_job_columns(state)
    elif not lines:
        body = Text("No log output.", style="dim")
    else:
        body = _log_window(state, lines)

    if state.search_input_mode:
        prompt = Text(f"/{state.search_buffer}█", style="bold")
    elif state.search_term:
        if state.search_matches:
            prompt = Text(f"'{state.search_term}' {state.search_index + 1}/{len(state.search_matches)} (n/N)", style="dim")
        else:
            prompt = Text(f"'{state.search_term}' not found", style="yellow")
    else:
        prompt = Text("/ search • F steps • s save • H highlight • esc back", style="dim")
    return Group(title, body, prompt)


def _select_list(title: str, rows: List[Text], cursor: int, hint: str) -> RenderableType:
    body = Text()
    for index, row in enumerate(rows):
        if index:
            body.append("\n")
        line = Text("› " if index == cursor else "  ")
        line.append_text(row)
        if index == cursor:
            line.stylize("reverse")
        body.append_text(line)
    if not rows:
        body = Text("Nothing to show.", style="dim")
    return Group(Text(title, style="bold"), Text(""), body, Text(""), Text(hint, style="dim"))


def render_branch_selection(state: SessionState) -> RenderableType:
    rows = []
    for branch in state.branches:
        row = Text(branch.name)
        if branch.protected:
            row.append("  protected", style="yellow")
        rows.append(row)
    return _select_list("Select branch", rows, state.branch_cursor, "enter select • esc back")


def render_status_filter(state: SessionState) -> RenderableType:
    rows = [Text(option or "all") for option in STATUS_FILTER_OPTIONS]
    return _select_list("Filter runs by status", rows, state.filter_cursor, "enter apply • esc back")


def render_help(state: SessionState) -> RenderableType:
    table = Table(box=None, show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for section, keys in HELP_ROWS:
        table.add_row(section, keys)
    return Panel(table, title="Keys", subtitle="press any key to close")


def render_workflow(state: SessionState) -> RenderableType:
    lines = state.workflow_content.split("\n")
    start = state.workflow_scroll
    end = start + state.log_viewport
    code = Syntax(
        "\n".join(lines[start:end]),
        "yaml",
        line_numbers=True,
        start_line=start + 1,
        theme="ansi_dark",
        word_wrap=False,
    )
    return Group(Text(state.workflow_path, style="bold"), code, Text("esc back", style="dim"))


def render_artifacts(state: SessionState) -> RenderableType:
    rows = []
    for artifact in state.artifacts:
        row = Text(f"{artifact.name}  ")
        row.append(f"{artifact.size_in_bytes / 1024:.1f} KiB", style="dim")
        if artifact.expired:
            row.append("  expired", style="red")
        rows.append(row)
    return _select_list("Artifacts", rows, state.artifact_cursor, "enter download • esc back")


def render_log_filter(state: SessionState) -> RenderableType:
    steps = state.parsed_logs.steps if state.parsed_logs is not None else []
    rows = []
    for step in steps:
        mark = "[x]" if step.number in state.log_filter_steps else "[ ]"
        rows.append(Text(f"{mark} {step.number}. {step.name}"))
    return _select_list("Filter log steps", rows, state.log_filter_cursor, "space toggle • enter apply • esc back")


def render_multi_job_select(state: SessionState) -> RenderableType:
    rows = []
    for job in state.jobs:
        mark = "[x]" if job.id in state.multi_job_ids else "[ ]"
        row = Text(f"{mark} {job.name}  ")
        row.append_text(status_badge(job.status, job.conclusion))
        rows.append(row)
    hint = f"space toggle (max {MAX_MULTI_JOBS}) • enter view • esc back"
    return _select_list(f"Select jobs ({len(state.multi_job_ids)} selected)", rows, state.multi_job_cursor, hint)


def render_compare_select(state: SessionState) -> RenderableType:
    rows = []
    for index, run in enumerate(state.runs):
        mark = "1" if index == state.compare_first else " "
        row = Text(f"[{mark}] #{run.run_number} {run.name}  ")
        row.append_text(status_badge(run.status, run.conclusion))
        rows.append(row)
    title = "Compare runs: pick the first run" if state.compare_step == 0 else "Compare runs: pick the second run"
    return _select_list(title, rows, state.compare_cursor, "enter pick • esc back")


def render_compare_view(state: SessionState) -> RenderableType:
    stats = diff_stats(state.compare_diff)
    left, right = state.compare_labels
    title = Text(f"{left} → {right}  ", style="bold")
    title.append(f"+{stats['added']}", style="green")
    title.append(" ")
    title.append(f"-{stats['removed']}", style="red")
    body = Text()
    visible = state.compare_diff[state.compare_scroll : state.compare_scroll + state.diff_viewport]
    for offset, line in enumerate(visible):
        if offset:
            body.append("\n")
        body.append(line.render(), style=_DIFF_STYLE[line.kind])
    return Group(title, body, Text("↑/↓ scroll • esc back", style="dim"))


_RENDERERS: Dict[Screen, Callable[[SessionState], RenderableType]] = {
    Screen.LOADING: render_loading,
    Screen.READY: render_dashboard,
    Screen.WATCHING: render_dashboard,
    Screen.ERROR: render_error,
    Screen.JOB_DETAILS: render_job_details,
    Screen.LOG_VIEWER: render_log_viewer,
    Screen.BRANCH_SELECTION: render_branch_selection,
    Screen.STATUS_FILTER: render_status_filter,
    Screen.HELP: render_help,
    Screen.WORKFLOW_VIEWER: render_workflow,
    Screen.ARTIFACT_SELECTION: render_artifacts,
    Screen.LOG_FILTER: render_log_filter,
    Screen.MULTI_JOB_SELECT: render_multi_job_select,
    Screen.COMPARE_SELECT: render_compare_select,
    Screen.COMPARE_VIEW: render_compare_view,
}


def render(state: SessionState) -> RenderableType:
    return _RENDERERS[state.screen](state)
