"""
Session controller.

``Controller.update`` is the only writer of ``SessionState``: it takes one
message (a key press, a resize, a command completion or a timer tick),
mutates state, and returns the commands to run next. It never performs I/O.
Completion handlers tolerate stale results, since background commands finish
in any order.
"""

from typing import Callable, Dict, List, Sequence

from runscope.client import GitHubClient
from runscope.config import Settings, Source
from runscope.diff import compute_diff
from runscope.errors import error_hint
from runscope.logging import EXIT_NO_RUN, get_logger, log_extra
from runscope.models import exit_code_for
from runscope.notify import HookData
from runscope.tui import commands as cmds
from runscope.tui.commands import Command
from runscope.tui.messages import (
    ActionCompleted,
    ArtifactDownloaded,
    ArtifactsLoaded,
    BranchesLoaded,
    CompareLogsLoaded,
    ErrorOccurred,
    JobDetailLoaded,
    JobsLoaded,
    KeyPressed,
    LogsExported,
    LogsLoaded,
    LogsUpdated,
    LogTick,
    Message,
    MultiJobLogsLoaded,
    ParsedLogsLoaded,
    PollTick,
    Resized,
    RunsLoaded,
    SourcedRunsLoaded,
    WorkflowLoaded,
)
from runscope.tui.state import (
    DASHBOARD_SCREENS,
    MAX_MULTI_JOBS,
    STATUS_FILTER_OPTIONS,
    Screen,
    SessionState,
    clamp_index,
)

log = get_logger(__name__)

Commands = List[Command]
KeyHandler = Callable[[], Commands]

QUIT_KEYS = ("q", "ctrl+c")
MULTI_JOB_BANNER = "═" * 78


def build_multi_job_content(job_ids: Sequence[int], contents: Dict[int, str], names: Dict[int, str]) -> str:
    parts: List[str] = []
    for job_id in job_ids:
        if job_id not in contents:
            continue
        name = names.get(job_id) or f"Job {job_id}"
        parts.append(f"\n{MULTI_JOB_BANNER}\n  JOB: {name}\n{MULTI_JOB_BANNER}\n\n{contents[job_id]}\n")
    return "".join(parts)


def find_matches(lines: Sequence[str], term: str) -> List[int]:
    """Indices of lines containing ``term`` (case-insensitive)."""
    if not term:
        return []
    needle = term.lower()
    return [index for index, line in enumerate(lines) if needle in line.lower()]


class Controller:
    def __init__(
        self,
        client: GitHubClient,
        settings: Settings,
        sources: Sequence[Source],
        watch: bool = False,
    ) -> None:
        if not sources:
            raise ValueError("at least one source is required")
        self.client = client
        self.settings = settings
        self.state = SessionState(
            sources=list(sources),
            source=sources[0],
            multi_source=len(sources) > 1,
            watching=watch,
        )
        self._message_handlers: Dict[type, Callable[..., Commands]] = {
            KeyPressed: self._on_key,
            Resized: self._on_resized,
            RunsLoaded: self._on_runs_loaded,
            SourcedRunsLoaded: self._on_sourced_runs_loaded,
            JobsLoaded: self._on_jobs_loaded,
            JobDetailLoaded: self._on_job_detail_loaded,
            LogsLoaded: self._on_logs_loaded,
            LogsUpdated: self._on_logs_updated,
            ParsedLogsLoaded: self._on_parsed_logs_loaded,
            MultiJobLogsLoaded: self._on_multi_job_logs_loaded,
            CompareLogsLoaded: self._on_compare_logs_loaded,
            BranchesLoaded: self._on_branches_loaded,
            WorkflowLoaded: self._on_workflow_loaded,
            ArtifactsLoaded: self._on_artifacts_loaded,
            ArtifactDownloaded: self._on_artifact_downloaded,
            LogsExported: self._on_logs_exported,
            ActionCompleted: self._on_action_completed,
            ErrorOccurred: self._on_error,
            PollTick: self._on_poll_tick,
            LogTick: self._on_log_tick,
        }
        dashboard = {
            "up": self._cursor_up,
            "k": self._cursor_up,
            "down": self._cursor_down,
            "j": self._cursor_down,
            "enter": self._dashboard_enter,
            "l": self._open_logs,
            "right": self._next_run,
            "left": self._prev_run,
            "h": self._prev_run,
            "b": self._open_branches,
            "f": self._open_status_filter,
            "m": self._open_multi_job_select,
            "c": self._open_compare_select,
            "y": self._open_workflow,
            "a": self._open_artifacts,
            "R": self._rerun,
            "X": self._cancel,
            "D": self._dispatch,
        }
        self._screen_keys: Dict[Screen, Dict[str, KeyHandler]] = {
            Screen.READY: dashboard,
            Screen.WATCHING: dashboard,
            Screen.JOB_DETAILS: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "enter": self._close_job_details,
                "escape": self._close_job_details,
                "l": self._open_logs,
                "y": self._open_workflow,
                "a": self._open_artifacts,
            },
            Screen.LOG_VIEWER: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "pageup": self._page_up,
                "pagedown": self._page_down,
                "g": self._scroll_top,
                "G": self._scroll_bottom,
                "l": self._close_logs,
                "escape": self._close_logs,
                "/": self._start_search,
                "n": self._next_match,
                "N": self._prev_match,
                "H": self._toggle_syntax,
                "s": self._export_logs,
                "F": self._open_log_filter,
                "m": self._open_multi_job_select,
                "v": self._toggle_split,
            },
            Screen.BRANCH_SELECTION: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "enter": self._commit_branch,
                "escape": self._back_to_dashboard,
                "b": self._back_to_dashboard,
            },
            Screen.STATUS_FILTER: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "enter": self._commit_status_filter,
                "f": self._commit_status_filter,
                "escape": self._back_to_dashboard,
            },
            Screen.WORKFLOW_VIEWER: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "escape": self._back_to_dashboard,
                "y": self._back_to_dashboard,
            },
            Screen.ARTIFACT_SELECTION: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "enter": self._download_artifact,
                "escape": self._back_to_dashboard,
                "a": self._back_to_dashboard,
            },
            Screen.LOG_FILTER: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "space": self._toggle_step,
                "enter": self._apply_log_filter,
                "F": self._apply_log_filter,
                "escape": self._cancel_log_filter,
            },
            Screen.MULTI_JOB_SELECT: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "space": self._toggle_job,
                "enter": self._apply_multi_job,
                "m": self._apply_multi_job,
                "escape": self._back_to_dashboard,
            },
            Screen.COMPARE_SELECT: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "enter": self._pick_compare_run,
                "c": self._pick_compare_run,
                "escape": self._back_to_dashboard,
            },
            Screen.COMPARE_VIEW: {
                "up": self._cursor_up,
                "k": self._cursor_up,
                "down": self._cursor_down,
                "j": self._cursor_down,
                "pageup": self._page_up,
                "pagedown": self._page_down,
                "escape": self._back_to_dashboard,
                "c": self._back_to_dashboard,
            },
        }
        self._global_keys: Dict[str, KeyHandler] = {
            "r": self._refresh,
            "w": self._toggle_watch,
            "o": self._open_in_browser,
            "?": self._open_help,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def init(self) -> Commands:
        """Commands to issue at startup."""
        self._set_loading("Loading workflow runs...", "runs")
        return [self._fetch_runs_command()]

    def update(self, msg: Message) -> Commands:
        handler = self._message_handlers.get(type(msg))
        if handler is None:
            log.debug("message_ignored", extra={"message_type": type(msg).__name__})
            return []
        return handler(msg)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_loading(self, message: str, loading_for: str) -> None:
        self.state.screen = Screen.LOADING
        self.state.loading_message = message
        self.state.loading_for = loading_for

    def _settle(self, screen: Screen) -> None:
        self.state.screen = screen
        self.state.loading_for = None

    def _dashboard_screen(self) -> Screen:
        return Screen.WATCHING if self.state.watching else Screen.READY

    def _on_dashboard(self) -> bool:
        st = self.state
        return st.screen in DASHBOARD_SCREENS or (st.screen == Screen.LOADING and st.loading_for in ("runs", "jobs"))

    def _fetch_runs_command(self) -> Command:
        st = self.state
        if st.multi_source:
            return cmds.fetch_all_sources(self.client, st.sources, st.status_filter, self.settings.runs_per_source)
        assert st.source is not None
        return cmds.fetch_runs(self.client, st.source, st.status_filter, self.settings.runs_page_size)

    def _fetch_jobs_command(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None:
            return []
        return [cmds.fetch_jobs(self.client, st.source, st.run.id)]

    def _schedule_poll(self) -> Commands:
        st = self.state
        if not st.watching:
            return []
        st.poll_generation += 1
        return [cmds.poll_tick(st.poll_generation, self.settings.poll_interval)]

    def _schedule_log_tick(self) -> Commands:
        st = self.state
        if not st.log_streaming or st.log_job_id is None:
            return []
        return [cmds.log_tick(st.log_job_id, st.log_generation, self.settings.log_refresh_interval)]

    def _update_exit_code(self) -> None:
        self.state.exit_code = exit_code_for(self.state.run)

    def _recompute_search(self) -> None:
        st = self.state
        st.search_matches = find_matches(st.log_lines(), st.search_term)
        st.search_index = 0

    def _scroll_to_line(self, line: int) -> None:
        st = self.state
        if line < st.log_scroll:
            st.log_scroll = line
        elif line >= st.log_scroll + st.log_viewport:
            st.log_scroll = line - st.log_viewport + 1

    def _max_log_scroll(self) -> int:
        return max(0, len(self.state.log_lines()) - self.state.log_viewport)

    def _reset_log_view(self) -> None:
        st = self.state
        st.log_content = ""
        st.log_scroll = 0
        st.log_streaming = False
        st.log_generation += 1
        st.search_input_mode = False
        st.search_buffer = ""
        st.search_term = ""
        st.search_matches = []
        st.search_index = 0
        st.parsed_logs = None
        st.log_filter_steps = []
        st.log_filter_cursor = -1
        st.multi_job_mode = False

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _on_resized(self, msg: Resized) -> Commands:
        self.state.width = msg.width
        self.state.height = msg.height
        self.state.log_scroll = min(self.state.log_scroll, self._max_log_scroll())
        return []

    def _on_key(self, msg: KeyPressed) -> Commands:
        st = self.state
        key = msg.key
        if key == "ctrl+c":
            return self._quit()
        if st.search_input_mode:
            return self._on_search_input(key)
        if key in QUIT_KEYS:
            return self._quit()
        if st.screen == Screen.HELP:
            self._settle(self._dashboard_screen())
            return []
        handler = self._screen_keys.get(st.screen, {}).get(key) or self._global_keys.get(key)
        if handler is None:
            return []
        return handler()

    def _on_search_input(self, key: str) -> Commands:
        st = self.state
        if key == "enter":
            st.search_term = st.search_buffer
            st.search_input_mode = False
            self._recompute_search()
            if st.search_matches:
                self._scroll_to_line(st.search_matches[0])
        elif key == "escape":
            st.search_input_mode = False
            st.search_buffer = ""
        elif key == "backspace":
            st.search_buffer = st.search_buffer[:-1]
        elif key == "space":
            st.search_buffer += " "
        elif len(key) == 1:
            st.search_buffer += key
        return []

    def _quit(self) -> Commands:
        self.state.quit_requested = True
        return []

    # Global keys

    def _refresh(self) -> Commands:
        st = self.state
        st.error = None
        st.error_hint = ""
        self._set_loading("Refreshing...", "runs")
        return [self._fetch_runs_command()]

    def _toggle_watch(self) -> Commands:
        st = self.state
        st.watching = not st.watching
        if st.watching:
            st.notification_sent = False
            st.status_message = "Watching for updates"
            if st.screen == Screen.READY:
                st.screen = Screen.WATCHING
            return self._schedule_poll()
        # Invalidate the pending poll tick.
        st.poll_generation += 1
        st.status_message = "Watch stopped"
        if st.screen == Screen.WATCHING:
            st.screen = Screen.READY
        return []

    def _open_in_browser(self) -> Commands:
        st = self.state
        url = ""
        if st.screen == Screen.JOB_DETAILS and st.selected_job is not None:
            url = st.selected_job.html_url
        elif st.run is not None:
            url = st.run.html_url
        if not url:
            return []
        return [cmds.open_url(url)]

    def _open_help(self) -> Commands:
        self._settle(Screen.HELP)
        return []

    # Cursor movement, routed by screen

    def _cursor_up(self) -> Commands:
        return self._move_cursor(-1)

    def _cursor_down(self) -> Commands:
        return self._move_cursor(1)

    def _move_cursor(self, delta: int) -> Commands:
        st = self.state
        screen = st.screen
        if screen in DASHBOARD_SCREENS:
            if st.multi_source:
                st.sourced_index = clamp_index(st.sourced_index + delta, len(st.sourced_runs))
            else:
                st.job_cursor = clamp_index(st.job_cursor + delta, len(st.jobs))
        elif screen == Screen.JOB_DETAILS:
            steps = st.selected_job.steps if st.selected_job is not None else []
            st.step_cursor = clamp_index(st.step_cursor + delta, len(steps))
        elif screen == Screen.LOG_VIEWER:
            st.log_scroll = max(0, min(st.log_scroll + delta, self._max_log_scroll()))
        elif screen == Screen.BRANCH_SELECTION:
            st.branch_cursor = clamp_index(st.branch_cursor + delta, len(st.branches))
        elif screen == Screen.STATUS_FILTER:
            st.filter_cursor = clamp_index(st.filter_cursor + delta, len(STATUS_FILTER_OPTIONS))
        elif screen == Screen.WORKFLOW_VIEWER:
            lines = st.workflow_content.split("\n")
            st.workflow_scroll = max(0, min(st.workflow_scroll + delta, len(lines) - st.log_viewport))
        elif screen == Screen.ARTIFACT_SELECTION:
            st.artifact_cursor = clamp_index(st.artifact_cursor + delta, len(st.artifacts))
        elif screen == Screen.LOG_FILTER:
            steps = st.parsed_logs.steps if st.parsed_logs is not None else []
            st.log_filter_cursor = clamp_index(st.log_filter_cursor + delta, len(steps))
        elif screen == Screen.MULTI_JOB_SELECT:
            st.multi_job_cursor = clamp_index(st.multi_job_cursor + delta, len(st.jobs))
        elif screen == Screen.COMPARE_SELECT:
            st.compare_cursor = clamp_index(st.compare_cursor + delta, len(st.runs))
        elif screen == Screen.COMPARE_VIEW:
            max_scroll = max(0, len(st.compare_diff) - st.diff_viewport)
            st.compare_scroll = max(0, min(st.compare_scroll + delta, max_scroll))
        return []

    def _page_up(self) -> Commands:
        viewport = self.state.log_viewport if self.state.screen == Screen.LOG_VIEWER else self.state.diff_viewport
        return self._move_cursor(-viewport)

    def _page_down(self) -> Commands:
        viewport = self.state.log_viewport if self.state.screen == Screen.LOG_VIEWER else self.state.diff_viewport
        return self._move_cursor(viewport)

    def _scroll_top(self) -> Commands:
        self.state.log_scroll = 0
        return []

    def _scroll_bottom(self) -> Commands:
        self.state.log_scroll = self._max_log_scroll()
        return []

    def _back_to_dashboard(self) -> Commands:
        self._settle(self._dashboard_screen())
        return []

    # Dashboard

    def _dashboard_enter(self) -> Commands:
        st = self.state
        if st.multi_source:
            index = clamp_index(st.sourced_index, len(st.sourced_runs))
            if index < 0:
                return []
            chosen = st.sourced_runs[index]
            st.run = chosen.run
            st.source = chosen.source
            st.jobs = []
            st.job_cursor = -1
            self._set_loading(f"Loading jobs for {chosen.source.slug}...", "jobs")
            return [cmds.fetch_jobs(self.client, chosen.source, chosen.run.id)]
        job = st.current_job
        if job is None or st.source is None:
            return []
        st.pending_job_id = job.id
        st.step_cursor = -1
        return [cmds.fetch_job_detail(self.client, st.source, job.id)]

    def _step_run(self, delta: int) -> Commands:
        st = self.state
        if st.multi_source or len(st.runs) < 2:
            return []
        index = st.run_index + delta
        if index < 0 or index >= len(st.runs):
            return []
        st.run_index = index
        st.run = st.runs[index]
        st.jobs = []
        st.job_cursor = -1
        return self._fetch_jobs_command()

    def _next_run(self) -> Commands:
        return self._step_run(1)

    def _prev_run(self) -> Commands:
        return self._step_run(-1)

    def _open_branches(self) -> Commands:
        st = self.state
        if st.multi_source:
            st.status_message = "Branch selection is not available with several repositories"
            return []
        assert st.source is not None
        self._set_loading("Loading branches...", "branches")
        return [cmds.fetch_branches(self.client, st.source)]

    def _open_status_filter(self) -> Commands:
        st = self.state
        st.filter_cursor = STATUS_FILTER_OPTIONS.index(st.status_filter) if st.status_filter in STATUS_FILTER_OPTIONS else 0
        self._settle(Screen.STATUS_FILTER)
        return []

    def _open_multi_job_select(self) -> Commands:
        st = self.state
        if len(st.jobs) < 2:
            st.status_message = "Multi-job view needs at least two jobs"
            return []
        known = {job.id for job in st.jobs}
        st.multi_job_ids = [job_id for job_id in st.multi_job_ids if job_id in known]
        st.multi_job_cursor = 0
        self._settle(Screen.MULTI_JOB_SELECT)
        return []

    def _open_compare_select(self) -> Commands:
        st = self.state
        if st.multi_source or len(st.runs) < 2:
            st.status_message = "Comparison needs at least two runs"
            return []
        st.compare_cursor = 0
        st.compare_step = 0
        st.compare_first = -1
        st.compare_second = -1
        self._settle(Screen.COMPARE_SELECT)
        return []

    def _open_workflow(self) -> Commands:
        st = self.state
        if st.run is None or not st.run.path or st.source is None:
            return []
        st.workflow_path = st.run.path
        st.workflow_scroll = 0
        self._set_loading(f"Loading workflow file {st.run.path}...", "workflow")
        return [cmds.fetch_workflow(self.client, st.source, st.run.path, st.run.head_sha or None)]

    def _open_artifacts(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None:
            return []
        self._set_loading("Loading artifacts...", "artifacts")
        return [cmds.fetch_artifacts(self.client, st.source, st.run.id)]

    def _rerun(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None:
            return []
        if not st.run.is_completed():
            st.status_message = "Only completed runs can be re-run"
            return []
        st.status_message = f"Requesting rerun of run #{st.run.run_number}..."
        return [cmds.rerun_run(self.client, st.source, st.run)]

    def _cancel(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None:
            return []
        if st.run.is_completed():
            st.status_message = "Run already completed"
            return []
        st.status_message = f"Requesting cancel of run #{st.run.run_number}..."
        return [cmds.cancel_run(self.client, st.source, st.run)]

    def _dispatch(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None or not st.run.workflow_file:
            return []
        ref = st.branch_name
        st.status_message = f"Dispatching {st.run.workflow_file} on {ref}..."
        return [cmds.dispatch_workflow(self.client, st.source, st.run.workflow_file, ref)]

    # Job details

    def _close_job_details(self) -> Commands:
        st = self.state
        st.selected_job = None
        st.step_cursor = -1
        self._settle(self._dashboard_screen())
        return []

    # Log viewer

    def _open_logs(self) -> Commands:
        st = self.state
        if st.screen == Screen.JOB_DETAILS:
            job = st.selected_job
            return_screen = Screen.JOB_DETAILS
        else:
            job = st.current_job
            return_screen = self._dashboard_screen()
        if job is None or st.source is None:
            return []
        self._reset_log_view()
        st.log_job_id = job.id
        st.log_loading = True
        st.log_return_screen = return_screen
        self._settle(Screen.LOG_VIEWER)
        return [cmds.fetch_logs(self.client, st.source, job.id, st.log_generation)]

    def _close_logs(self) -> Commands:
        st = self.state
        self._reset_log_view()
        st.log_job_id = None
        st.log_loading = False
        if st.selected_job is not None:
            self._settle(Screen.JOB_DETAILS)
        else:
            self._settle(self._dashboard_screen())
        return []

    def _start_search(self) -> Commands:
        self.state.search_input_mode = True
        self.state.search_buffer = ""
        return []

    def _next_match(self) -> Commands:
        st = self.state
        if not st.search_matches:
            return []
        st.search_index = (st.search_index + 1) % len(st.search_matches)
        self._scroll_to_line(st.search_matches[st.search_index])
        return []

    def _prev_match(self) -> Commands:
        st = self.state
        if not st.search_matches:
            return []
        st.search_index = (st.search_index - 1) % len(st.search_matches)
        self._scroll_to_line(st.search_matches[st.search_index])
        return []

    def _toggle_syntax(self) -> Commands:
        self.state.syntax_enabled = not self.state.syntax_enabled
        return []

    def _export_logs(self) -> Commands:
        st = self.state
        if not st.log_content or st.source is None:
            return []
        return [
            cmds.export_current_logs(
                self.settings.export_dir, st.source, st.branch_name, st.run, st.log_job_id, st.log_content
            )
        ]

    def _open_log_filter(self) -> Commands:
        st = self.state
        if st.log_job_id is None or st.multi_job_mode or st.source is None:
            return []
        st.log_filter_cursor = -1
        self._set_loading("Loading step structure...", "parsed_logs")
        return [cmds.fetch_parsed_logs(self.client, st.source, st.log_job_id)]

    def _toggle_split(self) -> Commands:
        st = self.state
        if not st.multi_job_mode:
            return []
        st.multi_job_split = not st.multi_job_split
        st.log_content = self._multi_job_content()
        return []

    # Branch and status selection

    def _commit_branch(self) -> Commands:
        st = self.state
        index = clamp_index(st.branch_cursor, len(st.branches))
        if index < 0 or st.source is None:
            return []
        branch = st.branches[index].name
        st.source = st.source.with_branch(branch)
        st.sources = [st.source]
        st.run_index = 0
        self._set_loading(f"Switching to branch '{branch}'...", "runs")
        return [self._fetch_runs_command()]

    def _commit_status_filter(self) -> Commands:
        st = self.state
        index = clamp_index(st.filter_cursor, len(STATUS_FILTER_OPTIONS))
        st.status_filter = STATUS_FILTER_OPTIONS[index]
        st.run_index = 0
        st.sourced_index = 0
        label = st.status_filter or "all"
        self._set_loading(f"Applying '{label}' filter...", "runs")
        return [self._fetch_runs_command()]

    # Artifacts

    def _download_artifact(self) -> Commands:
        st = self.state
        index = clamp_index(st.artifact_cursor, len(st.artifacts))
        if index < 0 or st.source is None:
            return []
        artifact = st.artifacts[index]
        if artifact.expired:
            st.status_message = f"Artifact {artifact.name} has expired"
            return []
        self._set_loading(f"Downloading {artifact.name}...", "artifact_download")
        return [cmds.download_artifact(self.client, st.source, artifact, self.settings.export_dir)]

    # Step filter

    def _toggle_step(self) -> Commands:
        st = self.state
        if st.parsed_logs is None or not st.parsed_logs.steps:
            return []
        index = clamp_index(st.log_filter_cursor, len(st.parsed_logs.steps))
        number = st.parsed_logs.steps[index].number
        if number in st.log_filter_steps:
            st.log_filter_steps.remove(number)
        else:
            st.log_filter_steps.append(number)
        return []

    def _apply_log_filter(self) -> Commands:
        st = self.state
        if st.parsed_logs is not None:
            st.log_content = st.parsed_logs.filtered_content(st.log_filter_steps)
            st.log_scroll = 0
            self._recompute_search()
        self._settle(Screen.LOG_VIEWER)
        return []

    def _cancel_log_filter(self) -> Commands:
        self._settle(Screen.LOG_VIEWER)
        return []

    # Multi-job

    def toggle_multi_job(self, job_id: int) -> None:
        ids = self.state.multi_job_ids
        if job_id in ids:
            ids.remove(job_id)
        elif len(ids) < MAX_MULTI_JOBS:
            ids.append(job_id)

    def _toggle_job(self) -> Commands:
        st = self.state
        index = clamp_index(st.multi_job_cursor, len(st.jobs))
        if index < 0:
            return []
        self.toggle_multi_job(st.jobs[index].id)
        return []

    def _apply_multi_job(self) -> Commands:
        st = self.state
        if not st.multi_job_ids or st.source is None:
            self._settle(self._dashboard_screen())
            return []
        self._set_loading(f"Loading logs for {len(st.multi_job_ids)} jobs...", "multi_job")
        return [cmds.fetch_multi_job_logs(self.client, st.source, st.multi_job_ids)]

    def _multi_job_content(self) -> str:
        st = self.state
        names = {job.id: job.name for job in st.jobs}
        return build_multi_job_content(st.multi_job_ids, st.multi_job_contents, names)

    # Compare

    def _pick_compare_run(self) -> Commands:
        st = self.state
        if not st.runs:
            return []
        if st.compare_step == 0:
            st.compare_first = st.compare_cursor
            st.compare_step = 1
            if st.compare_cursor == 0 and len(st.runs) > 1:
                st.compare_cursor = 1
            return []
        if st.compare_cursor == st.compare_first or st.source is None:
            return []
        st.compare_second = st.compare_cursor
        left = st.runs[st.compare_first]
        right = st.runs[st.compare_second]
        self._set_loading("Loading logs for comparison...", "compare")
        return [cmds.fetch_compare_logs(self.client, st.source, left, right)]

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    def _on_runs_loaded(self, msg: RunsLoaded) -> Commands:
        st = self.state
        if st.multi_source or msg.source != st.source or msg.status_filter != st.status_filter:
            log.debug("stale_runs_ignored", extra=log_extra(repo=msg.source.slug))
            return []
        st.runs = list(msg.runs)
        if not st.runs:
            st.run = None
            st.jobs = []
            st.run_index = 0
            self._update_exit_code()
            if self._on_dashboard():
                self._settle(self._dashboard_screen())
            st.status_message = "No workflow runs found"
            return self._schedule_poll()
        if st.run_index >= len(st.runs) or st.run_index < 0:
            st.run_index = 0
        st.run = st.runs[st.run_index]
        return self._fetch_jobs_command()

    def _on_sourced_runs_loaded(self, msg: SourcedRunsLoaded) -> Commands:
        st = self.state
        if not st.multi_source or msg.status_filter != st.status_filter:
            return []
        st.sourced_runs = list(msg.result.runs)
        st.failed_sources = list(msg.result.failed_sources)
        if not st.sourced_runs:
            st.run = None
            self._update_exit_code()
            if self._on_dashboard():
                self._settle(self._dashboard_screen())
            return self._schedule_poll()
        if st.sourced_index >= len(st.sourced_runs) or st.sourced_index < 0:
            st.sourced_index = 0
        chosen = st.sourced_runs[st.sourced_index]
        st.run = chosen.run
        st.source = chosen.source
        return self._fetch_jobs_command()

    def _on_jobs_loaded(self, msg: JobsLoaded) -> Commands:
        st = self.state
        if st.run is None or msg.run_id != st.run.id:
            log.debug("stale_jobs_ignored", extra=log_extra(run_id=msg.run_id))
            return []
        commands: Commands = []
        st.jobs = list(msg.jobs)
        st.job_cursor = clamp_index(st.job_cursor, len(st.jobs))

        if st.watching and st.run.is_completed():
            st.watching = False
            st.poll_generation += 1
            if not st.notification_sent:
                st.notification_sent = True
                commands.extend(self._notification_commands())
        self._update_exit_code()

        # A streaming job that has finished gets one last refresh and no more ticks.
        if st.log_streaming and st.log_job_id is not None and st.source is not None:
            job = next((j for j in st.jobs if j.id == st.log_job_id), None)
            if job is not None and not job.is_running():
                st.log_streaming = False
                commands.append(cmds.refresh_logs(self.client, st.source, st.log_job_id, st.log_generation))

        if self._on_dashboard():
            self._settle(self._dashboard_screen())
        commands.extend(self._schedule_poll())
        return commands

    def _notification_commands(self) -> Commands:
        st = self.state
        if st.run is None or st.source is None:
            return []
        if not self.settings.notify and not self.settings.hook:
            return []
        data = HookData.from_run(st.source.slug, st.run, st.jobs)
        log.info(
            "run_completed",
            extra=log_extra(repo=st.source.slug, run_id=st.run.id, conclusion=st.run.conclusion),
        )
        return [cmds.notify(data, desktop=self.settings.notify, hook_path=self.settings.hook)]

    def _on_job_detail_loaded(self, msg: JobDetailLoaded) -> Commands:
        st = self.state
        if st.pending_job_id != msg.job.id:
            return []
        st.pending_job_id = None
        if st.screen not in DASHBOARD_SCREENS:
            return []
        st.selected_job = msg.job
        st.step_cursor = clamp_index(0, len(msg.job.steps))
        self._settle(Screen.JOB_DETAILS)
        return []

    def _on_logs_loaded(self, msg: LogsLoaded) -> Commands:
        st = self.state
        if msg.job_id != st.log_job_id or msg.generation != st.log_generation:
            return []
        st.log_loading = False
        st.log_content = msg.logs.combined
        st.log_scroll = 0
        self._recompute_search()
        job = st.job_by_id(msg.job_id)
        st.log_streaming = job is not None and job.is_running()
        return self._schedule_log_tick()

    def _on_logs_updated(self, msg: LogsUpdated) -> Commands:
        st = self.state
        if msg.job_id != st.log_job_id or msg.generation != st.log_generation:
            return []
        if msg.logs is not None:
            if st.parsed_logs is not None:
                st.parsed_logs = msg.logs
            content = msg.logs.filtered_content(st.log_filter_steps)
            if content != st.log_content:
                st.log_content = content
                if st.log_streaming:
                    st.log_scroll = self._max_log_scroll()
                self._recompute_search()
        if msg.job is not None:
            st.jobs = [msg.job if j.id == msg.job.id else j for j in st.jobs]
            if not msg.job.is_running():
                st.log_streaming = False
        return self._schedule_log_tick()

    def _on_parsed_logs_loaded(self, msg: ParsedLogsLoaded) -> Commands:
        st = self.state
        if msg.job_id != st.log_job_id:
            return []
        st.parsed_logs = msg.logs
        st.log_filter_cursor = clamp_index(st.log_filter_cursor, len(msg.logs.steps))
        self._settle(Screen.LOG_FILTER)
        return []

    def _on_multi_job_logs_loaded(self, msg: MultiJobLogsLoaded) -> Commands:
        st = self.state
        if list(msg.job_ids) != st.multi_job_ids:
            return []
        self._reset_log_view()
        st.log_job_id = None
        st.log_loading = False
        st.multi_job_contents = dict(msg.contents)
        st.multi_job_mode = True
        st.log_content = self._multi_job_content()
        st.log_return_screen = self._dashboard_screen()
        self._settle(Screen.LOG_VIEWER)
        return []

    def _on_compare_logs_loaded(self, msg: CompareLogsLoaded) -> Commands:
        st = self.state
        if not (0 <= st.compare_first < len(st.runs) and 0 <= st.compare_second < len(st.runs)):
            return []
        if (st.runs[st.compare_first].id, st.runs[st.compare_second].id) != tuple(msg.run_ids):
            return []
        st.compare_diff = compute_diff(msg.left, msg.right)
        st.compare_labels = msg.labels
        st.compare_scroll = 0
        self._settle(Screen.COMPARE_VIEW)
        return []

    def _on_branches_loaded(self, msg: BranchesLoaded) -> Commands:
        st = self.state
        st.branches = list(msg.branches)
        current = st.source.branch if st.source is not None else None
        names = [b.name for b in st.branches]
        st.branch_cursor = names.index(current) if current in names else clamp_index(0, len(names))
        self._settle(Screen.BRANCH_SELECTION)
        return []

    def _on_workflow_loaded(self, msg: WorkflowLoaded) -> Commands:
        st = self.state
        st.workflow_path = msg.path
        st.workflow_content = msg.content
        st.workflow_scroll = 0
        self._settle(Screen.WORKFLOW_VIEWER)
        return []

    def _on_artifacts_loaded(self, msg: ArtifactsLoaded) -> Commands:
        st = self.state
        if st.run is None or msg.run_id != st.run.id:
            return []
        st.artifacts = list(msg.artifacts)
        st.artifact_cursor = clamp_index(0, len(st.artifacts))
        self._settle(Screen.ARTIFACT_SELECTION)
        return []

    def _on_artifact_downloaded(self, msg: ArtifactDownloaded) -> Commands:
        self.state.status_message = f"Downloaded {msg.path}"
        self._settle(self._dashboard_screen())
        return []

    def _on_logs_exported(self, msg: LogsExported) -> Commands:
        if msg.error:
            self.state.status_message = f"Export failed: {msg.error}"
        else:
            self.state.status_message = f"Saved to {msg.path}"
        return []

    def _on_action_completed(self, msg: ActionCompleted) -> Commands:
        st = self.state
        st.status_message = msg.description
        log.info("run_action_completed", extra=log_extra(run_id=msg.run_id, action=msg.action))
        if st.screen in DASHBOARD_SCREENS:
            self._set_loading("Refreshing...", "runs")
        return [self._fetch_runs_command()]

    def _on_error(self, msg: ErrorOccurred) -> Commands:
        st = self.state
        st.error = msg.error
        st.error_hint = error_hint(msg.error)
        st.exit_code = EXIT_NO_RUN
        st.log_streaming = False
        self._settle(Screen.ERROR)
        log.error(
            "command_failed",
            extra=log_extra(command=msg.command, error=str(msg.error), error_type=type(msg.error).__name__),
        )
        return []

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _on_poll_tick(self, msg: PollTick) -> Commands:
        st = self.state
        if not st.watching or msg.generation != st.poll_generation:
            return []
        if st.screen in DASHBOARD_SCREENS:
            self._set_loading("Watching for updates...", "runs")
        # Other screens keep their content; the dashboard data refreshes underneath.
        return [self._fetch_runs_command()]

    def _on_log_tick(self, msg: LogTick) -> Commands:
        st = self.state
        if (
            not st.log_streaming
            or msg.job_id != st.log_job_id
            or msg.generation != st.log_generation
            or st.source is None
        ):
            return []
        return [cmds.refresh_logs(self.client, st.source, msg.job_id, msg.generation)]
