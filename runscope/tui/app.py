"""
Textual shell for the interactive monitor.

Forwards key presses and resizes to the dispatcher and redraws the body from
the session state after every step. ``run_tui`` is the CLI entry point and
refuses to start unless stdin and stdout are terminals.
"""

import sys
from typing import Optional, Sequence

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Static

from runscope.client import GitHubClient
from runscope.config import Settings, Source
from runscope.logging import get_logger, init_tui_logging, log_extra
from runscope.tui.controller import Controller
from runscope.tui.dispatch import Dispatcher
from runscope.tui.messages import KeyPressed, Resized
from runscope.tui.view import render, render_footer, render_header

log = get_logger("runscope.tui")

# Textual key names that the controller knows under a different name.
_KEY_ALIASES = {
    "page_up": "pageup",
    "page_down": "pagedown",
    "question_mark": "?",
    "slash": "/",
}
_NAMED_KEYS = frozenset(
    {"up", "down", "left", "right", "enter", "escape", "backspace", "space", "pageup", "pagedown", "ctrl+c"}
)


def normalize_key(key: str, character: Optional[str]) -> str:
    """Map a Textual key event to the controller's key vocabulary."""
    key = _KEY_ALIASES.get(key, key)
    if key in _NAMED_KEYS:
        return key
    if character and character.isprintable() and len(character) == 1:
        return character
    return key


class RunscopeApp(App):
    CSS = """
    Screen { layout: vertical; }
    #header { dock: top; height: 1; padding: 0 1; background: $surface-darken-1; }
    #body { height: 1fr; padding: 0 1; }
    #status_bar { dock: bottom; height: 1; padding: 0 1; background: $surface-darken-2; }
    """

    BINDINGS = [
        Binding("ctrl+c", "interrupt", "Quit", priority=True, show=False),
    ]
    TITLE = "runscope"

    def __init__(self, controller: Controller) -> None:
        super().__init__()
        self.controller = controller
        self.dispatcher: Optional[Dispatcher] = None

    def compose(self) -> ComposeResult:
        yield Static("", id="header")
        yield Static("", id="body")
        yield Static("", id="status_bar")

    async def on_mount(self) -> None:
        self.dispatcher = Dispatcher(self.controller, on_change=self._redraw)
        self.dispatcher.post(Resized(width=self.size.width, height=self.size.height))
        self.run_worker(self._run_session(), exclusive=True, name="session")

    async def _run_session(self) -> None:
        assert self.dispatcher is not None
        exit_code = await self.dispatcher.run()
        log.info("tui_exit", extra=log_extra(exit_code=exit_code))
        self.exit(result=exit_code)

    def _redraw(self) -> None:
        state = self.controller.state
        self.query_one("#header", Static).update(render_header(state))
        self.query_one("#body", Static).update(render(state))
        self.query_one("#status_bar", Static).update(render_footer(state))

    def action_interrupt(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.post(KeyPressed(key="ctrl+c"))
        else:
            self.exit(result=self.controller.state.exit_code)

    def on_key(self, event: events.Key) -> None:
        event.stop()
        if self.dispatcher is None:
            return
        self.dispatcher.post(KeyPressed(key=normalize_key(event.key, event.character)))

    def on_resize(self, event: events.Resize) -> None:
        if self.dispatcher is not None:
            self.dispatcher.post(Resized(width=event.size.width, height=event.size.height))


def run_tui(
    settings: Settings,
    sources: Sequence[Source],
    watch: bool = False,
    client: Optional[GitHubClient] = None,
) -> int:
    """Run the interactive monitor and return the process exit code."""
    if not sys.stdin.isatty() or not sys.stdout.isatty():
        print("runscope needs an interactive terminal; use --plain or --json instead.", file=sys.stderr)
        return 2
    init_tui_logging(settings.log_level, json_output=settings.log_json, log_file=settings.log_file)
    client = client or GitHubClient.from_settings(settings)
    controller = Controller(client, settings, sources, watch=watch)
    log.info("tui_start", extra=log_extra(repo=",".join(s.slug for s in sources), watch=watch))
    result = RunscopeApp(controller).run()
    return result if isinstance(result, int) else controller.state.exit_code
