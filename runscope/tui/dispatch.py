"""
Runs controller commands off the update loop and feeds their results back.

Blocking commands go through ``asyncio.to_thread``; completions are queued and
applied one at a time, so ``Controller.update`` never runs concurrently with
itself.
"""

import asyncio
from typing import Callable, List, Optional, Set

from runscope.logging import get_logger, log_context, log_extra
from runscope.tui.commands import Command
from runscope.tui.controller import Controller
from runscope.tui.messages import ErrorOccurred, Message

log = get_logger(__name__)


class Dispatcher:
    def __init__(self, controller: Controller, on_change: Optional[Callable[[], None]] = None) -> None:
        self.controller = controller
        self.on_change = on_change
        self._queue: "asyncio.Queue[Message]" = asyncio.Queue()
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def post(self, msg: Message) -> None:
        """Queue a message from the event loop thread (key presses, resizes)."""
        self._queue.put_nowait(msg)

    def submit(self, commands: List[Command]) -> None:
        for command in commands:
            task = asyncio.create_task(self._execute(command), name=f"runscope:{command.name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _execute(self, command: Command) -> None:
        if command.delay > 0:
            await asyncio.sleep(command.delay)
        with log_context(command=command.name):
            try:
                result = await asyncio.to_thread(command.run)
            except Exception as exc:
                log.warning(
                    "command_error",
                    extra=log_extra(error=str(exc), error_type=type(exc).__name__),
                )
                result = ErrorOccurred(error=exc, command=command.name)
        if result is not None:
            self._queue.put_nowait(result)

    def step(self, msg: Message) -> None:
        """Apply one message and start whatever commands it produced."""
        commands = self.controller.update(msg)
        self.submit(commands)
        if self.on_change is not None:
            self.on_change()

    async def run(self) -> int:
        """Process messages until the session asks to quit; returns the exit code."""
        self.submit(self.controller.init())
        if self.on_change is not None:
            self.on_change()
        try:
            while not self.controller.state.quit_requested:
                msg = await self._queue.get()
                self.step(msg)
        finally:
            await self.shutdown()
        return self.controller.state.exit_code

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
