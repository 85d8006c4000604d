import asyncio
import logging

import httpx
import pytest

from factories import SOURCE, job_payload, make_client, make_settings, run_payload
from runscope.logging import ContextFilter, get_log_context
from runscope.tui.commands import Command
from runscope.tui.controller import Controller
from runscope.tui.dispatch import Dispatcher
from runscope.tui.messages import ErrorOccurred, KeyPressed, PollTick
from runscope.tui.state import Screen


def _api(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/actions/runs"):
        return httpx.Response(200, json={"workflow_runs": [run_payload(3, conclusion="failure")]})
    if request.url.path.endswith("/runs/3/jobs"):
        return httpx.Response(200, json={"jobs": [job_payload(10, conclusion="failure")]})
    return httpx.Response(404, json={"message": "Not Found"})


def _quit_when(dispatcher_box, screens):
    def on_change() -> None:
        dispatcher = dispatcher_box[0]
        if dispatcher.controller.state.screen in screens and not dispatcher_box[1]:
            dispatcher_box[1] = True
            dispatcher.post(KeyPressed(key="q"))

    return on_change


def _session(handler, screens):
    controller = Controller(make_client(handler), make_settings(), [SOURCE])

    async def main():
        box = [None, False]
        dispatcher = Dispatcher(controller, on_change=_quit_when(box, screens))
        box[0] = dispatcher
        code = await asyncio.wait_for(dispatcher.run(), timeout=10)
        return code, dispatcher

    code, dispatcher = asyncio.run(main())
    return code, controller, dispatcher


def test_session_loads_dashboard_and_exits_with_run_outcome() -> None:
    code, controller, dispatcher = _session(_api, {Screen.READY})
    assert code == 1
    assert controller.state.run.id == 3
    assert [job.id for job in controller.state.jobs] == [10]
    assert dispatcher.pending == 0


def test_command_failure_becomes_error_screen() -> None:
    code, controller, _ = _session(
        lambda request: httpx.Response(401, json={"message": "Bad credentials"}), {Screen.ERROR}
    )
    assert code == 2
    assert controller.state.screen is Screen.ERROR
    assert "Bad credentials" in str(controller.state.error)


def test_commands_without_result_queue_nothing() -> None:
    controller = Controller(make_client(), make_settings(), [SOURCE])
    calls = []

    async def main():
        dispatcher = Dispatcher(controller)
        dispatcher.submit([Command("noop", lambda: calls.append("ran"))])
        await asyncio.sleep(0)
        while dispatcher.pending:
            await asyncio.sleep(0.01)
        return dispatcher._queue.qsize()

    assert asyncio.run(main()) == 0
    assert calls == ["ran"]


def test_delayed_command_result_is_queued() -> None:
    controller = Controller(make_client(), make_settings(), [SOURCE])

    async def main():
        dispatcher = Dispatcher(controller)
        dispatcher.submit([Command("tick", lambda: PollTick(generation=4), delay=0.01)])
        return await asyncio.wait_for(dispatcher._queue.get(), timeout=5)

    assert asyncio.run(main()) == PollTick(generation=4)


def test_shutdown_cancels_pending_timers() -> None:
    controller = Controller(make_client(), make_settings(), [SOURCE])

    async def main():
        dispatcher = Dispatcher(controller)
        dispatcher.submit([Command("tick", lambda: PollTick(generation=1), delay=60)])
        assert dispatcher.pending == 1
        await dispatcher.shutdown()
        return dispatcher.pending

    assert asyncio.run(main()) == 0


def test_commands_log_under_their_name(caplog: pytest.LogCaptureFixture) -> None:
    controller = Controller(make_client(), make_settings(), [SOURCE])
    seen = []

    def failing() -> None:
        seen.append(get_log_context())
        raise RuntimeError("boom")

    caplog.handler.addFilter(ContextFilter())

    async def main():
        dispatcher = Dispatcher(controller)
        dispatcher.submit([Command("fetch_runs", failing)])
        return await asyncio.wait_for(dispatcher._queue.get(), timeout=5)

    with caplog.at_level(logging.WARNING, logger="runscope"):
        result = asyncio.run(main())

    assert seen == [{"command": "fetch_runs"}]
    assert isinstance(result, ErrorOccurred)
    assert result.command == "fetch_runs"
    (record,) = [r for r in caplog.records if r.getMessage() == "command_error"]
    assert record.command == "fetch_runs"
    assert record.error_type == "RuntimeError"
    assert get_log_context() == {}
