import pytest
import structlog

from deskbridge import ui_scripts
from deskbridge.applescript import ScriptExecutionError, ScriptRunner
from deskbridge.capture import (
    ABORTED_REPLY,
    NOT_POLLED_REPLY,
    TIMEOUT_REPLY,
    CaptureEngine,
    ConversationLister,
)
from deskbridge.errors import (
    AutomationFailure,
    InvalidInput,
    TargetNotRunning,
    WindowNotFound,
)
from deskbridge.settings import DeskbridgeSettings, PollingSettings
from tests.fakes import FakeClock, FakeExecutor, MemoryClipboard, sequence

PROMPT = "what is the answer"


def _engine(
    executor: FakeExecutor,
    *,
    settings: DeskbridgeSettings | None = None,
    clipboard: MemoryClipboard | None = None,
    clock: FakeClock | None = None,
) -> CaptureEngine:
    settings = settings or DeskbridgeSettings()
    clock = clock or FakeClock()
    runner = ScriptRunner(settings.script, executor=executor, sleep=clock.sleep)
    return CaptureEngine(
        settings,
        runner=runner,
        clipboard=clipboard or MemoryClipboard("user data"),
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.mark.anyio
async def test_ask_returns_stable_reply() -> None:
    clock = FakeClock()
    clipboard = MemoryClipboard("user data")
    executor = FakeExecutor(
        {
            "sample": sequence(
                [
                    f"{PROMPT}\n\nHel▍",
                    f"{PROMPT}\n\nHello! 42",
                ]
            )
        }
    )
    engine = _engine(executor, clipboard=clipboard, clock=clock)

    reply = await engine.ask(PROMPT)

    assert reply == "Hello! 42"
    assert executor.kinds[:5] == [
        "process_check",
        "activate",
        "window_count",
        "prepare_input",
        "paste_submit",
    ]
    assert executor.count("sample") == 4
    assert clock.sleeps[0] == 3.5
    assert clipboard.text == "user data"


@pytest.mark.anyio
async def test_skip_polling_returns_notice() -> None:
    settings = DeskbridgeSettings(polling=PollingSettings(skip_polling=True))
    executor = FakeExecutor()

    reply = await _engine(executor, settings=settings).ask(PROMPT)

    assert reply == NOT_POLLED_REPLY.format(app="Claude")
    assert executor.count("paste_submit") == 1
    assert executor.count("sample") == 0


@pytest.mark.anyio
async def test_timeout_returns_sentinel_text() -> None:
    executor = FakeExecutor({"sample": f"{PROMPT}\n\n▍"})

    reply = await _engine(executor).ask(PROMPT, timeout_ms=3000, interval_ms=1000)

    assert reply == TIMEOUT_REPLY.format(app="Claude")
    assert executor.count("sample") == 3


@pytest.mark.anyio
async def test_app_quitting_mid_poll_returns_notice() -> None:
    executor = FakeExecutor({"sample": ui_scripts.process_gone_message("Claude")})

    reply = await _engine(executor).ask(PROMPT)

    assert reply == ABORTED_REPLY.format(app="Claude")
    assert executor.count("sample") == 1


@pytest.mark.anyio
async def test_request_overrides_are_validated_before_any_script() -> None:
    executor = FakeExecutor()
    engine = _engine(executor)

    with pytest.raises(InvalidInput) as exc_info:
        await engine.ask(PROMPT, timeout_ms=0)
    assert exc_info.value.field == "timeout_ms"

    with pytest.raises(InvalidInput):
        await engine.ask("")

    assert executor.calls == []


@pytest.mark.anyio
async def test_submission_errors_propagate_and_clear_context() -> None:
    executor = FakeExecutor({"process_check": ui_scripts.NOT_RUNNING})

    with pytest.raises(TargetNotRunning):
        await _engine(executor).ask(PROMPT)

    assert executor.count("sample") == 0
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.anyio
async def test_sampling_failures_keep_the_captured_reply() -> None:
    executor = FakeExecutor(
        {
            "sample": sequence(
                [
                    f"{PROMPT}\n\nThe answer is forty two.",
                    ScriptExecutionError("AppleEvent timed out. (-1712)"),
                ]
            )
        }
    )

    reply = await _engine(executor).ask(PROMPT, timeout_ms=20000)

    assert reply == "The answer is forty two."
    assert executor.count("sample") > 3


def test_from_settings_uses_given_executor() -> None:
    executor = FakeExecutor()
    clipboard = MemoryClipboard()
    engine = CaptureEngine.from_settings(
        DeskbridgeSettings(), executor=executor, clipboard=clipboard
    )
    assert engine.app_name == "Claude"
    assert engine.runner._executor is executor


@pytest.mark.anyio
async def test_list_conversations() -> None:
    executor = FakeExecutor({"conversations": "Project A\nProject B\n"})
    lister = ConversationLister(ScriptRunner(executor=executor), app_name="Claude")

    result = await lister.list_conversations()

    assert result.conversations == ["Project A", "Project B"]
    assert result.timestamp


@pytest.mark.anyio
async def test_list_conversations_empty() -> None:
    executor = FakeExecutor()
    lister = ConversationLister(ScriptRunner(executor=executor), app_name="Claude")

    result = await lister.list_conversations()

    assert result.conversations == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("response", "error"),
    [
        (ui_scripts.NOT_RUNNING, TargetNotRunning),
        (ui_scripts.NO_WINDOW, WindowNotFound),
        ("Error: Can't get group 1.", AutomationFailure),
    ],
)
async def test_list_conversations_errors(response: str, error: type[Exception]) -> None:
    executor = FakeExecutor({"conversations": response})
    lister = ConversationLister(ScriptRunner(executor=executor), app_name="Claude")

    with pytest.raises(error):
        await lister.list_conversations()
