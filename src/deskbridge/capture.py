"""Top of the capture engine: submit a prompt, wait for the reply, return text."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import anyio
import msgspec
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import ui_scripts
from .applescript import ScriptExecutor, ScriptRunner, run_osascript
from .clipboard import Clipboard, PyperclipClipboard
from .errors import AutomationFailure, InvalidInput, TargetNotRunning, WindowNotFound
from .extractor import DEFAULT_MARKERS, ChromeMarkers
from .logging import bind_run_context, clear_context, get_logger
from .poller import PollOutcome, PollState, StabilityPoller
from .sampler import TextSampler
from .settings import DeskbridgeSettings
from .submitter import PromptSubmitter, validate_prompt

logger = get_logger(__name__)

TIMEOUT_REPLY = (
    "Prompt was sent to {app}, but no reply could be captured before the timeout. "
    "{app} may still be processing."
)
ABORTED_REPLY = "Prompt was sent, but {app} quit before a reply could be captured."
NOT_POLLED_REPLY = "Prompt sent to {app}; reply polling is disabled."


class CaptureRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str
    conversation_id: str | None = None
    timeout_ms: int = Field(gt=0)
    interval_ms: int = Field(gt=0)
    required_stable_checks: int = Field(ge=1)


class ConversationList(msgspec.Struct, frozen=True):
    conversations: list[str]
    timestamp: str


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def render_outcome(outcome: PollOutcome, app_name: str) -> str:
    if outcome.reply:
        return outcome.reply
    if outcome.state is PollState.ABORTED:
        return ABORTED_REPLY.format(app=app_name)
    return TIMEOUT_REPLY.format(app=app_name)


class CaptureEngine:
    def __init__(
        self,
        settings: DeskbridgeSettings,
        *,
        runner: ScriptRunner,
        clipboard: Clipboard,
        markers: ChromeMarkers = DEFAULT_MARKERS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self._sleep = sleep
        app_name = settings.target.app_name
        self.submitter = PromptSubmitter(
            runner,
            clipboard,
            target=settings.target,
            limits=settings.limits,
            sleep=sleep,
        )
        self.sampler = TextSampler(runner, app_name=app_name)
        self.poller = StabilityPoller(
            self.sampler, markers=markers, clock=clock, sleep=sleep
        )

    @classmethod
    def from_settings(
        cls,
        settings: DeskbridgeSettings,
        *,
        executor: ScriptExecutor = run_osascript,
        clipboard: Clipboard | None = None,
    ) -> CaptureEngine:
        runner = ScriptRunner(settings.script, executor=executor)
        return cls(settings, runner=runner, clipboard=clipboard or PyperclipClipboard())

    @property
    def app_name(self) -> str:
        return self.settings.target.app_name

    def build_request(
        self,
        prompt: str,
        conversation_id: str | None = None,
        *,
        timeout_ms: int | None = None,
        interval_ms: int | None = None,
        required_stable_checks: int | None = None,
    ) -> CaptureRequest:
        polling = self.settings.polling
        try:
            request = CaptureRequest(
                prompt=prompt,
                conversation_id=conversation_id,
                timeout_ms=polling.timeout_ms if timeout_ms is None else timeout_ms,
                interval_ms=polling.interval_ms if interval_ms is None else interval_ms,
                required_stable_checks=(
                    polling.required_stable_checks
                    if required_stable_checks is None
                    else required_stable_checks
                ),
            )
        except ValidationError as exc:
            err = exc.errors()[0]
            field = ".".join(str(item) for item in err.get("loc", ())) or None
            raise InvalidInput(err.get("msg", "invalid value"), field=field) from None
        validate_prompt(request.prompt, request.conversation_id, self.settings.limits)
        return request

    async def ask(
        self,
        prompt: str,
        conversation_id: str | None = None,
        *,
        timeout_ms: int | None = None,
        interval_ms: int | None = None,
        required_stable_checks: int | None = None,
    ) -> str:
        request = self.build_request(
            prompt,
            conversation_id,
            timeout_ms=timeout_ms,
            interval_ms=interval_ms,
            required_stable_checks=required_stable_checks,
        )
        return await self.capture(request)

    async def capture(self, request: CaptureRequest) -> str:
        request_id = uuid.uuid4().hex
        bind_run_context(request_id=request_id)
        try:
            logger.info(
                "capture.started",
                app=self.app_name,
                conversation=request.conversation_id is not None,
                timeout_ms=request.timeout_ms,
                interval_ms=request.interval_ms,
            )
            await self.submitter.submit(request.prompt, request.conversation_id)

            if self.settings.polling.skip_polling:
                logger.info("capture.polling_skipped")
                return NOT_POLLED_REPLY.format(app=self.app_name)

            await self._sleep(self.settings.target.response_start_delay_ms / 1000)
            session = self.poller.new_session(
                request_id=request_id,
                prompt=request.prompt,
                interval_s=request.interval_ms / 1000,
                timeout_s=request.timeout_ms / 1000,
                required_stable_checks=request.required_stable_checks,
            )
            outcome = await self.poller.poll(session)
            return render_outcome(outcome, self.app_name)
        finally:
            clear_context()


class ConversationLister:
    def __init__(self, runner: ScriptRunner, *, app_name: str, activation_delay_ms: int = 1000) -> None:
        self._runner = runner
        self.app_name = app_name
        self._activation_delay_ms = activation_delay_ms

    async def list_conversations(self) -> ConversationList:
        result = await self._runner.run(
            ui_scripts.list_conversations(
                self.app_name, activation_delay_ms=self._activation_delay_ms
            )
        )
        if result == ui_scripts.NOT_RUNNING:
            raise TargetNotRunning(self.app_name)
        if result == ui_scripts.NO_WINDOW:
            raise WindowNotFound(self.app_name)
        if result == ui_scripts.NO_CONVERSATIONS:
            return ConversationList(conversations=[], timestamp=_utc_now())
        if result.startswith(f"{ui_scripts.SAMPLE_ERROR_PREFIX}:"):
            raise AutomationFailure(result)
        conversations = [line.strip() for line in result.splitlines() if line.strip()]
        logger.info("conversations.listed", app=self.app_name, count=len(conversations))
        return ConversationList(conversations=conversations, timestamp=_utc_now())
