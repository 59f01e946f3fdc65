from __future__ import annotations

from collections.abc import Awaitable, Callable

import anyio

from . import ui_scripts
from .applescript import ScriptRunner
from .clipboard import Clipboard, clipboard_guard
from .errors import AutomationFailure, InvalidInput, TargetNotRunning, WindowNotFound
from .logging import get_logger
from .settings import LimitsSettings, TargetSettings

logger = get_logger(__name__)


def validate_prompt(
    prompt: str, conversation_id: str | None, limits: LimitsSettings
) -> None:
    if not prompt or not prompt.strip():
        raise InvalidInput("Prompt cannot be empty", field="prompt")
    if len(prompt) > limits.max_prompt_length:
        raise InvalidInput(
            f"Prompt exceeds maximum length of {limits.max_prompt_length} characters",
            field="prompt",
        )
    if conversation_id is not None:
        if not conversation_id.strip():
            raise InvalidInput("Conversation id cannot be blank", field="conversation_id")
        if len(conversation_id) > limits.max_conversation_id_length:
            raise InvalidInput(
                "Conversation id exceeds maximum length of "
                f"{limits.max_conversation_id_length} characters",
                field="conversation_id",
            )


class PromptSubmitter:
    def __init__(
        self,
        runner: ScriptRunner,
        clipboard: Clipboard,
        *,
        target: TargetSettings | None = None,
        limits: LimitsSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._runner = runner
        self._clipboard = clipboard
        self.target = target or TargetSettings()
        self.limits = limits or LimitsSettings()
        self._sleep = sleep

    @property
    def app_name(self) -> str:
        return self.target.app_name

    def _check(self, result: str) -> str:
        if result == ui_scripts.NOT_RUNNING:
            raise TargetNotRunning(self.app_name)
        if result == ui_scripts.NO_WINDOW:
            raise WindowNotFound(self.app_name)
        return result

    async def _run_step(self, step: str, script: str) -> str:
        logger.debug("submit.step", step=step, app=self.app_name)
        return self._check(await self._runner.run(script))

    async def wait_for_window(self) -> int:
        checks = self.target.window_check_retries
        script = ui_scripts.window_count(self.app_name)
        for check in range(1, checks + 1):
            result = self._check(await self._runner.run(script))
            try:
                count = int(result)
            except ValueError:
                count = 0
            if count > 0:
                return count
            logger.debug("submit.window_wait", check=check, of=checks)
            if check < checks:
                await self._sleep(self.target.window_check_delay_ms / 1000)
        raise WindowNotFound(self.app_name, checks=checks)

    async def submit(self, prompt: str, conversation_id: str | None = None) -> None:
        validate_prompt(prompt, conversation_id, self.limits)
        target = self.target

        await self._run_step("check", ui_scripts.process_check(self.app_name))
        await self._run_step(
            "activate",
            ui_scripts.activate(
                self.app_name,
                conversation_id=conversation_id,
                activation_delay_ms=target.activation_delay_ms,
                step_delay_ms=target.step_delay_ms,
            ),
        )
        await self.wait_for_window()
        await self._run_step(
            "prepare_input",
            ui_scripts.prepare_input(self.app_name, step_delay_ms=target.step_delay_ms),
        )
        async with clipboard_guard(self._clipboard):
            try:
                await self._clipboard.write(prompt)
            except Exception as exc:
                raise AutomationFailure(
                    f"Failed to place prompt on the clipboard: {exc}"
                ) from exc
            await self._run_step(
                "paste_submit",
                ui_scripts.paste_and_submit(
                    self.app_name, step_delay_ms=target.step_delay_ms
                ),
            )
        logger.info(
            "submit.sent",
            app=self.app_name,
            chars=len(prompt),
            conversation=conversation_id is not None,
        )
