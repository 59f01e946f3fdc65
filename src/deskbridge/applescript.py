"""Run AppleScript through osascript with a hard timeout and bounded retries."""

from __future__ import annotations

import os
import signal
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import anyio
from anyio.abc import Process

from .errors import AutomationFailure, FailureKind, InvalidInput, classify_failure, parse_os_error
from .logging import get_logger
from .settings import ScriptSettings

logger = get_logger(__name__)

OSASCRIPT = "osascript"
TERMINATE_GRACE_S = 2.0


class ScriptExecutionError(RuntimeError):
    """A single osascript attempt exited with an error."""


class ScriptExecutor(Protocol):
    async def __call__(self, script: str, *, timeout: float) -> str: ...


@dataclass(frozen=True, slots=True)
class ScriptBudget:
    timeout_s: float
    retries: int
    retry_delay_s: float

    @classmethod
    def from_settings(cls, settings: ScriptSettings) -> ScriptBudget:
        return cls(
            timeout_s=settings.timeout_ms / 1000,
            retries=settings.retries,
            retry_delay_s=settings.retry_delay_ms / 1000,
        )


@dataclass(frozen=True, slots=True)
class AutomationScript:
    body: str
    budget: ScriptBudget


def escape_applescript_string(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


async def _wait_for_process(proc: Process, timeout: float) -> bool:
    with anyio.move_on_after(timeout) as scope:
        await proc.wait()
    return scope.cancel_called


def _signal_process(proc: Process, sig: signal.Signals) -> None:
    if proc.returncode is not None:
        return
    if os.name == "posix" and proc.pid is not None:
        try:
            os.killpg(proc.pid, sig)
            return
        except ProcessLookupError:
            return
        except Exception as e:
            logger.debug("osascript.signal_failed", signal=sig.name, error=str(e))
    try:
        if sig is signal.SIGKILL:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        return


@asynccontextmanager
async def manage_subprocess(*args, **kwargs):
    """Ensure subprocesses receive SIGTERM, then SIGKILL after a grace period."""
    if os.name == "posix":
        kwargs.setdefault("start_new_session", True)
    proc = await anyio.open_process(args, **kwargs)
    try:
        yield proc
    finally:
        if proc.returncode is None:
            with anyio.CancelScope(shield=True):
                _signal_process(proc, signal.SIGTERM)
                timed_out = await _wait_for_process(proc, timeout=TERMINATE_GRACE_S)
                if timed_out:
                    _signal_process(proc, signal.SIGKILL)
                    await proc.wait()


async def _read_all(stream) -> bytes:
    if stream is None:
        return b""
    chunks: list[bytes] = []
    async for chunk in stream:
        chunks.append(chunk)
    return b"".join(chunks)


async def run_osascript(script: str, *, timeout: float) -> str:
    """Default executor: one `osascript -e` invocation.

    Raises TimeoutError when the process outlives `timeout`; the process is
    terminated on the way out.
    """
    with anyio.fail_after(timeout):
        async with manage_subprocess(OSASCRIPT, "-e", script) as proc:
            stdout = b""
            stderr = b""

            async def read_stdout() -> None:
                nonlocal stdout
                stdout = await _read_all(proc.stdout)

            async def read_stderr() -> None:
                nonlocal stderr
                stderr = await _read_all(proc.stderr)

            async with anyio.create_task_group() as tg:
                tg.start_soon(read_stdout)
                tg.start_soon(read_stderr)
            await proc.wait()

    err_text = stderr.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        raise ScriptExecutionError(err_text or f"osascript exited with {proc.returncode}")
    if err_text:
        logger.warning("osascript.stderr", stderr=err_text)
    return stdout.decode("utf-8", errors="replace").strip()


class ScriptRunner:
    def __init__(
        self,
        settings: ScriptSettings | None = None,
        *,
        executor: ScriptExecutor = run_osascript,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.settings = settings or ScriptSettings()
        self._executor = executor
        self._sleep = sleep

    def budget(
        self,
        *,
        timeout: float | None = None,
        retries: int | None = None,
        retry_delay: float | None = None,
    ) -> ScriptBudget:
        default = ScriptBudget.from_settings(self.settings)
        return ScriptBudget(
            timeout_s=default.timeout_s if timeout is None else timeout,
            retries=default.retries if retries is None else retries,
            retry_delay_s=default.retry_delay_s if retry_delay is None else retry_delay,
        )

    async def run(
        self,
        script: str,
        *,
        timeout: float | None = None,
        retries: int | None = None,
        retry_delay: float | None = None,
    ) -> str:
        budget = self.budget(timeout=timeout, retries=retries, retry_delay=retry_delay)
        return await self.execute(AutomationScript(body=script, budget=budget))

    def _validate(self, script: AutomationScript) -> None:
        if not script.body.strip():
            raise InvalidInput("Script cannot be empty", field="script")
        if len(script.body) > self.settings.max_script_length:
            raise InvalidInput(
                f"Script exceeds maximum length of {self.settings.max_script_length} characters",
                field="script",
            )
        if script.budget.retries < 1:
            raise InvalidInput("Script retries must be at least 1", field="retries")

    async def execute(self, script: AutomationScript) -> str:
        self._validate(script)
        budget = script.budget
        last_message = ""
        kind = FailureKind.EXECUTION_FAILED
        attempt = 0
        for attempt in range(1, budget.retries + 1):
            try:
                text = await self._executor(script.body, timeout=budget.timeout_s)
            except TimeoutError:
                last_message = f"script timed out after {budget.timeout_s:g}s"
                kind = classify_failure(last_message, timed_out=True)
            except (ScriptExecutionError, OSError) as exc:
                last_message = str(exc)
                kind = classify_failure(last_message)
            else:
                logger.debug(
                    "script.attempt",
                    attempt=attempt,
                    ok=True,
                    script=script.body,
                    output=text,
                )
                return text

            logger.debug(
                "script.attempt",
                attempt=attempt,
                ok=False,
                kind=kind.value,
                error=last_message,
                script=script.body,
            )
            if kind is FailureKind.PERMISSION_DENIED:
                break
            if attempt < budget.retries:
                await self._sleep(budget.retry_delay_s)

        raise AutomationFailure(
            f"AppleScript execution failed after {attempt} attempt(s): {last_message}",
            kind=kind,
            os_error=parse_os_error(last_message),
            attempts=attempt,
        )
