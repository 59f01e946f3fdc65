from __future__ import annotations

from collections.abc import Callable, Iterable

import anyio

from deskbridge import ui_scripts


def script_kind(script: str) -> str:
    """Name the ui_scripts template a script body was rendered from."""
    if "entire contents of front window" in script:
        return "sample"
    if "buttons of group 1 of group 1" in script:
        return "conversations"
    if 'keystroke "v"' in script:
        return "paste_submit"
    if "key code 51" in script:
        return "prepare_input"
    if "count of windows of process" in script:
        return "window_count"
    if "set frontmost to true" in script:
        return "activate"
    return "process_check"


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await anyio.sleep(0)


class FakeExecutor:
    """Script executor that answers by template kind.

    `responses` maps a kind to a string, an exception instance, or a callable
    taking the call count for that kind.
    """

    def __init__(self, responses: dict[str, object] | None = None) -> None:
        self.responses: dict[str, object] = {
            "process_check": ui_scripts.OK,
            "activate": ui_scripts.OK,
            "window_count": "1",
            "prepare_input": ui_scripts.OK,
            "paste_submit": ui_scripts.OK,
            "sample": "",
            "conversations": ui_scripts.NO_CONVERSATIONS,
        }
        self.responses.update(responses or {})
        self.calls: list[tuple[str, str]] = []
        self.timeouts: list[float] = []

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    def count(self, kind: str) -> int:
        return self.kinds.count(kind)

    async def __call__(self, script: str, *, timeout: float) -> str:
        kind = script_kind(script)
        self.calls.append((kind, script))
        self.timeouts.append(timeout)
        response = self.responses[kind]
        if callable(response):
            response = response(self.count(kind))
        if isinstance(response, BaseException):
            raise response
        return str(response)


def sequence(values: Iterable[object]) -> Callable[[int], object]:
    """Response callable yielding `values` in order, then repeating the last."""
    items = list(values)

    def pick(call_number: int) -> object:
        return items[min(call_number, len(items)) - 1]

    return pick


class MemoryClipboard:
    def __init__(
        self,
        text: str = "",
        *,
        fail_read: bool = False,
        fail_write: bool = False,
    ) -> None:
        self.text = text
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.writes: list[str] = []

    async def read(self) -> str:
        if self.fail_read:
            raise RuntimeError("clipboard unavailable")
        return self.text

    async def write(self, text: str) -> None:
        if self.fail_write:
            raise RuntimeError("clipboard locked")
        self.writes.append(text)
        self.text = text


class ScriptedSampler:
    """Sampler returning canned window dumps, repeating the last one."""

    def __init__(
        self,
        samples: Iterable[str],
        *,
        app_name: str = "Claude",
        clock: FakeClock | None = None,
        cost: float = 0.0,
    ) -> None:
        self.app_name = app_name
        self._samples = list(samples)
        self._clock = clock
        self._cost = cost
        self.calls = 0
        self.started_at: list[float] = []

    async def sample(self) -> str:
        if self._clock is not None:
            self.started_at.append(self._clock())
            self._clock.advance(self._cost)
        index = min(self.calls, len(self._samples) - 1)
        self.calls += 1
        return self._samples[index]
