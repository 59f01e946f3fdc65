"""Stability poller: decides when a streamed reply has stopped changing."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import anyio

from .errors import AutomationFailure
from .extractor import DEFAULT_MARKERS, ChromeMarkers, extract_reply, has_generating_indicator
from .logging import get_logger
from .sampler import is_sample_error, is_target_gone

logger = get_logger(__name__)


class PollState(str, Enum):
    POLLING = "polling"
    STABLE = "stable"
    DONE = "done"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({PollState.DONE, PollState.TIMED_OUT, PollState.ABORTED})


class Sampler(Protocol):
    app_name: str

    async def sample(self) -> str: ...


@dataclass(slots=True)
class PollSession:
    request_id: str
    prompt: str
    started_at: float
    interval_s: float
    timeout_s: float
    required_stable_checks: int = 2
    stable_count: int = 0
    last_candidate: str | None = None
    last_sample: str | None = None
    last_generating: bool = False
    state: PollState = PollState.POLLING
    ticks: int = 0

    def remaining(self, now: float) -> float:
        return self.timeout_s - (now - self.started_at)


@dataclass(frozen=True, slots=True)
class PollOutcome:
    state: PollState
    reply: str | None
    ticks: int
    elapsed_s: float
    detail: dict[str, object] = field(default_factory=dict)


def observe(session: PollSession, raw_text: str, markers: ChromeMarkers = DEFAULT_MARKERS) -> PollState:
    """Apply one successful sample to the session and return the new state."""
    session.last_sample = raw_text
    candidate = extract_reply(raw_text, session.prompt, markers)
    generating = has_generating_indicator(raw_text, markers)
    session.last_generating = generating

    if candidate is not None:
        if candidate != session.last_candidate:
            session.last_candidate = candidate
            session.stable_count = 0
        else:
            session.stable_count += 1
    if generating:
        session.stable_count = 0

    if session.stable_count >= session.required_stable_checks and not generating:
        session.state = PollState.DONE
    elif session.stable_count > 0:
        session.state = PollState.STABLE
    else:
        session.state = PollState.POLLING
    return session.state


class StabilityPoller:
    def __init__(
        self,
        sampler: Sampler,
        *,
        markers: ChromeMarkers = DEFAULT_MARKERS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._sampler = sampler
        self._markers = markers
        self._clock = clock
        self._sleep = sleep

    def new_session(
        self,
        *,
        request_id: str,
        prompt: str,
        interval_s: float,
        timeout_s: float,
        required_stable_checks: int = 2,
    ) -> PollSession:
        return PollSession(
            request_id=request_id,
            prompt=prompt,
            started_at=self._clock(),
            interval_s=interval_s,
            timeout_s=timeout_s,
            required_stable_checks=required_stable_checks,
        )

    async def _tick(self, session: PollSession) -> PollState:
        session.ticks += 1
        try:
            raw = await self._sampler.sample()
        except AutomationFailure as exc:
            logger.warning(
                "poll.sample_failed",
                request_id=session.request_id,
                kind=exc.kind.value,
                error=str(exc),
            )
            return session.state
        if is_sample_error(raw):
            if is_target_gone(raw, self._sampler.app_name):
                session.state = PollState.ABORTED
                logger.warning("poll.aborted", request_id=session.request_id, detail=raw)
            else:
                logger.info("poll.sample_error", request_id=session.request_id, detail=raw)
            return session.state
        state = observe(session, raw, self._markers)
        logger.debug(
            "poll.tick",
            request_id=session.request_id,
            tick=session.ticks,
            state=state.value,
            stable_count=session.stable_count,
            generating=session.last_generating,
        )
        return state

    async def _loop(self, session: PollSession) -> None:
        while session.remaining(self._clock()) > 0:
            if await self._tick(session) in TERMINAL_STATES:
                return
            remaining = session.remaining(self._clock())
            if remaining <= 0:
                return
            await self._sleep(min(session.interval_s, remaining))

    async def poll(self, session: PollSession) -> PollOutcome:
        logger.info(
            "poll.started",
            request_id=session.request_id,
            interval_s=session.interval_s,
            timeout_s=session.timeout_s,
        )
        with anyio.move_on_after(session.timeout_s):
            await self._loop(session)

        if session.state not in TERMINAL_STATES:
            session.state = PollState.TIMED_OUT

        reply: str | None = None
        if session.state is PollState.DONE:
            reply = session.last_candidate
        elif session.last_candidate and not session.last_generating:
            # partial reply, only when the last sample was not still generating
            reply = session.last_candidate

        elapsed = self._clock() - session.started_at
        logger.info(
            "poll.finished",
            request_id=session.request_id,
            state=session.state.value,
            ticks=session.ticks,
            elapsed_s=round(elapsed, 3),
            captured=reply is not None,
        )
        return PollOutcome(
            state=session.state,
            reply=reply,
            ticks=session.ticks,
            elapsed_s=elapsed,
        )
