"""Best-effort save/restore of the OS clipboard around a guarded operation."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol, TypeVar

import anyio
import pyperclip

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Clipboard(Protocol):
    async def read(self) -> str: ...

    async def write(self, text: str) -> None: ...


class PyperclipClipboard:
    """System clipboard via pyperclip (pbcopy/pbpaste on macOS)."""

    async def read(self) -> str:
        text = await anyio.to_thread.run_sync(pyperclip.paste)
        return text or ""

    async def write(self, text: str) -> None:
        await anyio.to_thread.run_sync(pyperclip.copy, text)


@dataclass(frozen=True, slots=True)
class ClipboardSnapshot:
    text: str


async def _save(clipboard: Clipboard) -> ClipboardSnapshot | None:
    try:
        return ClipboardSnapshot(text=await clipboard.read())
    except Exception as exc:
        logger.warning("clipboard.save_failed", error=str(exc))
        return None


async def _restore(clipboard: Clipboard, snapshot: ClipboardSnapshot) -> None:
    try:
        await clipboard.write(snapshot.text)
    except Exception as exc:
        logger.warning("clipboard.restore_failed", error=str(exc))


@asynccontextmanager
async def clipboard_guard(clipboard: Clipboard) -> AsyncIterator[ClipboardSnapshot | None]:
    snapshot = await _save(clipboard)
    try:
        yield snapshot
    finally:
        if snapshot is not None:
            with anyio.CancelScope(shield=True):
                await _restore(clipboard, snapshot)


async def with_clipboard_guard(
    clipboard: Clipboard, operation: Callable[[], Awaitable[T]]
) -> T:
    async with clipboard_guard(clipboard):
        return await operation()
