import pytest

from deskbridge.clipboard import clipboard_guard, with_clipboard_guard
from tests.fakes import MemoryClipboard


@pytest.mark.anyio
async def test_guard_restores_after_success() -> None:
    clipboard = MemoryClipboard("user data")

    async def paste() -> str:
        await clipboard.write("prompt")
        return "pasted"

    result = await with_clipboard_guard(clipboard, paste)

    assert result == "pasted"
    assert clipboard.text == "user data"
    assert clipboard.writes == ["prompt", "user data"]


@pytest.mark.anyio
async def test_guard_restores_after_failure() -> None:
    clipboard = MemoryClipboard("user data")

    with pytest.raises(RuntimeError, match="paste failed"):
        async with clipboard_guard(clipboard) as snapshot:
            assert snapshot is not None
            assert snapshot.text == "user data"
            await clipboard.write("prompt")
            raise RuntimeError("paste failed")

    assert clipboard.text == "user data"


@pytest.mark.anyio
async def test_unreadable_clipboard_skips_restore() -> None:
    clipboard = MemoryClipboard("user data", fail_read=True)

    async with clipboard_guard(clipboard) as snapshot:
        assert snapshot is None
        await clipboard.write("prompt")

    assert clipboard.writes == ["prompt"]


@pytest.mark.anyio
async def test_restore_failure_does_not_mask_result() -> None:
    clipboard = MemoryClipboard("user data")

    async def operation() -> int:
        clipboard.fail_write = True
        return 7

    assert await with_clipboard_guard(clipboard, operation) == 7
    assert clipboard.text == "user data"


@pytest.mark.anyio
async def test_restore_failure_does_not_mask_original_error() -> None:
    clipboard = MemoryClipboard("user data")

    with pytest.raises(ValueError, match="original"):
        async with clipboard_guard(clipboard):
            clipboard.fail_write = True
            raise ValueError("original")
