from __future__ import annotations

from . import ui_scripts
from .applescript import ScriptRunner
from .logging import get_logger

logger = get_logger(__name__)


def is_sample_error(text: str) -> bool:
    prefix = ui_scripts.SAMPLE_ERROR_PREFIX
    return text.startswith(f"{prefix}:") or text.startswith(f"{prefix} reading window:")


def is_target_gone(text: str, app_name: str) -> bool:
    return text == ui_scripts.process_gone_message(app_name)


class TextSampler:
    """Read-only dump of every text element in the app's front window.

    Environment problems come back as `Error...` sentinel strings rather than
    exceptions; automation plumbing failures still raise from the runner.
    """

    def __init__(self, runner: ScriptRunner, *, app_name: str) -> None:
        self._runner = runner
        self.app_name = app_name
        self._script = ui_scripts.sample_window_text(app_name)

    async def sample(self) -> str:
        text = await self._runner.run(self._script)
        if is_sample_error(text):
            logger.debug("sample.error", app=self.app_name, detail=text)
        return text
