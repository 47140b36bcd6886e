import asyncio
import inspect
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CopyState(str, Enum):
    IDLE = "idle"
    COPIED = "copied"
    FAILED = "failed"


class CodeCopier:
    """Copy-code action with transient feedback.

    ``write`` receives the literal code text and may be sync or async. After a
    copy the state shows success or failure for ``reset_after`` seconds and
    then returns to idle.
    """

    LABELS = {
        CopyState.IDLE: "Copy",
        CopyState.COPIED: "Copied!",
        CopyState.FAILED: "Copy failed",
    }

    def __init__(self, write: Callable[[str], object], reset_after: float = 2.0):
        self.write = write
        self.reset_after = reset_after
        self.state = CopyState.IDLE
        self.copied_code: Optional[str] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    @property
    def label(self) -> str:
        return self.LABELS[self.state]

    async def copy(self, code: str) -> bool:
        """Write ``code`` to the clipboard; return whether it succeeded."""
        try:
            result = self.write(code)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Clipboard write failed: {e}")
            self.state = CopyState.FAILED
            self.copied_code = None
        else:
            self.state = CopyState.COPIED
            self.copied_code = code
        self._schedule_reset()
        return self.state == CopyState.COPIED

    def _schedule_reset(self):
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.reset_after, self._reset)

    def _reset(self):
        self.state = CopyState.IDLE
        self.copied_code = None
        self._reset_handle = None
