"""
Cancellable Deadline Timer

Wraps an event loop timer handle so a deadline callback can be suppressed
deterministically once a session finishes by another path.
"""

import asyncio
import logging
from typing import Callable, Optional


class DeadlineTimer:
    """One-shot timer firing a callback at an absolute loop time"""

    def __init__(self, delay_seconds: float, callback: Callable[[], None],
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.logger = logging.getLogger(__name__)
        self.loop = loop or asyncio.get_running_loop()
        self.delay_seconds = max(0.0, delay_seconds)
        self.callback = callback

        self.started_at: Optional[float] = None
        self.deadline: Optional[float] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._fired = False
        self._cancelled = False

    def start(self) -> 'DeadlineTimer':
        """Arm the timer; the deadline is fixed from this moment"""
        if self._handle is not None or self._cancelled:
            return self

        self.started_at = self.loop.time()
        self.deadline = self.started_at + self.delay_seconds
        self._handle = self.loop.call_at(self.deadline, self._fire)
        return self

    def cancel(self) -> bool:
        """
        Cancel the timer

        Returns:
            True if the callback was prevented from running
        """
        if self._fired or self._cancelled:
            return False

        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        return True

    def _fire(self):
        if self._cancelled:
            return

        self._fired = True
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"Error in deadline callback: {e}", exc_info=True)

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return self._handle is not None and not (self._fired or self._cancelled)

    def remaining(self) -> float:
        """Seconds left before the deadline, 0.0 once passed or inactive"""
        if not self.active:
            return 0.0
        return max(0.0, self.deadline - self.loop.time())
