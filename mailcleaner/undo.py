"""
Undo Notifier - Single-slot toast with a time-boxed undo
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from mailcleaner.config import DEFAULT_UNDO_SECONDS
from mailcleaner.errors import AuthError, MailCleanerError, friendly_message
from mailcleaner.models import PendingUndo


logger = logging.getLogger(__name__)


class UndoNotifier:
    """Shows one message at a time; a message with an id can be undone until it expires"""

    def __init__(
        self,
        restore: Callable[[str], Awaitable[Any]],
        timeout: float = DEFAULT_UNDO_SECONDS,
        on_change: Optional[Callable[[Optional[PendingUndo]], None]] = None,
        on_restored: Optional[Callable[[str], Awaitable[Any]]] = None
    ):
        self.restore = restore
        self.timeout = timeout
        self.on_change = on_change
        self.on_restored = on_restored

        self.current: Optional[PendingUndo] = None
        self._expiry_handle: Optional[asyncio.TimerHandle] = None

    @property
    def live_timers(self) -> int:
        return 0 if self._expiry_handle is None else 1

    @property
    def can_undo(self) -> bool:
        return self.current is not None and self.current.can_undo

    # === Slot Transitions ===

    def show(self, message: str, undo_id: Optional[str] = None) -> PendingUndo:
        """Replace whatever is showing and restart the expiry clock"""
        loop = asyncio.get_running_loop()
        self._cancel_timer()

        toast = PendingUndo(message=message, undo_id=undo_id, expiry=loop.time() + self.timeout)
        self.current = toast
        self._expiry_handle = loop.call_later(self.timeout, self._expire, toast)
        logger.debug(f"Toast: {message} (undo id: {undo_id})")
        self._changed()
        return toast

    def dismiss(self) -> None:
        if self.current is None:
            return
        self._clear()

    async def undo(self) -> bool:
        """Restore the referenced item and clear the slot"""
        toast = self.current
        if toast is None:
            return False
        if not toast.can_undo:
            self._clear()
            return False

        self._clear()
        try:
            await self.restore(toast.undo_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Undo of {toast.undo_id} failed: {error}")
            self.show(f"Undo failed: {friendly_message(error)}")
            return False

        logger.info(f"Restored {toast.undo_id}")
        if self.on_restored:
            await self.on_restored(toast.undo_id)
        return True

    async def aclose(self) -> None:
        self._cancel_timer()
        self.current = None

    # === Internals ===

    def _expire(self, toast: PendingUndo) -> None:
        # A superseded toast's handle was cancelled; the identity check covers a late callback
        if self.current is not toast:
            return
        self._expiry_handle = None
        self.current = None
        self._changed()

    def _clear(self) -> None:
        self._cancel_timer()
        self.current = None
        self._changed()

    def _cancel_timer(self) -> None:
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self.current)
