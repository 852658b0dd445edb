"""
Sync Coordinator - Drives full and incremental inbox synchronization
Polls server-side progress while a sync is outstanding and runs quick sync in the background
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from mailcleaner.errors import AuthError, MailCleanerError, SyncInProgressError, friendly_message
from mailcleaner.models import SyncProgress, SyncResult
from mailcleaner.remote import RemoteClient
from mailcleaner.timers import Ticker


logger = logging.getLogger(__name__)

SYNC_FULL = 'full'
SYNC_INCREMENTAL = 'incremental'

# Progress poll cadence (seconds)
FULL_POLL_INTERVAL = 0.5
INCREMENTAL_POLL_INTERVAL = 0.3

NO_NEW_HISTORY = 'No new history'


class SyncCoordinator:
    """One sync at a time per surface, with live progress text"""

    def __init__(
        self,
        client: RemoteClient,
        on_refresh: Optional[Callable[[], Awaitable[Any]]] = None,
        notify: Optional[Callable[[str], Any]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        full_poll_interval: float = FULL_POLL_INTERVAL,
        incremental_poll_interval: float = INCREMENTAL_POLL_INTERVAL
    ):
        self.client = client
        self.on_refresh = on_refresh
        self.notify = notify
        self.on_progress = on_progress
        self.poll_intervals = {
            SYNC_FULL: full_poll_interval,
            SYNC_INCREMENTAL: incremental_poll_interval,
        }

        # View state
        self.in_progress = False
        self.kind: Optional[str] = None
        self.progress_text = ''
        self.last_progress: Optional[SyncProgress] = None
        self.background_interval: Optional[float] = None

        self._attempt = 0
        self._poller: Optional[Ticker] = None
        self._background: Optional[Ticker] = None

    @property
    def can_start(self) -> bool:
        """Whether the sync controls are enabled"""
        return not self.in_progress

    # === Entry Points ===

    async def start_full(self) -> SyncResult:
        """User-triggered full sync"""
        return await self._run(SYNC_FULL, attended=True)

    async def start_incremental(self) -> SyncResult:
        """User-triggered quick sync"""
        return await self._run(SYNC_INCREMENTAL, attended=True)

    async def poll_progress(self) -> SyncProgress:
        """Fetch the server's view of the running sync"""
        data = await self.client.get_sync_progress()
        return SyncProgress.from_dict(data)

    # === Background Quick Sync ===

    def set_background_interval(self, seconds: Optional[float]) -> None:
        """Restart the background ticker with a new period; None or 0 turns it off"""
        self.stop_background()
        if not seconds or seconds <= 0:
            logger.info("Background quick sync disabled")
            return

        self.background_interval = seconds
        self._background = Ticker(seconds, self._background_tick, name='background-quick-sync')
        self._background.start()
        logger.info(f"Background quick sync every {seconds:g}s")

    def stop_background(self) -> None:
        if self._background is not None:
            self._background.stop()
            self._background = None
        self.background_interval = None

    async def aclose(self) -> None:
        """Release every timer this coordinator owns"""
        self.stop_background()
        self._stop_polling()

    async def _background_tick(self) -> None:
        if self.in_progress:
            logger.debug("Background quick sync skipped, a sync is already running")
            return
        try:
            await self._run(SYNC_INCREMENTAL, attended=False)
        except AuthError:
            # Logout already happened in the client; nothing left to sync for
            logger.warning("Background quick sync stopped: session expired")
            self.stop_background()

    # === Sync Attempt ===

    async def _run(self, kind: str, attended: bool) -> Optional[SyncResult]:
        if self.in_progress:
            raise SyncInProgressError(f"A {self.kind} sync is already running.")

        self._attempt += 1
        attempt = self._attempt
        self.in_progress = True
        self.kind = kind

        if attended:
            self._set_progress_text('Starting full sync...' if kind == SYNC_FULL else 'Starting quick sync...')
            self._poller = Ticker(
                self.poll_intervals[kind],
                lambda: self._poll_tick(attempt),
                name=f'{kind}-sync-progress'
            )
            self._poller.start()

        call = self.client.sync_emails if kind == SYNC_FULL else self.client.sync_history
        try:
            data = await call()
        except AuthError:
            raise
        except MailCleanerError as error:
            result = self._failure(kind, error, attended)
            data = None
        finally:
            self._stop_polling()
            self.in_progress = False
            self.kind = None
            self._set_progress_text('')

        if data is None:
            return result

        return await self._success(kind, data, attended)

    async def _success(self, kind: str, data: dict, attended: bool) -> SyncResult:
        if kind == SYNC_FULL:
            count = data.get('total')
            message = f"Full sync completed. {count if count is not None else 0} emails synced."
            should_refresh = True
        else:
            count = data.get('total', data.get('added'))
            message = data.get('message') or ''
            should_refresh = NO_NEW_HISTORY not in message

        logger.info(f"{kind.capitalize()} sync finished: {message or 'ok'}")
        if attended and message and self.notify:
            self.notify(message)
        if should_refresh and self.on_refresh:
            await self.on_refresh()

        return SyncResult(kind=kind, ok=True, message=message, count=count)

    def _failure(self, kind: str, error: MailCleanerError, attended: bool) -> SyncResult:
        prefix = 'Sync failed' if kind == SYNC_FULL else 'Quick sync failed'
        message = f"{prefix}: {friendly_message(error)}"
        if attended:
            logger.error(message)
            if self.notify:
                self.notify(message)
        else:
            logger.warning(f"Background {message[0].lower()}{message[1:]}")
        return SyncResult(kind=kind, ok=False, message=message)

    # === Progress Polling ===

    async def _poll_tick(self, attempt: int) -> None:
        try:
            progress = await self.poll_progress()
        except MailCleanerError as error:
            logger.debug(f"Progress poll failed: {error}")
            return

        # Late answers for a finished attempt are dropped
        if attempt != self._attempt or not self.in_progress:
            return

        self.last_progress = progress
        if progress.in_progress:
            if self.kind == SYNC_FULL:
                self._set_progress_text(f"{progress.stage}: {round(progress.percentage)}%")
            else:
                self._set_progress_text(progress.stage)

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.stop()
            self._poller = None

    def _set_progress_text(self, text: str) -> None:
        self.progress_text = text
        if self.on_progress:
            self.on_progress(text)
