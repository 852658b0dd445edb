"""
Inbox Service - Facade for the MailCleaner client
Owns one RemoteClient and wires the list views, coordinators and the undo toast around it
"""

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from mailcleaner.bulk import BulkOperationCoordinator
from mailcleaner.cleaning import CleaningWorkflow
from mailcleaner.config import ClientConfig, clamp_quick_sync_interval
from mailcleaner.confirm import ConfirmationGate, PendingConfirmation
from mailcleaner.errors import AuthError, MailCleanerError, ServerError, ValidationError, friendly_message
from mailcleaner.listing import VIEW_ARCHIVE, VIEW_INBOX, VIEW_TRASH, EmailListView
from mailcleaner.models import (
    AUTOMATION_FREQUENCIES,
    AutomationSettings,
    CleanHistoryEntry,
    PendingUndo,
    SenderCount,
)
from mailcleaner.remote import RemoteClient
from mailcleaner.rules import RuleBook
from mailcleaner.sync import SyncCoordinator
from mailcleaner.undo import UndoNotifier


logger = logging.getLogger(__name__)

TIME_OF_DAY = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class InboxService:
    """Everything one signed-in surface needs, behind a single object"""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[RemoteClient] = None,
        on_session_expired: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
        on_toast: Optional[Callable[[Optional[PendingUndo]], None]] = None,
        page_size: int = 20
    ):
        self.config = config or ClientConfig()
        self.on_session_expired = on_session_expired
        self.session_expired = False

        self._owns_client = client is None
        self.client = client or RemoteClient(
            base_url=self.config.api_base,
            timeout=self.config.timeout,
            sync_timeout=self.config.sync_timeout
        )
        # A hook already on a caller-supplied client still runs, after ours
        self._client_hook = self.client.on_session_expired
        self.client.on_session_expired = self._handle_session_expired

        self.undo = UndoNotifier(
            self.client.untrash_email,
            timeout=self.config.undo_seconds,
            on_change=on_toast,
            on_restored=self._after_restore
        )
        self.gate = ConfirmationGate()

        # List views
        self.inbox = EmailListView(self.client.fetch_emails_paginated, VIEW_INBOX, page_size)
        self.trash = EmailListView(self.client.fetch_trash_emails, VIEW_TRASH, page_size)
        self.archive = EmailListView(self.client.fetch_archived_emails, VIEW_ARCHIVE, page_size)
        self.views = {VIEW_INBOX: self.inbox, VIEW_TRASH: self.trash, VIEW_ARCHIVE: self.archive}

        # Coordinators
        self.bulk = {
            name: BulkOperationCoordinator(self.client, view, notify=self.undo.show, gate=self.gate)
            for name, view in self.views.items()
        }
        self.sync = SyncCoordinator(self.client, on_refresh=self.inbox.refresh, notify=self.undo.show)
        self.cleaning = CleaningWorkflow(self.client, notify=self.undo.show)
        self.rules = RuleBook(self.client)

        self.quick_sync_ms = self.config.quick_sync_ms

    # === Lifecycle ===

    async def check_session(self) -> bool:
        """Liveness/auth check; a 401 here means signed out, not expired"""
        try:
            await self.client.healthz()
        except ServerError as error:
            if error.status_code == 401:
                return False
            raise
        return True

    def start_background_sync(self) -> None:
        self.sync.set_background_interval(self.quick_sync_ms / 1000 if self.quick_sync_ms > 0 else None)

    def set_quick_sync_interval(self, value_ms: int) -> int:
        """Store a new background period and apply it right away"""
        self.quick_sync_ms = clamp_quick_sync_interval(value_ms)
        self.start_background_sync()
        if self.quick_sync_ms:
            logger.info(f"Quick Sync interval updated to {round(self.quick_sync_ms / 1000)}s")
        return self.quick_sync_ms

    async def aclose(self) -> None:
        await self.sync.aclose()
        await self.undo.aclose()
        self.gate.cancel()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> 'InboxService':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _handle_session_expired(self) -> None:
        self.session_expired = True
        self.sync.stop_background()
        self.undo.dismiss()
        self.gate.cancel()
        for hook in (self.on_session_expired, self._client_hook):
            if hook:
                result = hook()
                if inspect.isawaitable(result):
                    await result

    async def logout(self) -> bool:
        """Sign out on purpose: stop the timers, then end the server session"""
        self.sync.stop_background()
        self.undo.dismiss()
        self.gate.cancel()
        ok = await self.client.logout()
        logger.info("Logged out" if ok else "Logout request failed")
        return ok

    async def _after_restore(self, email_id: str) -> None:
        await self.inbox.refresh()

    # === Single Email Actions ===

    async def delete_email(self, email_id: str) -> bool:
        """Move one email to trash; the toast offers undo"""
        try:
            data = await self.client.delete_email(email_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Delete of {email_id} failed: {error}")
            self.undo.show(f"Delete failed: {friendly_message(error)}")
            return False

        self.undo.show('Email moved to trash.', data.get('id') or email_id)
        await self.inbox.refresh()
        return True

    async def archive_email(self, email_id: str) -> bool:
        """Archive one email, hiding it before the service answers"""
        self.inbox.remove_local([email_id])
        try:
            await self.client.archive_email(email_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Archive of {email_id} failed: {error}")
            self.undo.show(f"Archive failed: {friendly_message(error)}")
            ok = False
        else:
            ok = True

        await self.inbox.refresh()
        return ok

    async def set_read(self, email_id: str, read: bool = True) -> bool:
        call = self.client.mark_email_read if read else self.client.mark_email_unread
        try:
            await call(email_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Marking {email_id} {'read' if read else 'unread'} failed: {error}")
            self.undo.show(friendly_message(error))
            return False
        await self.inbox.refresh()
        return True

    async def restore_email(self, email_id: str) -> bool:
        return await self._trash_view_action(self.client.untrash_email, email_id, 'Email restored')

    async def unarchive_email(self, email_id: str) -> bool:
        try:
            await self.client.unarchive_email(email_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            self.undo.show(f"Unarchive failed: {friendly_message(error)}")
            return False
        self.undo.show('Email moved to inbox')
        await self.archive.refresh()
        return True

    def purge_email(self, email_id: str) -> PendingConfirmation:
        """Irreversible; waits for confirmation"""
        return self.gate.request(
            'Delete forever?',
            lambda: self._trash_view_action(self.client.delete_email_permanently, email_id, 'Email permanently deleted')
        )

    async def _trash_view_action(self, call, email_id: str, done_message: str) -> bool:
        try:
            await call(email_id)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"{done_message} failed for {email_id}: {error}")
            self.undo.show(friendly_message(error))
            return False
        self.undo.show(done_message)
        await self.trash.refresh()
        return True

    # === Block & Unsubscribe ===

    def block_sender(self, sender: str) -> PendingConfirmation:
        prompt = f'Block "{sender}"? Future emails from this sender will be automatically moved to trash.'
        return self.gate.request(prompt, lambda: self._block_sender(sender))

    async def _block_sender(self, sender: str) -> bool:
        try:
            await self.client.block_sender(sender)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Blocking {sender} failed: {error}")
            self.undo.show(f"Failed to block: {friendly_message(error)}")
            return False

        self.undo.show(f"Blocked {sender}. A rule has been created.")
        await self.rules.load()
        return True

    def unsubscribe(self, sender: str, unsubscribe_header: str) -> PendingConfirmation:
        prompt = f'Unsubscribe from "{sender}"? This will use the newsletter\'s official unsubscribe method.'
        return self.gate.request(prompt, lambda: self._unsubscribe(sender, unsubscribe_header))

    async def _unsubscribe(self, sender: str, unsubscribe_header: str) -> Optional[str]:
        try:
            data = await self.client.unsubscribe_from_newsletter(unsubscribe_header, sender)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Unsubscribe from {sender} failed: {error}")
            self.undo.show(f"Failed to unsubscribe: {friendly_message(error)}")
            return None

        method = data.get('method')
        logger.info(f"Unsubscribed from {sender} via {method}")
        self.undo.show(f"Successfully unsubscribed from {sender}")
        return method

    # === Read-only Data ===

    async def fetch_stats(self) -> Dict[str, Any]:
        return await self.client.fetch_stats()

    async def fetch_email(self, email_id: str) -> Dict[str, Any]:
        """Full message, body included"""
        data = await self.client.fetch_email_details(email_id)
        return data.get('email') or data

    async def fetch_top_senders(self, limit: Optional[int] = None) -> List[SenderCount]:
        """Senders by email count, largest first"""
        data = await self.client.fetch_top_senders()
        senders = [SenderCount.from_dict(item) for item in data.get('analytics') or [] if isinstance(item, dict)]
        senders.sort(key=lambda sender: sender.count, reverse=True)
        return senders[:limit] if limit else senders

    async def fetch_subscribed_senders(self) -> List[SenderCount]:
        """Senders offering a List-Unsubscribe header"""
        data = await self.client.fetch_subscribed_senders()
        return [SenderCount.from_dict(item) for item in data.get('subscribed_senders') or [] if isinstance(item, dict)]

    async def fetch_clean_history(self) -> List[CleanHistoryEntry]:
        data = await self.client.fetch_clean_history()
        return [CleanHistoryEntry.from_dict(item) for item in data.get('history') or [] if isinstance(item, dict)]

    # === Automation Settings ===

    async def fetch_settings(self) -> AutomationSettings:
        return AutomationSettings.from_dict(await self.client.fetch_settings())

    async def save_settings(self, settings: AutomationSettings) -> AutomationSettings:
        """Validate locally, then store; returns what the server kept"""
        problems = []
        if settings.automation_frequency not in AUTOMATION_FREQUENCIES:
            problems.append(f"frequency must be one of {', '.join(AUTOMATION_FREQUENCIES)}")
        if not TIME_OF_DAY.match(settings.automation_time or ''):
            problems.append('time must be HH:MM')
        if problems:
            raise ValidationError(f"Invalid settings: {'; '.join(problems)}")

        data = await self.client.save_settings(settings.to_payload())
        saved = AutomationSettings.from_dict(data)
        logger.info(f"Automation {'enabled' if saved.automation_enabled else 'disabled'}")
        return saved
