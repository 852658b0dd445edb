"""
Bulk Operation Coordinator - Runs one action against every selected email
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from mailcleaner.confirm import ConfirmationGate, PendingConfirmation
from mailcleaner.errors import AuthError, MailCleanerError, ValidationError, friendly_message
from mailcleaner.listing import VIEW_ARCHIVE, VIEW_INBOX, VIEW_TRASH, EmailListView
from mailcleaner.models import BulkResult
from mailcleaner.remote import RemoteClient


logger = logging.getLogger(__name__)

ACTION_MARK_READ = 'mark_read'
ACTION_MARK_UNREAD = 'mark_unread'
ACTION_TRASH = 'trash'
ACTION_ARCHIVE = 'archive'
ACTION_RESTORE = 'restore'
ACTION_PURGE = 'purge'
ACTION_UNARCHIVE = 'unarchive'

ACTIONS_BY_VIEW = {
    VIEW_INBOX: (ACTION_MARK_READ, ACTION_MARK_UNREAD, ACTION_TRASH, ACTION_ARCHIVE),
    VIEW_TRASH: (ACTION_MARK_READ, ACTION_MARK_UNREAD, ACTION_TRASH, ACTION_RESTORE, ACTION_PURGE),
    VIEW_ARCHIVE: (ACTION_MARK_READ, ACTION_MARK_UNREAD, ACTION_TRASH, ACTION_UNARCHIVE),
}

# Backend batches these in one request
AGGREGATE_CALLS = {
    ACTION_MARK_READ: 'bulk_mark_read',
    ACTION_MARK_UNREAD: 'bulk_mark_unread',
    ACTION_TRASH: 'bulk_delete',
    ACTION_ARCHIVE: 'bulk_archive',
}

# No batch endpoint: one request per email
FAN_OUT_CALLS = {
    ACTION_RESTORE: 'untrash_email',
    ACTION_PURGE: 'delete_email_permanently',
    ACTION_UNARCHIVE: 'unarchive_email',
}

SUCCESS_MESSAGES = {
    ACTION_MARK_READ: 'Marked {n} emails as read',
    ACTION_MARK_UNREAD: 'Marked {n} emails as unread',
    ACTION_TRASH: 'Moved {n} emails to trash',
    ACTION_ARCHIVE: 'Archived {n} emails',
    ACTION_RESTORE: 'Restored {n} emails',
    ACTION_PURGE: 'Permanently deleted {n} emails',
    ACTION_UNARCHIVE: 'Moved {n} emails to inbox',
}

FAILURE_LABELS = {
    ACTION_MARK_READ: 'mark as read',
    ACTION_MARK_UNREAD: 'mark as unread',
    ACTION_TRASH: 'delete',
    ACTION_ARCHIVE: 'archive',
    ACTION_RESTORE: 'restore',
    ACTION_PURGE: 'permanent delete',
    ACTION_UNARCHIVE: 'unarchive',
}

CONFIRM_PROMPTS = {
    ACTION_TRASH: 'Are you sure you want to move {n} emails to trash?',
    ACTION_PURGE: 'Permanently delete {n} email(s)? This cannot be undone.',
}

Outcome = Union[BulkResult, PendingConfirmation, None]


class BulkOperationCoordinator:
    """Selection plus the bulk verbs that make sense for one list view"""

    def __init__(
        self,
        client: RemoteClient,
        view: EmailListView,
        notify: Optional[Callable[..., Any]] = None,
        gate: Optional[ConfirmationGate] = None
    ):
        self.client = client
        self.view = view
        self.notify = notify
        self.gate = gate or ConfirmationGate()
        self.busy = False
        self.last_result: Optional[BulkResult] = None

    @property
    def selection(self):
        return self.view.selection

    @property
    def available_actions(self) -> tuple:
        return ACTIONS_BY_VIEW[self.view.view]

    @property
    def pending_confirmation(self) -> Optional[PendingConfirmation]:
        return self.gate.pending

    # === Selection ===

    def select_all(self) -> None:
        self.selection.select_all(self.view.ids)

    def deselect_all(self) -> None:
        self.selection.clear()

    def toggle_all(self) -> None:
        self.selection.toggle_all(self.view.ids)

    def toggle(self, email_id: str) -> bool:
        """Flip one rendered email; ids not on the page are ignored"""
        if email_id not in self.view.ids:
            logger.debug(f"Ignoring selection of {email_id}, not on the current page")
            return False
        return self.selection.toggle(email_id)

    # === Verbs ===

    async def mark_read(self) -> Outcome:
        return await self.run(ACTION_MARK_READ)

    async def mark_unread(self) -> Outcome:
        return await self.run(ACTION_MARK_UNREAD)

    async def move_to_trash(self) -> Outcome:
        return await self.run(ACTION_TRASH)

    async def archive(self) -> Outcome:
        return await self.run(ACTION_ARCHIVE)

    async def restore_from_trash(self) -> Outcome:
        return await self.run(ACTION_RESTORE)

    async def purge_forever(self) -> Outcome:
        return await self.run(ACTION_PURGE)

    async def unarchive(self) -> Outcome:
        return await self.run(ACTION_UNARCHIVE)

    async def run(self, action: str) -> Outcome:
        """Execute now, or park behind a confirmation for destructive verbs"""
        if action not in self.available_actions:
            raise ValidationError(f"'{action}' is not available in {self.view.view}")
        if self.busy:
            raise ValidationError('Another bulk action is still running.')

        ids = self.selection.ids()
        if not ids:
            logger.debug(f"Bulk {action} with empty selection, nothing to do")
            return None

        if action in CONFIRM_PROMPTS:
            prompt = CONFIRM_PROMPTS[action].format(n=len(ids))
            return self.gate.request(prompt, lambda: self._execute(action, ids))

        return await self._execute(action, ids)

    async def confirm(self) -> Optional[BulkResult]:
        return await self.gate.confirm()

    def cancel(self) -> None:
        self.gate.cancel()

    # === Execution ===

    async def _execute(self, action: str, ids: List[str]) -> BulkResult:
        if self.busy:
            raise ValidationError('Another bulk action is still running.')
        self.busy = True

        if action == ACTION_ARCHIVE:
            self.view.remove_local(ids)

        try:
            if action in AGGREGATE_CALLS:
                result = await self._aggregate(action, ids)
            else:
                result = await self._fan_out(action, ids)
        except AuthError:
            self.selection.clear()
            raise
        finally:
            self.busy = False

        self.last_result = result
        self.selection.clear()
        if self.notify:
            self.notify(result.message, None)

        # Converge on server truth whatever happened
        await self.view.refresh()
        return result

    async def _aggregate(self, action: str, ids: List[str]) -> BulkResult:
        call = getattr(self.client, AGGREGATE_CALLS[action])
        try:
            data = await call(ids)
        except AuthError:
            raise
        except MailCleanerError as error:
            return self._failed(action, ids, error)

        succeeded = int(data.get('successCount') or 0)
        return self._succeeded(action, len(ids), succeeded)

    async def _fan_out(self, action: str, ids: List[str]) -> BulkResult:
        call = getattr(self.client, FAN_OUT_CALLS[action])
        outcomes = await asyncio.gather(*(call(email_id) for email_id in ids), return_exceptions=True)

        errors: Dict[str, BaseException] = {
            email_id: outcome
            for email_id, outcome in zip(ids, outcomes)
            if isinstance(outcome, BaseException)
        }
        for error in errors.values():
            if isinstance(error, AuthError) or not isinstance(error, MailCleanerError):
                raise error

        for email_id, error in errors.items():
            logger.warning(f"Bulk {action}: {email_id} failed: {error}")

        if errors and len(errors) == len(ids):
            return self._failed(action, ids, next(iter(errors.values())))
        return self._succeeded(action, len(ids), len(ids) - len(errors))

    def _succeeded(self, action: str, requested: int, succeeded: int) -> BulkResult:
        message = SUCCESS_MESSAGES[action].format(n=succeeded)
        if succeeded < requested:
            message += f" ({requested - succeeded} failed)"
            logger.warning(f"Bulk {action}: {succeeded}/{requested} succeeded")
        else:
            logger.info(f"Bulk {action}: {succeeded} emails")
        return BulkResult(action=action, requested=requested, succeeded=succeeded, message=message)

    def _failed(self, action: str, ids: List[str], error: MailCleanerError) -> BulkResult:
        logger.error(f"Bulk {action} failed: {error}")
        reason = friendly_message(error)
        return BulkResult(
            action=action,
            requested=len(ids),
            succeeded=0,
            message=f"Bulk {FAILURE_LABELS[action]} failed: {reason}",
            error=reason
        )
