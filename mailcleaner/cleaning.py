"""
Cleaning Workflow - Two-phase preview/apply over the server's rule engine
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Set

from mailcleaner.errors import AuthError, MailCleanerError, ValidationError, friendly_message
from mailcleaner.models import CleanResult, PreviewItem
from mailcleaner.remote import RemoteClient


logger = logging.getLogger(__name__)

STATE_IDLE = 'idle'
STATE_PREVIEWING = 'previewing'
STATE_PREVIEW_READY = 'preview_ready'
STATE_APPLYING = 'applying'


class CleaningWorkflow:
    """Preview what the rules would do, let the user exclude items, then apply"""

    def __init__(self, client: RemoteClient, notify: Optional[Callable[..., Any]] = None):
        self.client = client
        self.notify = notify

        self.state = STATE_IDLE
        self.items: List[PreviewItem] = []
        self.excluded: Set[str] = set()
        self.message = ''
        self.error: Optional[str] = None

        # Only the newest preview may land
        self._generation = 0

    # === Derived State ===

    @property
    def preview_ids(self) -> List[str]:
        return [item.id for item in self.items]

    @property
    def effective_ids(self) -> List[str]:
        """Preview ids minus exclusions, in preview order"""
        return [item.id for item in self.items if item.id not in self.excluded]

    @property
    def has_delete_actions(self) -> bool:
        """Whether the permanent-delete switch means anything for this preview"""
        return any(item.action == 'DELETE' for item in self.items)

    @property
    def all_included(self) -> bool:
        return not self.excluded

    # === Phase 1: Preview ===

    async def preview(self) -> Optional[List[PreviewItem]]:
        """Evaluate all rules; replaces any previous preview and resets exclusions"""
        if self.state == STATE_APPLYING:
            raise ValidationError('Cleaning is already running.')

        self._generation += 1
        generation = self._generation
        self.state = STATE_PREVIEWING
        self.items = []
        self.excluded = set()
        self.message = ''
        self.error = None

        try:
            data = await self.client.preview_clean()
        except AuthError:
            if generation == self._generation:
                self.state = STATE_IDLE
            raise
        except MailCleanerError as error:
            logger.error(f"Preview failed: {error}")
            if generation == self._generation:
                self.error = friendly_message(error) or 'Failed to generate preview'
                self.state = STATE_IDLE
            return None

        if generation != self._generation:
            logger.debug("Discarding superseded preview")
            return None

        self.items = self._parse_items(data.get('affected') or [])
        self.message = data.get('message') or ''
        self.state = STATE_PREVIEW_READY
        logger.info(f"Preview ready: {len(self.items)} emails matched")
        return list(self.items)

    @staticmethod
    def _parse_items(raw_items: List[Dict[str, Any]]) -> List[PreviewItem]:
        items = []
        seen = set()
        for raw in raw_items:
            item = PreviewItem.from_dict(raw)
            if item.id in seen:
                logger.warning(f"Duplicate id {item.id} in preview response, keeping first")
                continue
            seen.add(item.id)
            items.append(item)
        return items

    # === Exclusions ===

    def toggle_exclude(self, email_id: str) -> bool:
        """Flip one item in or out, returns True when it ends up excluded"""
        if email_id not in self.preview_ids:
            logger.debug(f"Ignoring exclusion toggle for unknown id {email_id}")
            return False
        if email_id in self.excluded:
            self.excluded.discard(email_id)
            return False
        self.excluded.add(email_id)
        return True

    def toggle_exclude_all(self, exclude: bool) -> None:
        self.excluded = set(self.preview_ids) if exclude else set()

    # === Phase 2: Apply ===

    async def apply(self, permanent_delete: bool = False) -> Optional[CleanResult]:
        """Run the previewed actions on everything not excluded

        permanent_delete only changes DELETE items: purge instead of trash.
        """
        if self.state != STATE_PREVIEW_READY:
            raise ValidationError('Generate a preview before cleaning.')

        ids = self.effective_ids
        if not ids:
            raise ValidationError('No emails selected.')

        self.state = STATE_APPLYING
        self.error = None
        try:
            data = await self.client.trigger_clean(ids, permanent_delete=permanent_delete)
        except AuthError:
            self.state = STATE_PREVIEW_READY
            raise
        except MailCleanerError as error:
            logger.error(f"Clean failed: {error}")
            self.error = friendly_message(error) or 'Failed to trigger cleaning'
            self.state = STATE_PREVIEW_READY
            return None

        affected = int(data.get('affected_count') or 0)
        result = CleanResult(affected_count=affected, message=f"Cleaning complete! {affected} emails processed.")
        logger.info(f"Clean applied to {len(ids)} emails (permanent={permanent_delete}), {affected} processed")

        # A fresh preview is required before the next apply
        self.items = []
        self.excluded = set()
        self.message = result.message
        self.state = STATE_IDLE

        if self.notify:
            self.notify(f"{affected} emails processed.", None)
        return result
