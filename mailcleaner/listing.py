"""
Email List View - State of one paginated list (inbox, trash or archive)
The rendered rows are a local projection; every refresh replaces them with server truth
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from mailcleaner.errors import AuthError, MailCleanerError, friendly_message
from mailcleaner.models import EmailPage, EmailSummary
from mailcleaner.selection import SelectionSet


logger = logging.getLogger(__name__)

VIEW_INBOX = 'inbox'
VIEW_TRASH = 'trash'
VIEW_ARCHIVE = 'archive'
VIEWS = (VIEW_INBOX, VIEW_TRASH, VIEW_ARCHIVE)

PageFetcher = Callable[[int, int, str], Awaitable[Dict[str, Any]]]


class EmailListView:
    """One page of emails plus the selection made on it"""

    def __init__(self, fetcher: PageFetcher, view: str = VIEW_INBOX, page_size: int = 20):
        if view not in VIEWS:
            raise ValueError(f"Unknown view: {view}")
        self.fetcher = fetcher
        self.view = view

        self.page = 1
        self.page_size = page_size
        self.filter = ''

        self.emails: List[EmailSummary] = []
        self.total = 0
        self.loading = False
        self.error: Optional[str] = None
        self.selection = SelectionSet()

        # Only the newest refresh may write rows
        self._generation = 0

    @property
    def ids(self) -> List[str]:
        return [email.id for email in self.emails]

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total // self.page_size)) if self.page_size else 1

    # === Refresh ===

    async def refresh(self) -> bool:
        """Refetch the current page; stale selected ids drop out"""
        self._generation += 1
        generation = self._generation
        self.loading = True

        try:
            data = await self.fetcher(self.page, self.page_size, self.filter)
        except AuthError:
            raise
        except MailCleanerError as error:
            logger.error(f"Failed to load {self.view} page {self.page}: {error}")
            if generation == self._generation:
                self.error = friendly_message(error)
            return False
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation:
            logger.debug(f"Discarding superseded {self.view} refresh")
            return False

        page = EmailPage.from_dict(data)
        self.emails = page.emails
        self.total = page.total
        self.error = None
        self.selection.retain(self.ids)
        return True

    async def set_page(self, page: int) -> bool:
        self.page = max(1, page)
        self.selection.clear()
        return await self.refresh()

    async def set_page_size(self, page_size: int) -> bool:
        """Changing the page size jumps back to the first page"""
        self.page_size = page_size
        self.page = 1
        self.selection.clear()
        return await self.refresh()

    async def set_filter(self, text: str) -> bool:
        self.filter = text
        self.page = 1
        self.selection.clear()
        return await self.refresh()

    # === Optimistic Projection ===

    def remove_local(self, ids: Iterable[str]) -> None:
        """Hide rows right away; the next refresh is authoritative"""
        removed = set(ids)
        self.emails = [email for email in self.emails if email.id not in removed]
        self.selection.discard(removed)
