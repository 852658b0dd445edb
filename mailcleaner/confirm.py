"""
Confirmation Gate - Explicit confirmation state for irreversible actions
An action that needs consent parks its continuation here; the surface later confirms or cancels
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class PendingConfirmation:
    """A question waiting for the user, and what to do on yes"""
    prompt: str
    continuation: Callable[[], Awaitable[Any]]


class ConfirmationGate:
    """Holds at most one pending confirmation"""

    def __init__(self):
        self.pending: Optional[PendingConfirmation] = None

    def request(self, prompt: str, continuation: Callable[[], Awaitable[Any]]) -> PendingConfirmation:
        """Park an action; a newer request replaces an unanswered one"""
        if self.pending is not None:
            logger.debug(f"Dropping unanswered confirmation: {self.pending.prompt}")
        self.pending = PendingConfirmation(prompt=prompt, continuation=continuation)
        return self.pending

    async def confirm(self) -> Any:
        """Run the parked action; no-op when nothing is pending"""
        pending, self.pending = self.pending, None
        if pending is None:
            return None
        return await pending.continuation()

    def cancel(self) -> None:
        if self.pending is not None:
            logger.debug(f"Confirmation cancelled: {self.pending.prompt}")
        self.pending = None
