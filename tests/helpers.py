"""
Small helpers shared by the test modules
"""

import asyncio
import time
from typing import Callable


def make_preview_item(email_id: str, sender: str, subject: str, action: str = 'DELETE') -> dict:
    """Helper to create one /clean/preview row"""
    return {'id': email_id, 'sender': sender, 'subject': subject, 'date': '2024-05-01', 'action': action}


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0, step: float = 0.005) -> None:
    """Yield to the loop until predicate holds, fail after timeout"""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError('condition not reached in time')
        await asyncio.sleep(step)
