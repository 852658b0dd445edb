"""
Client configuration - environment driven settings and logging setup
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_API_BASE = 'http://localhost:8080'

# Request deadlines (seconds)
DEFAULT_TIMEOUT = 30.0
DEFAULT_SYNC_TIMEOUT = 300.0

# Background quick sync period (milliseconds, as stored by the settings screen)
DEFAULT_QUICK_SYNC_MS = 30_000
MIN_QUICK_SYNC_MS = 5_000
MAX_QUICK_SYNC_MS = 10 * 60 * 1000

DEFAULT_UNDO_SECONDS = 5.0

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def clamp_quick_sync_interval(value_ms) -> int:
    """Clamp a user supplied period into 5s-10min; 0 (or negative) keeps sync disabled"""
    try:
        ms = int(value_ms)
    except (TypeError, ValueError):
        return DEFAULT_QUICK_SYNC_MS
    if ms <= 0:
        return 0
    return max(MIN_QUICK_SYNC_MS, min(MAX_QUICK_SYNC_MS, ms))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class ClientConfig:
    """Settings for one client instance"""
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT
    sync_timeout: float = DEFAULT_SYNC_TIMEOUT
    quick_sync_ms: int = DEFAULT_QUICK_SYNC_MS
    undo_seconds: float = DEFAULT_UNDO_SECONDS
    log_level: str = 'INFO'

    @property
    def quick_sync_seconds(self) -> Optional[float]:
        """Background period in seconds, None when disabled"""
        return self.quick_sync_ms / 1000 if self.quick_sync_ms > 0 else None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'ClientConfig':
        """Build config from .env and the process environment"""
        load_dotenv(env_file)

        return cls(
            api_base=os.getenv('MAILCLEANER_API_BASE', DEFAULT_API_BASE).rstrip('/'),
            timeout=_env_float('MAILCLEANER_TIMEOUT', DEFAULT_TIMEOUT),
            sync_timeout=_env_float('MAILCLEANER_SYNC_TIMEOUT', DEFAULT_SYNC_TIMEOUT),
            quick_sync_ms=clamp_quick_sync_interval(os.getenv('MAILCLEANER_QUICK_SYNC_MS', DEFAULT_QUICK_SYNC_MS)),
            undo_seconds=_env_float('MAILCLEANER_UNDO_SECONDS', DEFAULT_UNDO_SECONDS),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


def configure_logging(level: str = 'INFO') -> None:
    """Configure root logging the same way for the CLI and embedding apps"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )
    # Suppress per-request httpx logging
    logging.getLogger('httpx').setLevel(logging.WARNING)
