"""
Shared data models for the MailCleaner client
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# === Rules ===

RULE_TYPES = ('sender', 'subject', 'keyword')
RULE_ACTIONS = ('DELETE', 'ARCHIVE', 'MARK_READ')


@dataclass
class Rule:
    """A cleaning rule; the service owns it, the client caches it"""
    type: str
    value: str
    action: str = 'DELETE'
    age_days: int = 0
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rule':
        return cls(
            id=data.get('id'),
            type=data.get('type', ''),
            value=data.get('value', ''),
            action=(data.get('action') or 'DELETE').upper(),
            age_days=int(data.get('age_days') or 0),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Body for POST /rules and PUT /rules/{id}"""
        return {
            'type': self.type,
            'value': self.value,
            'action': self.action,
            'age_days': self.age_days,
        }


# === Cleaning ===

@dataclass
class PreviewItem:
    """One email the rule engine would act on"""
    id: str
    sender: str
    subject: str
    date: str
    action: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PreviewItem':
        return cls(
            id=str(data['id']),
            sender=data.get('sender', ''),
            subject=data.get('subject', ''),
            date=str(data.get('date', '')),
            action=(data.get('action') or '').upper(),
        )


@dataclass
class CleanResult:
    """Outcome of POST /clean"""
    affected_count: int
    message: str = ''


# === Sync ===

@dataclass
class SyncProgress:
    """Server-side progress of the running sync"""
    stage: str = ''
    percentage: float = 0.0
    in_progress: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncProgress':
        percentage = float(data.get('percentage') or 0.0)
        return cls(
            stage=data.get('stage') or '',
            percentage=min(100.0, max(0.0, percentage)),
            in_progress=bool(data.get('in_progress', False)),
        )


@dataclass
class SyncResult:
    """Terminal state of one sync attempt"""
    kind: str  # 'full' | 'incremental'
    ok: bool
    message: str
    count: Optional[int] = None


# === Email lists ===

@dataclass
class EmailSummary:
    """One row of a paginated email list"""
    id: str
    sender: str = ''
    subject: str = ''
    date: str = ''
    snippet: str = ''
    is_read: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmailSummary':
        return cls(
            id=str(data['id']),
            sender=data.get('sender') or data.get('from') or '',
            subject=data.get('subject') or '',
            date=str(data.get('date') or ''),
            snippet=data.get('snippet') or '',
            is_read=bool(data.get('is_read', data.get('isRead', False))),
        )


@dataclass
class EmailPage:
    """A page of emails as returned by the list endpoints"""
    emails: List[EmailSummary] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmailPage':
        return cls(
            emails=[EmailSummary.from_dict(e) for e in data.get('emails') or [] if isinstance(e, dict)],
            total=int(data.get('total') or 0),
        )


# === Bulk & undo ===

@dataclass
class BulkResult:
    """Outcome of one bulk action"""
    action: str
    requested: int
    succeeded: int
    message: str
    error: Optional[str] = None

    @property
    def failed(self) -> int:
        return self.requested - self.succeeded


@dataclass
class PendingUndo:
    """The single live toast"""
    message: str
    undo_id: Optional[str]
    expiry: float  # event loop time

    @property
    def can_undo(self) -> bool:
        return self.undo_id is not None


# === Analytics, history & settings ===

@dataclass
class SenderCount:
    """How many synced emails one sender accounts for"""
    sender: str
    count: int = 0
    unsubscribe_header: str = ''
    sample_subject: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SenderCount':
        return cls(
            sender=data.get('sender') or '',
            count=int(data.get('count') or 0),
            unsubscribe_header=data.get('unsubscribe_header') or '',
            sample_subject=data.get('sample_subject') or '',
        )


@dataclass
class CleanHistoryEntry:
    """One past clean run"""
    id: str
    timestamp: str = ''
    affected_emails: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CleanHistoryEntry':
        return cls(
            id=str(data.get('id') or ''),
            timestamp=str(data.get('timestamp') or ''),
            affected_emails=list(data.get('affected_emails') or []),
        )


AUTOMATION_FREQUENCIES = ('daily', 'weekly')


@dataclass
class AutomationSettings:
    """Server-side scheduled cleaning"""
    automation_enabled: bool = False
    automation_frequency: str = 'daily'
    automation_time: str = '09:00'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AutomationSettings':
        return cls(
            automation_enabled=bool(data.get('automation_enabled', False)),
            automation_frequency=data.get('automation_frequency') or 'daily',
            automation_time=data.get('automation_time') or '09:00',
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            'automation_enabled': self.automation_enabled,
            'automation_frequency': self.automation_frequency,
            'automation_time': self.automation_time,
        }
