"""
Shared test fixtures for MailCleaner client tests
"""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from mailcleaner.config import ClientConfig
from mailcleaner.listing import EmailListView
from mailcleaner.remote import RemoteClient
from mailcleaner.service import InboxService
from tests.helpers import make_preview_item


BASE_URL = 'http://testserver'


# === Request Bodies ===

class BulkRequest(BaseModel):
    emailIds: List[str] = []


class CleanRequest(BaseModel):
    ids: List[str] = []
    permanentDelete: bool = False


class RuleRequest(BaseModel):
    type: str
    value: str
    action: str = 'DELETE'
    age_days: int = 0


class BlockRequest(BaseModel):
    sender: str


class UnsubscribeRequest(BaseModel):
    unsubscribe_header: str
    sender: str


# === Fake MailCleaner Service ===

class FakeMailServer:
    """In-process stand-in for the MailCleaner HTTP API

    Emails live in one of three folders. Tests steer failures through
    `failures` (path -> (status, body)), `fail_ids` (per-email 500s) and the
    optional gates, which hold a request open until the test sets them.
    """

    def __init__(self):
        self.emails: Dict[str, dict] = {}
        self.preview_items: List[dict] = []
        self.rules: Dict[str, dict] = {}
        self.progress = {'stage': 'Fetching messages', 'percentage': 0, 'in_progress': False}
        self.history_message = 'Synced 2 new emails'
        self.settings = {'automation_enabled': False, 'automation_frequency': 'daily', 'automation_time': '09:00'}
        self.history: List[dict] = []

        self.session_valid = True
        self.failures: Dict[str, Tuple[int, Optional[dict]]] = {}
        self.fail_ids: Set[str] = set()
        self.sync_gate: Optional[asyncio.Event] = None
        self.bulk_gate: Optional[asyncio.Event] = None
        # Holds every per-email request; item_arrivals records who got there
        self.item_gate: Optional[asyncio.Event] = None
        # One gate per preview call, consumed in order
        self.preview_gates: List[asyncio.Event] = []

        self.calls: List[Tuple[str, str]] = []
        self.clean_requests: List[dict] = []
        self.bulk_requests: List[Tuple[str, List[str]]] = []
        self.item_arrivals: List[str] = []
        self.logout_calls = 0
        self._next_rule = 1

        self.app = self._build_app()

    # === Helpers ===

    def add_email(self, email_id: str, sender: str, subject: str, folder: str = 'inbox', is_read: bool = False):
        self.emails[email_id] = {
            'id': email_id,
            'sender': sender,
            'subject': subject,
            'date': '2024-05-01T10:00:00Z',
            'snippet': f'{subject}...',
            'is_read': is_read,
            'folder': folder,
        }

    def folder(self, name: str) -> List[str]:
        return [email_id for email_id, email in self.emails.items() if email['folder'] == name]

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def _page(self, folder: str, page: int, page_size: int, filter: str) -> dict:
        rows = [
            {key: value for key, value in email.items() if key != 'folder'}
            for email in self.emails.values()
            if email['folder'] == folder
        ]
        if filter:
            needle = filter.lower()
            rows = [row for row in rows if needle in row['subject'].lower() or needle in row['sender'].lower()]
        start = (page - 1) * page_size
        return {'emails': rows[start:start + page_size], 'total': len(rows)}

    # === App ===

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        server = self

        @app.middleware('http')
        async def record_and_guard(request: Request, call_next):
            path = request.url.path
            server.calls.append((request.method, path))

            if path == '/logout':
                server.logout_calls += 1
                return JSONResponse({'message': 'Logged out'})
            if not server.session_valid:
                return JSONResponse({'error': 'Unauthorized'}, status_code=401)
            if path in server.failures:
                status, body = server.failures[path]
                if body is None:
                    return Response(status_code=status)
                return JSONResponse(body, status_code=status)
            return await call_next(request)

        @app.get('/healthz')
        async def healthz():
            return {'status': 'ok'}

        # Sync

        @app.post('/emails/sync')
        async def sync_emails():
            if server.sync_gate is not None:
                await server.sync_gate.wait()
            server.progress = {'stage': 'Done', 'percentage': 100, 'in_progress': False}
            return {'message': 'Sync complete', 'total': len(server.emails)}

        @app.post('/emails/sync-history')
        async def sync_history():
            if server.sync_gate is not None:
                await server.sync_gate.wait()
            return {'message': server.history_message, 'added': 2}

        @app.get('/emails/sync/progress')
        async def sync_progress():
            return server.progress

        # Lists

        @app.get('/emails/paginated')
        async def paginated(page: int = 1, pageSize: int = 10, filter: str = ''):
            return server._page('inbox', page, pageSize, filter)

        @app.get('/emails/trash')
        async def trash(page: int = 1, pageSize: int = 50, filter: str = ''):
            return server._page('trash', page, pageSize, filter)

        @app.get('/emails/archived')
        async def archived(page: int = 1, pageSize: int = 50, filter: str = ''):
            return server._page('archive', page, pageSize, filter)

        # Bulk

        @app.post('/emails/bulk/{operation}')
        async def bulk(operation: str, body: BulkRequest):
            server.bulk_requests.append((operation, list(body.emailIds)))
            if server.bulk_gate is not None:
                await server.bulk_gate.wait()

            success = 0
            for email_id in body.emailIds:
                email = server.emails.get(email_id)
                if email is None or email_id in server.fail_ids:
                    continue
                if operation == 'read':
                    email['is_read'] = True
                elif operation == 'unread':
                    email['is_read'] = False
                elif operation == 'delete':
                    email['folder'] = 'trash'
                elif operation == 'archive':
                    email['folder'] = 'archive'
                success += 1
            return {'message': f'Bulk {operation} complete', 'successCount': success}

        # Single email

        async def hold_item(email_id: str):
            server.item_arrivals.append(email_id)
            if server.item_gate is not None:
                await server.item_gate.wait()

        @app.get('/emails/{email_id}')
        async def details(email_id: str):
            email = server.emails.get(email_id)
            if email is None:
                return JSONResponse({'error': 'Failed to get email details'}, status_code=500)
            return {'email': {**email, 'body': f"Body of {email['subject']}"}}

        @app.delete('/emails/trash/{email_id}')
        async def purge(email_id: str):
            await hold_item(email_id)
            if email_id in server.fail_ids:
                return JSONResponse({'error': f'Could not delete {email_id}'}, status_code=500)
            if server.emails.pop(email_id, None) is None:
                return JSONResponse({'error': 'Email not found'}, status_code=404)
            return {'message': 'Email permanently deleted'}

        @app.delete('/emails/{email_id}')
        async def delete_email(email_id: str):
            email = server.emails.get(email_id)
            if email is None:
                return JSONResponse({'error': 'Email not found'}, status_code=404)
            email['folder'] = 'trash'
            return {'message': 'Email moved to trash', 'id': email_id}

        @app.post('/emails/{email_id}/{operation}')
        async def single(email_id: str, operation: str):
            await hold_item(email_id)
            email = server.emails.get(email_id)
            if email_id in server.fail_ids:
                return JSONResponse({'error': f'Could not {operation} {email_id}'}, status_code=500)
            if email is None:
                return JSONResponse({'error': 'Email not found'}, status_code=404)
            if operation == 'read':
                email['is_read'] = True
            elif operation == 'unread':
                email['is_read'] = False
            elif operation in ('untrash', 'unarchive'):
                email['folder'] = 'inbox'
            elif operation == 'archive':
                email['folder'] = 'archive'
            else:
                return JSONResponse({'error': 'Unknown operation'}, status_code=404)
            return {'message': f'{operation} ok'}

        # Rules

        @app.get('/rules')
        async def list_rules():
            return {'rules': list(server.rules.values())}

        @app.post('/rules')
        async def create_rule(body: RuleRequest):
            rule_id = f'r{server._next_rule}'
            server._next_rule += 1
            server.rules[rule_id] = {'id': rule_id, **body.model_dump()}
            return {'message': 'Rule created', 'rule': server.rules[rule_id]}

        @app.put('/rules/{rule_id}')
        async def update_rule(rule_id: str, body: RuleRequest):
            if rule_id not in server.rules:
                return JSONResponse({'error': 'Rule not found'}, status_code=404)
            server.rules[rule_id] = {'id': rule_id, **body.model_dump()}
            return {'message': 'Rule updated', 'rule': server.rules[rule_id]}

        @app.delete('/rules/{rule_id}')
        async def delete_rule(rule_id: str):
            if server.rules.pop(rule_id, None) is None:
                return JSONResponse({'error': 'Rule not found'}, status_code=404)
            return {'message': 'Rule deleted'}

        # Cleaning

        @app.post('/clean/preview')
        async def preview():
            if server.preview_gates:
                await server.preview_gates.pop(0).wait()
                if not server.session_valid:
                    return JSONResponse({'error': 'Unauthorized'}, status_code=401)
            return {
                'message': f'{len(server.preview_items)} emails would be affected',
                'affected': server.preview_items,
            }

        @app.post('/clean')
        async def clean(body: CleanRequest):
            server.clean_requests.append(body.model_dump())
            server.history.append({
                'id': f'h{len(server.history) + 1}',
                'timestamp': '2024-05-02T09:00:00Z',
                'affected_emails': list(body.ids),
            })
            return {'message': 'Cleaning complete', 'affected_count': len(body.ids)}

        @app.get('/clean/history')
        async def clean_history():
            return {'history': server.history}

        # Block, unsubscribe, stats

        @app.post('/block-sender')
        async def block_sender(body: BlockRequest):
            rule_id = f'r{server._next_rule}'
            server._next_rule += 1
            server.rules[rule_id] = {'id': rule_id, 'type': 'sender', 'value': body.sender, 'action': 'DELETE', 'age_days': 0}
            return {'message': f'Blocked {body.sender}'}

        @app.post('/unsubscribe-newsletter')
        async def unsubscribe(body: UnsubscribeRequest):
            return {'message': 'Unsubscribed', 'method': 'http'}

        @app.get('/stats')
        async def stats():
            return {
                'total_emails': len(server.emails),
                'inbox': len(server.folder('inbox')),
                'trash': len(server.folder('trash')),
                'rules': len(server.rules),
            }

        # Analytics & settings

        @app.get('/analytics/top-senders')
        async def top_senders():
            counts: Dict[str, int] = {}
            for email in server.emails.values():
                counts[email['sender']] = counts.get(email['sender'], 0) + 1
            return {'analytics': [{'sender': sender, 'count': count} for sender, count in counts.items()]}

        @app.get('/analytics/subscribed-senders')
        async def subscribed_senders():
            senders = [
                {
                    'sender': 'news@spam.com',
                    'count': 3,
                    'unsubscribe_header': '<https://spam.com/unsub>',
                    'sample_subject': 'Weekly digest',
                }
            ]
            return {'subscribed_senders': senders, 'total': len(senders)}

        @app.get('/settings')
        async def get_settings():
            return server.settings

        @app.post('/settings')
        async def save_settings(request: Request):
            body = await request.json()
            server.settings = {key: body[key] for key in server.settings if key in body}
            return server.settings

        return app


# === Fixtures ===

@pytest.fixture
def fake_server() -> FakeMailServer:
    """Returns a FakeMailServer with five inbox emails and a five item preview"""
    server = FakeMailServer()
    server.add_email('e1', 'Newsletter <news@spam.com>', 'Weekly digest')
    server.add_email('e2', 'Promo <promo@shop.com>', 'Limited time offer')
    server.add_email('e3', 'Boss <boss@work.com>', 'Q4 Review', is_read=True)
    server.add_email('e4', 'Updates <updates@social.com>', 'New friend request')
    server.add_email('e5', 'Bank <bank@money.com>', 'Statement ready')
    server.preview_items = [
        make_preview_item('p1', 'news@spam.com', 'Digest 1'),
        make_preview_item('p2', 'news@spam.com', 'Digest 2'),
        make_preview_item('p3', 'promo@shop.com', 'Sale', 'ARCHIVE'),
        make_preview_item('p4', 'promo@shop.com', 'Sale again', 'ARCHIVE'),
        make_preview_item('p5', 'updates@social.com', 'Ping', 'MARK_READ'),
    ]
    return server


@pytest_asyncio.fixture
async def client(fake_server):
    """RemoteClient wired to the fake service through an in-process ASGI transport"""
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=fake_server.app), base_url=BASE_URL)
    remote = RemoteClient(base_url=BASE_URL, timeout=2.0, sync_timeout=5.0, http=http)
    yield remote
    await remote.aclose()


@pytest_asyncio.fixture
async def inbox_view(client) -> EmailListView:
    """Inbox list view already loaded with page 1"""
    view = EmailListView(client.fetch_emails_paginated, 'inbox', page_size=20)
    await view.refresh()
    return view


@pytest.fixture
def test_config() -> ClientConfig:
    """Config with short timers for tests"""
    return ClientConfig(api_base=BASE_URL, timeout=2.0, sync_timeout=5.0, undo_seconds=0.2)


@pytest_asyncio.fixture
async def service(client, test_config):
    """InboxService sharing the fake-backed client"""
    toasts = []
    expired = []
    svc = InboxService(test_config, client=client, on_session_expired=lambda: expired.append(True), on_toast=toasts.append)
    svc.toasts = toasts
    svc.expired_events = expired
    yield svc
    await svc.aclose()
