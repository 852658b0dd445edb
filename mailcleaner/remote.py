"""
Remote Client - Typed async transport for the MailCleaner HTTP API
Applies per-call deadlines and turns every failure into one of the client errors
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from mailcleaner.config import DEFAULT_API_BASE, DEFAULT_SYNC_TIMEOUT, DEFAULT_TIMEOUT
from mailcleaner.errors import AuthError, NetworkError, RequestTimeoutError, ServerError


logger = logging.getLogger(__name__)

# Liveness check, exempt from the session teardown path
HEALTH_PATH = '/healthz'
LOGOUT_PATH = '/logout'

SessionExpiredHook = Callable[[], Union[None, Awaitable[None]]]


class RemoteClient:
    """Issues requests to the mail service over one authenticated session"""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        sync_timeout: float = DEFAULT_SYNC_TIMEOUT,
        on_session_expired: Optional[SessionExpiredHook] = None,
        http: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.sync_timeout = sync_timeout
        self.on_session_expired = on_session_expired

        # Set while one expiry teardown runs; concurrent 401s wait on it
        self._teardown: Optional[asyncio.Future] = None

        # Deadlines are enforced per call below, so the transport itself never times out first
        self._http = http or httpx.AsyncClient(base_url=self.base_url, timeout=None)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> 'RemoteClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # === Core Request ===

    def deadline_for(self, path: str) -> float:
        """Sync-class calls get the long deadline"""
        return self.sync_timeout if '/sync' in path else self.timeout

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send one request and return the decoded body"""
        query = {
            key: str(value)
            for key, value in (params or {}).items()
            if value is not None and value != ''
        }

        try:
            response = await asyncio.wait_for(
                self._http.request(
                    method,
                    path,
                    json=json,
                    params=query or None,
                    headers={'Content-Type': 'application/json'}
                ),
                timeout=self.deadline_for(path)
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"{method} {path} timed out after {self.deadline_for(path)}s")
            raise RequestTimeoutError('Request timed out. Please try again.')
        except httpx.TransportError as error:
            logger.warning(f"{method} {path} transport failure: {error}")
            raise NetworkError('Network error. Please check your connection and try again.')

        if response.status_code == 401 and path != HEALTH_PATH:
            await self._expire_session()
            raise AuthError('Session expired. Please sign in again.')

        # Any answer other than 401 means a live session again
        if self._teardown is not None and self._teardown.done() and response.status_code != 401:
            self._teardown = None

        if not response.is_success:
            raise ServerError(self._error_message(response), status_code=response.status_code)

        return self._parse_body(response)

    async def _expire_session(self) -> None:
        """Run the expiry teardown once, however many requests saw the 401"""
        if self._teardown is not None:
            await asyncio.shield(self._teardown)
            return

        self._teardown = asyncio.get_running_loop().create_future()
        try:
            await self._handle_session_expired()
        finally:
            if not self._teardown.done():
                self._teardown.set_result(None)

    async def _handle_session_expired(self) -> None:
        """Best-effort logout, then hand control to the entry view"""
        logger.info("Session expired, logging out")
        await self.logout()

        if self.on_session_expired:
            result = self.on_session_expired()
            if inspect.isawaitable(result):
                await result

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Message from the error body when present, else the status text"""
        message = f"Request failed with status: {response.status_code} {response.reason_phrase}"
        try:
            body = response.json()
        except ValueError:
            logger.debug(f"Could not parse error response ({response.status_code})")
            return message

        if isinstance(body, dict):
            return body.get('error') or body.get('message') or message
        return message

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        """Decode a success body; empty or non-JSON bodies become a success marker"""
        content_type = response.headers.get('content-type', '')
        text = response.text

        if 'application/json' in content_type and text.strip():
            try:
                body = response.json()
            except ValueError:
                logger.debug("Success response declared JSON but did not parse")
            else:
                return body if isinstance(body, dict) else {'data': body}

        return {'message': text} if text.strip() else {'message': 'Success'}

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request('GET', path, params=params)

    async def post(self, path: str, data: Any = None) -> Dict[str, Any]:
        return await self.request('POST', path, json=data)

    async def put(self, path: str, data: Any) -> Dict[str, Any]:
        return await self.request('PUT', path, json=data)

    async def delete(self, path: str) -> Dict[str, Any]:
        return await self.request('DELETE', path)

    # === Session ===

    async def healthz(self) -> Dict[str, Any]:
        return await self.get(HEALTH_PATH)

    async def logout(self) -> bool:
        """End the server session; failures are logged, never raised"""
        try:
            response = await asyncio.wait_for(self._http.post(LOGOUT_PATH), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.HTTPError) as error:
            logger.debug(f"Logout failed: {error}")
            return False
        return response.is_success

    # === Sync ===

    async def sync_emails(self) -> Dict[str, Any]:
        return await self.post('/emails/sync')

    async def sync_history(self) -> Dict[str, Any]:
        return await self.post('/emails/sync-history')

    async def get_sync_progress(self) -> Dict[str, Any]:
        return await self.get('/emails/sync/progress')

    # === Email Lists ===

    async def fetch_emails_paginated(self, page: int = 1, page_size: int = 10, filter: str = '') -> Dict[str, Any]:
        return await self.get('/emails/paginated', {'page': page, 'pageSize': page_size, 'filter': filter})

    async def fetch_trash_emails(self, page: int = 1, page_size: int = 50, filter: str = '') -> Dict[str, Any]:
        return await self.get('/emails/trash', {'page': page, 'pageSize': page_size, 'filter': filter})

    async def fetch_archived_emails(self, page: int = 1, page_size: int = 50, filter: str = '') -> Dict[str, Any]:
        return await self.get('/emails/archived', {'page': page, 'pageSize': page_size, 'filter': filter})

    async def fetch_email_details(self, email_id: str) -> Dict[str, Any]:
        return await self.get(f'/emails/{email_id}')

    # === Single Email Actions ===

    async def delete_email(self, email_id: str) -> Dict[str, Any]:
        return await self.delete(f'/emails/{email_id}')

    async def mark_email_read(self, email_id: str) -> Dict[str, Any]:
        return await self.post(f'/emails/{email_id}/read')

    async def mark_email_unread(self, email_id: str) -> Dict[str, Any]:
        return await self.post(f'/emails/{email_id}/unread')

    async def archive_email(self, email_id: str) -> Dict[str, Any]:
        return await self.post(f'/emails/{email_id}/archive')

    async def untrash_email(self, email_id: str) -> Dict[str, Any]:
        return await self.post(f'/emails/{email_id}/untrash')

    async def unarchive_email(self, email_id: str) -> Dict[str, Any]:
        return await self.post(f'/emails/{email_id}/unarchive')

    async def delete_email_permanently(self, email_id: str) -> Dict[str, Any]:
        return await self.delete(f'/emails/trash/{email_id}')

    # === Bulk Actions ===

    async def bulk_mark_read(self, email_ids: List[str]) -> Dict[str, Any]:
        return await self.post('/emails/bulk/read', {'emailIds': email_ids})

    async def bulk_mark_unread(self, email_ids: List[str]) -> Dict[str, Any]:
        return await self.post('/emails/bulk/unread', {'emailIds': email_ids})

    async def bulk_delete(self, email_ids: List[str]) -> Dict[str, Any]:
        return await self.post('/emails/bulk/delete', {'emailIds': email_ids})

    async def bulk_archive(self, email_ids: List[str]) -> Dict[str, Any]:
        return await self.post('/emails/bulk/archive', {'emailIds': email_ids})

    # === Rules ===

    async def fetch_rules(self) -> Dict[str, Any]:
        return await self.get('/rules')

    async def create_rule(self, rule: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post('/rules', rule)

    async def update_rule(self, rule_id: str, rule: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f'/rules/{rule_id}', rule)

    async def delete_rule(self, rule_id: str) -> Dict[str, Any]:
        return await self.delete(f'/rules/{rule_id}')

    # === Cleaning ===

    async def preview_clean(self) -> Dict[str, Any]:
        return await self.post('/clean/preview')

    async def trigger_clean(self, ids: List[str], permanent_delete: bool = False) -> Dict[str, Any]:
        return await self.post('/clean', {'ids': ids, 'permanentDelete': permanent_delete})

    async def fetch_clean_history(self) -> Dict[str, Any]:
        return await self.get('/clean/history')

    # === Block & Unsubscribe ===

    async def block_sender(self, sender: str) -> Dict[str, Any]:
        return await self.post('/block-sender', {'sender': sender})

    async def unsubscribe_from_newsletter(self, unsubscribe_header: str, sender: str) -> Dict[str, Any]:
        return await self.post('/unsubscribe-newsletter', {
            'unsubscribe_header': unsubscribe_header,
            'sender': sender
        })

    # === Analytics, Stats & Settings ===

    async def fetch_top_senders(self) -> Dict[str, Any]:
        return await self.get('/analytics/top-senders')

    async def fetch_subscribed_senders(self) -> Dict[str, Any]:
        return await self.get('/analytics/subscribed-senders')

    async def fetch_stats(self) -> Dict[str, Any]:
        return await self.get('/stats')

    async def fetch_settings(self) -> Dict[str, Any]:
        return await self.get('/settings')

    async def save_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post('/settings', settings)
