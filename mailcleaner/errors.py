"""
Error taxonomy - Failures surfaced by the MailCleaner client
"""

from typing import Optional


class MailCleanerError(Exception):
    """Base class for every error raised by the client"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(MailCleanerError):
    """Transport could not reach the service"""


class RequestTimeoutError(MailCleanerError):
    """Request deadline expired before the service answered"""


class AuthError(MailCleanerError):
    """Session is no longer valid (401), user has been logged out"""


class ServerError(MailCleanerError):
    """Service answered with a non-2xx status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(MailCleanerError):
    """Local precondition failed, nothing was sent"""


class SyncInProgressError(ValidationError):
    """A sync is already running on this surface"""


def friendly_message(error: Optional[BaseException]) -> str:
    """Map an error to the wording shown to the user"""
    if error is None:
        return 'An unknown error occurred'

    if isinstance(error, NetworkError):
        return 'Unable to connect to the server. Please check your internet connection.'
    if isinstance(error, RequestTimeoutError):
        return 'The request took too long. Please try again.'
    if isinstance(error, AuthError):
        return 'Your session has expired. Please sign in again.'

    if isinstance(error, ServerError) and error.message.startswith('Request failed with status'):
        # Only the generic status text gets rewritten, server-provided messages are kept
        if error.status_code == 403:
            return 'You do not have permission to perform this action.'
        if error.status_code == 404:
            return 'The requested resource could not be found.'
        if error.status_code == 500:
            return 'A server error occurred. Please try again later.'

    return getattr(error, 'message', None) or str(error)
