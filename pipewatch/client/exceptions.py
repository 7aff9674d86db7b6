"""
Remote client exceptions

Unauthorized needs the operator to fix the configuration; every other
failure is transient and retried with backoff.
"""

from typing import Optional


class ClientError(Exception):
    """Base exception for all remote client errors"""

    transient = True


class APIError(ClientError):
    """Raised when the API answers with an unexpected status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(APIError):
    """Raised when the token is missing, invalid or expired (401/403)"""

    transient = False

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message, status_code=status_code)


class NotFound(APIError):
    """Raised when resource is not found (404)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class RateLimited(APIError):
    """Raised when the server throttles requests (429)"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NetworkError(ClientError):
    """Raised on connection failures, timeouts and 5xx answers"""


class DecodeError(ClientError):
    """Raised when a response body cannot be parsed into domain records"""
