"""Exception hierarchy shared by the auth, Graph and sync layers."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all onedrive_sync failures."""


class AuthError(SyncError):
    """Raised when credentials are missing, expired or rejected.

    Requires the user to re-consent; never retried automatically.
    """

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class ProtocolError(SyncError):
    """Raised when the remote returns an error status or an unexpected shape."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        if status_code is None:
            super().__init__(message)
        else:
            super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message

    @property
    def retryable(self) -> bool:
        """True for server-side and throttling statuses (5xx, 429)."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class NetworkError(SyncError):
    """Raised on transport-level failures (DNS, connection reset, timeout)."""


class LocalFSError(SyncError):
    """Raised when the local root is missing or a local file cannot be read."""
