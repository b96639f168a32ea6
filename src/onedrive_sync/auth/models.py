"""Data models for OAuth2 credentials and token endpoint responses."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

# Token endpoint JSON field names
FIELD_ACCESS_TOKEN = "access_token"
FIELD_REFRESH_TOKEN = "refresh_token"
FIELD_EXPIRES_IN = "expires_in"
FIELD_ERROR = "error"
FIELD_ERROR_DESCRIPTION = "error_description"

# Used when the server omits expires_in
DEFAULT_EXPIRES_IN_SECONDS = 3600


@dataclass(frozen=True)
class Credential:
    """Access/refresh token pair with its expiry instants.

    Instances are immutable values; the token manager replaces its
    current credential wholesale on every successful exchange or refresh.
    """

    access_token: str
    refresh_token: str
    access_token_expires_at: datetime | None = None
    force_reauth_at: datetime | None = None

    @classmethod
    def empty(cls) -> Credential:
        """Return the cleared credential used before connect and after disconnect."""
        return cls(access_token="", refresh_token="")

    @property
    def is_usable(self) -> bool:
        """True when both the access and the refresh token are present."""
        return bool(self.access_token) and bool(self.refresh_token)

    def access_token_valid(self, now: datetime, safety_margin: timedelta) -> bool:
        """Return True if the access token may still be used at ``now``.

        Args:
            now: Current instant (timezone-aware).
            safety_margin: Buffer subtracted from the nominal expiry.
        """
        if not self.access_token or self.access_token_expires_at is None:
            return False
        return now < self.access_token_expires_at - safety_margin

    def reauth_required(self, now: datetime) -> bool:
        """Return True once the hard re-consent ceiling has been reached."""
        return self.force_reauth_at is not None and now >= self.force_reauth_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "access_token_expires_at": _format_instant(self.access_token_expires_at),
            "force_reauth_at": _format_instant(self.force_reauth_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            access_token_expires_at=_parse_instant(data.get("access_token_expires_at")),
            force_reauth_at=_parse_instant(data.get("force_reauth_at")),
        )


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization URL to open in a browser plus the PKCE verifier to keep.

    Attributes:
        url: Fully built authorization endpoint URL including the code challenge.
        code_verifier: Secret that must accompany the returned authorization code.
    """

    url: str
    code_verifier: str


def _format_instant(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_instant(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
