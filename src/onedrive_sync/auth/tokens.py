"""OAuth2 token lifecycle: code exchange, proactive refresh and PKCE helpers."""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import msal
import requests

from onedrive_sync.auth.models import (
    DEFAULT_EXPIRES_IN_SECONDS,
    FIELD_ACCESS_TOKEN,
    FIELD_ERROR,
    FIELD_ERROR_DESCRIPTION,
    FIELD_EXPIRES_IN,
    FIELD_REFRESH_TOKEN,
    AuthorizationRequest,
    Credential,
)
from onedrive_sync.errors import AuthError, NetworkError

if TYPE_CHECKING:
    from onedrive_sync.config import AppConfig

logger = logging.getLogger(__name__)

# msal adds offline_access (and openid/profile) on its own and rejects them if passed.
GRAPH_SCOPES = ["User.Read", "Files.ReadWrite"]
RESERVED_SCOPES = ["offline_access"]

DEFAULT_SAFETY_MARGIN = timedelta(minutes=2)
DEFAULT_FORCE_REAUTH_AFTER = timedelta(days=80)

SaveHook = Callable[[Credential], None]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE (verifier, S256 challenge) pair.

    Returns:
        Tuple of (code_verifier, code_challenge), both base64url without padding.
    """
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class TokenManager:
    """Keeps a delegated Graph access token valid for an unattended process.

    The manager is the only writer of the current credential. Installs are
    serialised, and a refresh that started before a disconnect or a new
    code exchange is discarded instead of overwriting it. It never
    prompts: when the refresh token is missing, revoked or past the forced
    re-consent ceiling it raises AuthError and leaves re-authentication to
    the host.
    """

    def __init__(
        self,
        client_id: str,
        authority: str,
        redirect_uri: str,
        credential: Credential | None = None,
        save_hook: SaveHook | None = None,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        force_reauth_after: timedelta = DEFAULT_FORCE_REAUTH_AFTER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialise the MSAL public client application.

        Args:
            client_id: Azure AD application (client) ID.
            authority: Authority base URL, e.g. "https://login.microsoftonline.com/consumers".
            redirect_uri: Redirect target registered for the application.
            credential: Previously persisted credential, or None when not connected.
            save_hook: Called with every new credential so the host can persist it.
            safety_margin: Time before nominal expiry at which a token is refreshed.
            force_reauth_after: Hard ceiling after which re-consent is required.
            clock: Returns the current timezone-aware instant.
        """
        self._client_id = client_id
        self._authority = authority.rstrip("/")
        self._redirect_uri = redirect_uri
        self._save_hook = save_hook
        self._safety_margin = safety_margin
        self._force_reauth_after = force_reauth_after
        self._clock = clock
        self.credential = credential or Credential.empty()
        self._lock = threading.Lock()
        self._generation = 0
        self._app = msal.PublicClientApplication(
            client_id=client_id,
            authority=self._authority,
        )

    @property
    def is_authenticated(self) -> bool:
        """True when both tokens are present (they may still need a refresh)."""
        return self.credential.is_usable

    def authorization_request(self) -> AuthorizationRequest:
        """Build the authorization URL for the interactive consent step.

        Returns:
            AuthorizationRequest holding the URL and the PKCE verifier that
            must be passed back to initial_exchange() with the code.
        """
        verifier, challenge = generate_pkce_pair()
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "response_mode": "query",
            "scope": " ".join(GRAPH_SCOPES + RESERVED_SCOPES),
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        url = f"{self._authority}/oauth2/v2.0/authorize?{urlencode(params)}"
        return AuthorizationRequest(url=url, code_verifier=verifier)

    def initial_exchange(self, auth_code: str, pkce_verifier: str) -> Credential:
        """Exchange an authorization code for the first token pair.

        Args:
            auth_code: Code returned to the redirect target.
            pkce_verifier: Verifier generated alongside the authorization URL.

        Returns:
            The new credential, already installed and handed to the save hook.

        Raises:
            AuthError: If the token endpoint returns an error.
            NetworkError: If the token endpoint cannot be reached.
        """
        logger.info("[initial_exchange] exchanging authorization code")
        result = self._call_token_endpoint(
            lambda: self._app.acquire_token_by_authorization_code(
                auth_code,
                scopes=GRAPH_SCOPES,
                redirect_uri=self._redirect_uri,
                data={"code_verifier": pkce_verifier},
            )
        )
        credential = self._credential_from_result(result, previous_refresh_token="")
        with self._lock:
            self._install(credential)
        logger.info("[initial_exchange] connected")
        return credential

    def get_valid_access_token(self) -> str:
        """Return an access token that is valid for at least the safety margin.

        Refreshes synchronously when the cached token is expired or near
        expiry. Auth failures are never retried here.

        Raises:
            AuthError: If re-consent is required or the refresh is rejected.
            NetworkError: If the token endpoint cannot be reached.
        """
        with self._lock:
            now = self._clock()
            current = self.credential
            generation = self._generation
            if current.reauth_required(now):
                logger.warning("[get_valid_access_token] forced re-authentication ceiling reached")
                raise AuthError("credentials expired, re-authentication required")
            if current.access_token_valid(now, self._safety_margin):
                return current.access_token

        # The token endpoint is called without holding the lock.
        refreshed = self._refresh(current)

        with self._lock:
            if self._generation != generation:
                logger.info("[get_valid_access_token] credential replaced during refresh; discarding")
                if not self.credential.is_usable:
                    raise AuthError("disconnected during refresh, re-authentication required")
                return self.credential.access_token
            self._install(refreshed)
            return refreshed.access_token

    def disconnect(self) -> None:
        """Clear the credential and persist the cleared value."""
        logger.info("[disconnect] clearing credentials")
        with self._lock:
            self._install(Credential.empty())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _refresh(self, current: Credential) -> Credential:
        if not current.refresh_token:
            raise AuthError("no refresh token, re-authentication required")
        logger.info("[_refresh] refreshing access token")
        result = self._call_token_endpoint(
            lambda: self._app.acquire_token_by_refresh_token(
                current.refresh_token,
                scopes=GRAPH_SCOPES,
            )
        )
        return self._credential_from_result(result, previous_refresh_token=current.refresh_token)

    @staticmethod
    def _call_token_endpoint(call: Callable[[], dict[str, Any] | None]) -> dict[str, Any]:
        try:
            result: dict[str, Any] = call() or {}
        except requests.RequestException as exc:
            logger.error("[_call_token_endpoint] token endpoint unreachable; error:%s", exc)
            raise NetworkError(f"Token endpoint unreachable: {exc}") from exc
        if FIELD_ERROR in result or FIELD_ACCESS_TOKEN not in result:
            error = result.get(FIELD_ERROR, "unknown_error")
            description = result.get(FIELD_ERROR_DESCRIPTION, "No description provided")
            logger.error("[_call_token_endpoint] token request rejected; error:%s", error)
            raise AuthError(f"Token request failed: {error}: {description}", error_code=error)
        return result

    def _credential_from_result(
        self, result: dict[str, Any], previous_refresh_token: str
    ) -> Credential:
        now = self._clock()
        expires_in = int(result.get(FIELD_EXPIRES_IN) or DEFAULT_EXPIRES_IN_SECONDS)
        return Credential(
            access_token=str(result[FIELD_ACCESS_TOKEN]),
            # Refresh tokens are not always rotated.
            refresh_token=str(result.get(FIELD_REFRESH_TOKEN) or previous_refresh_token),
            access_token_expires_at=now + timedelta(seconds=expires_in),
            force_reauth_at=now + self._force_reauth_after,
        )

    def _install(self, credential: Credential) -> None:
        # Caller holds self._lock.
        self.credential = credential
        self._generation += 1
        if self._save_hook is None:
            return
        try:
            self._save_hook(credential)
        except Exception:
            # The token is usable in memory for the rest of this process.
            logger.error("[_install] failed to persist credential", exc_info=True)


def token_manager_from_config(
    config: AppConfig,
    credential: Credential | None = None,
    save_hook: SaveHook | None = None,
) -> TokenManager:
    """Construct a TokenManager from application configuration.

    Args:
        config: Application configuration instance.
        credential: Persisted credential to start from.
        save_hook: Persistence callback for new credentials.

    Returns:
        Configured TokenManager instance.
    """
    return TokenManager(
        client_id=config.client_id,
        authority=config.authority,
        redirect_uri=config.redirect_uri,
        credential=credential,
        save_hook=save_hook,
        safety_margin=timedelta(seconds=config.token_safety_margin_seconds),
        force_reauth_after=timedelta(days=config.force_reauth_days),
    )
