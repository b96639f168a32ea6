"""Authenticated HTTP transport for the Microsoft Graph API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError

from onedrive_sync.errors import AuthError, NetworkError, ProtocolError

if TYPE_CHECKING:
    from onedrive_sync.config import AppConfig

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 60.0


class AccessTokenProvider(Protocol):
    def get_valid_access_token(self) -> str: ...


@dataclass(frozen=True)
class GraphResponse:
    """Status code and raw body of a successful (2xx) response."""

    status: int
    body: bytes

    def json(self) -> dict[str, Any]:
        """Parse the body as JSON; an empty body yields an empty dict."""
        if not self.body:
            return {}
        try:
            parsed = json.loads(self.body)
        except ValueError as exc:
            raise ProtocolError(f"response is not valid JSON: {exc}", self.status) from exc
        if not isinstance(parsed, dict):
            raise ProtocolError("response JSON is not an object", self.status)
        return parsed


class GraphClient:
    """Client for Microsoft Graph API calls.

    Calls against Graph paths carry a bearer token from the token provider.
    Pre-authenticated URLs handed out by Graph (upload sessions, download
    links) are called without one.
    """

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialise the client.

        Args:
            token_provider: Source of valid access tokens (a TokenManager).
            base_url: Graph API root, e.g. "https://graph.microsoft.com/v1.0".
            timeout: Transport timeout in seconds for every request.
        """
        self._tokens = token_provider
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def url_for(self, path: str) -> str:
        """Resolve a path relative to the API root; absolute URLs pass through."""
        if path.startswith(("https://", "http://")):
            return path
        return f"{self._base_url}{path}"

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to the API root (must start with '/'),
                or an absolute link returned by Graph (e.g. @odata.nextLink).

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            AuthError: If no valid token is available or Graph returns 401.
            ProtocolError: If the API returns a non-2xx status code.
            NetworkError: If the request fails at the transport level.
        """
        return self._authenticated("GET", path).json()

    def post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated POST with a JSON body and return the parsed JSON reply."""
        body = json.dumps(payload).encode("utf-8")
        return self._authenticated(
            "POST", path, body, {"Content-Type": "application/json"}
        ).json()

    def delete(self, path: str) -> None:
        """Perform an authenticated DELETE request."""
        self._authenticated("DELETE", path)

    def get_content(self, url: str) -> bytes:
        """Download raw bytes from a pre-authenticated URL (no bearer token)."""
        req = urllib_request.Request(url, method="GET")
        return self._send(req).body

    def put_bytes(self, url: str, content: bytes, headers: dict[str, str]) -> GraphResponse:
        """PUT raw bytes to a pre-authenticated URL (no bearer token).

        Args:
            url: Absolute URL, typically an upload session URL.
            content: Request body.
            headers: Extra headers such as Content-Range.

        Returns:
            GraphResponse with the status code and body.
        """
        req = urllib_request.Request(
            url,
            data=content,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(len(content)),
                **headers,
            },
            method="PUT",
        )
        return self._send(req)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _authenticated(
        self,
        method: str,
        path: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> GraphResponse:
        token = self._tokens.get_valid_access_token()
        req = urllib_request.Request(
            self.url_for(path),
            data=data,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                **(headers or {}),
            },
            method=method,
        )
        return self._send(req)

    def _send(self, req: urllib_request.Request) -> GraphResponse:
        try:
            with urllib_request.urlopen(req, timeout=self._timeout) as resp:
                return GraphResponse(status=resp.status, body=resp.read())
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            if exc.code == 401:
                logger.error(
                    "[_send] unexpected 401 from Graph; method:%s;detail:%s",
                    req.get_method(),
                    detail,
                )
                raise AuthError(f"Graph rejected the access token: {detail}") from exc
            raise ProtocolError(str(detail), exc.code) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            logger.warning("[_send] transport failure; method:%s;error:%s", req.get_method(), exc)
            raise NetworkError(f"{req.get_method()} request failed: {exc}") from exc


def graph_client_from_config(config: AppConfig, token_provider: AccessTokenProvider) -> GraphClient:
    """Construct a GraphClient from application configuration.

    Args:
        config: Application configuration instance.
        token_provider: TokenManager supplying bearer tokens.

    Returns:
        Configured GraphClient instance.
    """
    return GraphClient(token_provider=token_provider, timeout=config.http_timeout_seconds)
