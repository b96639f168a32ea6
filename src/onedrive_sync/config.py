"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass

DEFAULT_AUTHORITY = "https://login.microsoftonline.com/consumers"
DEFAULT_REDIRECT_URI = "http://localhost:8400/auth/callback"
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Sync and auth
    tunables have sensible defaults but can be overridden via environment
    variables.
    """

    # Required — no defaults, fail at startup if missing
    client_id: str
    storage_connection_string: str
    local_root: str

    # Auth
    authority: str = DEFAULT_AUTHORITY
    redirect_uri: str = DEFAULT_REDIRECT_URI
    token_safety_margin_seconds: int = 120
    force_reauth_days: int = 80

    # Credential persistence
    credential_container: str = "onedrive-sync-state"
    credential_blob: str = "credentials/current.json"

    # Sync
    remote_base_folder: str = ""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_retries: int = 3
    http_timeout_seconds: float = 60.0


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        ODS_CLIENT_ID: Azure AD application (client) ID of the public client.
        AzureWebJobsStorage: Azure Storage connection string for credential persistence.
        ODS_LOCAL_ROOT: Local directory whose contents are pushed to OneDrive.

    Optional environment variables (with defaults):
        ODS_AUTHORITY: Authority base URL (default: consumers tenant).
        ODS_REDIRECT_URI: Redirect target registered for the application.
        ODS_REMOTE_BASE_FOLDER: Remote folder under the drive root (default: root).
        ODS_CHUNK_SIZE: Upload chunk size in bytes (default: 5 MiB).
        ODS_CREDENTIAL_CONTAINER: Blob container holding the credential.
        ODS_CREDENTIAL_BLOB: Blob path of the credential JSON document.
        ODS_TOKEN_SAFETY_MARGIN_SECONDS: Seconds before expiry a token is refreshed (default: 120).
        ODS_FORCE_REAUTH_DAYS: Days after which re-consent is forced (default: 80).
        ODS_MAX_RETRIES: Retries per upload chunk on transient failures (default: 3).
        ODS_HTTP_TIMEOUT_SECONDS: Per-request transport timeout (default: 60).

    Host settings (resolved by the Functions host, not read here):
        ODS_SYNC_SCHEDULE: NCRONTAB schedule of the sync timer, e.g.
            "0 */5 * * * *" for every 5 minutes. Must be set for the app to start.

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        client_id=os.environ["ODS_CLIENT_ID"],
        storage_connection_string=os.environ["AzureWebJobsStorage"],  # noqa: SIM112
        local_root=os.environ["ODS_LOCAL_ROOT"],
        authority=os.environ.get("ODS_AUTHORITY", DEFAULT_AUTHORITY),
        redirect_uri=os.environ.get("ODS_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        token_safety_margin_seconds=int(os.environ.get("ODS_TOKEN_SAFETY_MARGIN_SECONDS", "120")),
        force_reauth_days=int(os.environ.get("ODS_FORCE_REAUTH_DAYS", "80")),
        credential_container=os.environ.get("ODS_CREDENTIAL_CONTAINER", "onedrive-sync-state"),
        credential_blob=os.environ.get("ODS_CREDENTIAL_BLOB", "credentials/current.json"),
        remote_base_folder=os.environ.get("ODS_REMOTE_BASE_FOLDER", ""),
        chunk_size=int(os.environ.get("ODS_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))),
        max_retries=int(os.environ.get("ODS_MAX_RETRIES", "3")),
        http_timeout_seconds=float(os.environ.get("ODS_HTTP_TIMEOUT_SECONDS", "60")),
    )
