"""Unit tests for auth/store.py — CredentialStore blob persistence."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

from azure.core.exceptions import ResourceNotFoundError

from onedrive_sync.auth.models import Credential
from onedrive_sync.auth.store import CredentialStore, credential_store_from_config
from onedrive_sync.config import AppConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store() -> tuple[CredentialStore, MagicMock]:
    """Return (store, mock_blob_service_client)."""
    mock_blob_service = MagicMock()
    with patch(
        "onedrive_sync.auth.store.BlobServiceClient.from_connection_string",
        return_value=mock_blob_service,
    ):
        store = CredentialStore(
            storage_connection_string="DefaultEndpointsProtocol=https;...",
            container="onedrive-sync-state",
            blob="credentials/current.json",
        )
    return store, mock_blob_service


def _wire_blob(mock_blob_service: MagicMock) -> tuple[MagicMock, MagicMock]:
    mock_container = MagicMock()
    mock_blob = MagicMock()
    mock_blob_service.get_container_client.return_value = mock_container
    mock_container.get_blob_client.return_value = mock_blob
    return mock_container, mock_blob


_CREDENTIAL = Credential(
    access_token="a",
    refresh_token="r",
    access_token_expires_at=datetime(2026, 3, 1, 13, 0, tzinfo=UTC),
    force_reauth_at=datetime(2026, 5, 20, 12, 0, tzinfo=UTC),
)

# ---------------------------------------------------------------------------
# load tests
# ---------------------------------------------------------------------------


class TestLoad:
    def test_returns_empty_credential_when_blob_missing(self) -> None:
        store, mock_blob_service = _make_store()
        _, mock_blob = _wire_blob(mock_blob_service)
        mock_blob.download_blob.side_effect = ResourceNotFoundError("not found")

        assert store.load() == Credential.empty()

    def test_parses_stored_json(self) -> None:
        store, mock_blob_service = _make_store()
        _, mock_blob = _wire_blob(mock_blob_service)
        mock_blob.download_blob.return_value.readall.return_value = json.dumps(
            _CREDENTIAL.to_dict()
        ).encode("utf-8")

        assert store.load() == _CREDENTIAL
        mock_blob_service.get_container_client.assert_called_with("onedrive-sync-state")


# ---------------------------------------------------------------------------
# save tests
# ---------------------------------------------------------------------------


class TestSave:
    def test_uploads_json_with_overwrite(self) -> None:
        store, mock_blob_service = _make_store()
        mock_container, mock_blob = _wire_blob(mock_blob_service)

        store.save(_CREDENTIAL)

        mock_container.get_blob_client.assert_called_with("credentials/current.json")
        payload = mock_blob.upload_blob.call_args[0][0]
        assert json.loads(payload) == _CREDENTIAL.to_dict()
        assert mock_blob.upload_blob.call_args[1] == {"overwrite": True}

    def test_continues_if_container_already_exists(self) -> None:
        store, mock_blob_service = _make_store()
        mock_container, mock_blob = _wire_blob(mock_blob_service)
        mock_container.create_container.side_effect = Exception("ContainerAlreadyExists")

        store.save(_CREDENTIAL)

        mock_blob.upload_blob.assert_called_once()


class TestCredentialStoreFromConfig:
    def test_uses_configured_container_and_blob(self) -> None:
        config = AppConfig(
            client_id="cid",
            storage_connection_string="conn",
            local_root="/vault",
            credential_container="c1",
            credential_blob="b1.json",
        )
        with patch(
            "onedrive_sync.auth.store.BlobServiceClient.from_connection_string"
        ) as mock_from_conn:
            store = credential_store_from_config(config)

        mock_from_conn.assert_called_once_with("conn")
        assert store._container == "c1"
        assert store._blob == "b1.json"
