"""Credential persistence in Azure Blob Storage."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import TYPE_CHECKING

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from onedrive_sync.auth.models import Credential

if TYPE_CHECKING:
    from onedrive_sync.config import AppConfig

logger = logging.getLogger(__name__)


class CredentialStore:
    """Loads and saves the OAuth2 credential as a JSON blob.

    ``save`` has the signature expected by TokenManager's save hook.
    """

    def __init__(self, storage_connection_string: str, container: str, blob: str) -> None:
        """Initialise the credential store.

        Args:
            storage_connection_string: Azure Storage connection string.
            container: Blob container holding the credential document.
            blob: Blob path of the credential document.
        """
        self._blob_service = BlobServiceClient.from_connection_string(storage_connection_string)
        self._container = container
        self._blob = blob

    def load(self) -> Credential:
        """Read the persisted credential.

        Returns:
            The stored credential, or an empty one if nothing has been saved yet
            (i.e. the app has never been connected).
        """
        try:
            container_client = self._blob_service.get_container_client(self._container)
            blob_client = container_client.get_blob_client(self._blob)
            data = blob_client.download_blob().readall()
        except ResourceNotFoundError:
            logger.info("[load] no credential found in blob storage — not connected")
            return Credential.empty()
        return Credential.from_dict(json.loads(data.decode("utf-8")))

    def save(self, credential: Credential) -> None:
        """Write the credential to blob storage, creating the container if needed.

        Args:
            credential: Credential to persist (an empty one after disconnect).
        """
        container_client = self._blob_service.get_container_client(self._container)
        with contextlib.suppress(Exception):
            container_client.create_container()

        blob_client = container_client.get_blob_client(self._blob)
        payload = json.dumps(credential.to_dict()).encode("utf-8")
        blob_client.upload_blob(payload, overwrite=True)
        logger.info("[save] saved credential to blob storage; connected:%s", credential.is_usable)


def credential_store_from_config(config: AppConfig) -> CredentialStore:
    """Construct a CredentialStore from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured CredentialStore instance.
    """
    return CredentialStore(
        storage_connection_string=config.storage_connection_string,
        container=config.credential_container,
        blob=config.credential_blob,
    )
