"""OneDrive operations used by the sync orchestrator: list, upload, read, delete."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import quote

from onedrive_sync.errors import ProtocolError
from onedrive_sync.graph.models import (
    FIELD_CONFLICT_BEHAVIOR,
    FIELD_DOWNLOAD_URL,
    FIELD_UPLOAD_URL,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    RemoteItem,
    UploadSession,
)
from onedrive_sync.graph.retry import DEFAULT_MAX_RETRIES
from onedrive_sync.graph.upload import DEFAULT_CHUNK_SIZE, ChunkedUploader

if TYPE_CHECKING:
    from onedrive_sync.config import AppConfig
    from onedrive_sync.graph.client import GraphClient

logger = logging.getLogger(__name__)

DRIVE_ROOT = "/me/drive/root"


def _clean(path: str) -> str:
    return path.replace("\\", "/").strip("/")


def _encode(path: str) -> str:
    return quote(path, safe="/:")


class DriveClient:
    """File operations against a base folder of the signed-in user's drive."""

    def __init__(
        self,
        graph_client: GraphClient,
        remote_base_folder: str = "",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the drive client.

        Args:
            graph_client: Authenticated GraphClient instance.
            remote_base_folder: Folder under the drive root that mirrors the
                local root; empty means the drive root itself.
            chunk_size: Maximum bytes per upload chunk.
            max_retries: Retries per chunk on transient failures.
            sleep: Backoff sleep override, used by tests.
        """
        self._graph = graph_client
        self._base = _clean(remote_base_folder)
        self._uploader = ChunkedUploader(
            graph_client, chunk_size=chunk_size, max_retries=max_retries, sleep=sleep
        )

    def item_path(self, relative_path: str) -> str:
        """Return the drive path (no leading slash) for a path under the base folder."""
        relative = _clean(relative_path)
        if not relative:
            raise ValueError("relative_path must not be empty")
        return f"{self._base}/{relative}" if self._base else relative

    def list_folder(self, remote_folder: str = "") -> list[RemoteItem]:
        """List the children of a drive folder, following pagination.

        Args:
            remote_folder: Folder path relative to the drive root; empty means the root.

        Returns:
            Files and folders directly inside the folder.
        """
        folder = _clean(remote_folder)
        if folder:
            next_path: str | None = f"{DRIVE_ROOT}:/{_encode(folder)}:/children"
        else:
            next_path = f"{DRIVE_ROOT}/children"

        items: list[RemoteItem] = []
        while next_path is not None:
            response = self._graph.get(next_path)
            if ODATA_VALUE not in response:
                raise ProtocolError("listing response has no value array")
            items.extend(RemoteItem.from_graph(raw) for raw in response[ODATA_VALUE])
            next_path = response.get(ODATA_NEXT_LINK)
        logger.info("[list_folder] listed folder; folder:%s;item_count:%d", folder or "/", len(items))
        return items

    def create_upload_session(self, relative_path: str, total_size: int) -> UploadSession:
        """Open an upload session that replaces any existing item at the path.

        Raises:
            ProtocolError: If Graph refuses the session or omits the upload URL.
        """
        path = f"{DRIVE_ROOT}:/{_encode(self.item_path(relative_path))}:/createUploadSession"
        response = self._graph.post_json(path, {"item": {FIELD_CONFLICT_BEHAVIOR: "replace"}})
        upload_url = response.get(FIELD_UPLOAD_URL)
        if not upload_url:
            raise ProtocolError("upload session response has no uploadUrl")
        return UploadSession(upload_url=upload_url, total_size=total_size)

    def upload(self, relative_path: str, data: bytes) -> RemoteItem:
        """Upload ``data`` to ``relative_path`` under the base folder.

        Args:
            relative_path: Destination path relative to the remote base folder.
            data: Whole file content.

        Returns:
            The created or replaced RemoteItem.

        Raises:
            AuthError: If no valid token is available.
            ProtocolError: If session creation or a chunk is rejected, or
                the upload does not finalize.
            NetworkError: If a chunk keeps failing at the transport level.
        """
        session = self.create_upload_session(relative_path, len(data))
        item = self._uploader.upload(session, data)
        logger.info(
            "[upload] uploaded file; path:%s;size:%d;item_id:%s",
            relative_path,
            len(data),
            item.id,
        )
        return item

    def delete(self, relative_path: str) -> None:
        """Delete the item at ``relative_path`` under the base folder."""
        self._graph.delete(f"{DRIVE_ROOT}:/{_encode(self.item_path(relative_path))}")
        logger.info("[delete] deleted item; path:%s", relative_path)

    def read_file(self, relative_path: str) -> bytes:
        """Download the content of the file at ``relative_path``.

        Raises:
            ProtocolError: If the item has no download URL (e.g. a folder).
        """
        path = (
            f"{DRIVE_ROOT}:/{_encode(self.item_path(relative_path))}"
            f"?select=id,{FIELD_DOWNLOAD_URL}"
        )
        meta = self._graph.get(path)
        download_url = meta.get(FIELD_DOWNLOAD_URL)
        if not download_url:
            raise ProtocolError(f"no download URL for {relative_path}")
        return self._graph.get_content(download_url)


def drive_client_from_config(graph_client: GraphClient, config: AppConfig) -> DriveClient:
    """Construct a DriveClient from application configuration.

    Args:
        graph_client: Authenticated GraphClient instance.
        config: Application configuration instance.

    Returns:
        Configured DriveClient instance.
    """
    return DriveClient(
        graph_client=graph_client,
        remote_base_folder=config.remote_base_folder,
        chunk_size=config.chunk_size,
        max_retries=config.max_retries,
    )
