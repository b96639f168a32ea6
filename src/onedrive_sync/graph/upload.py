"""Chunked upload protocol for Graph upload sessions.

A file is sent as consecutive byte ranges of at most ``chunk_size`` bytes,
each PUT to the session URL with a ``Content-Range`` header. Graph answers
intermediate chunks with 202 and ``nextExpectedRanges``; the response that
completes the file carries the created driveItem (it has an ``id``).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

from onedrive_sync.errors import ProtocolError
from onedrive_sync.graph.models import FIELD_ID, RemoteItem, UploadSession, UploadState
from onedrive_sync.graph.retry import DEFAULT_MAX_RETRIES, retry_with_backoff

if TYPE_CHECKING:
    from onedrive_sync.graph.client import GraphClient, GraphResponse

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


def chunk_ranges(total_size: int, chunk_size: int) -> Iterator[tuple[int, int]]:
    """Yield (start, end) half-open byte ranges covering ``[0, total_size)``.

    An empty file yields a single empty range ``(0, 0)`` so the session
    still receives one request.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if total_size == 0:
        yield 0, 0
        return
    for start in range(0, total_size, chunk_size):
        yield start, min(start + chunk_size, total_size)


def content_range(start: int, end: int, total_size: int) -> str:
    """Format the Content-Range header for the half-open range ``[start, end)``."""
    if total_size == 0:
        return "bytes */0"
    return f"bytes {start}-{end - 1}/{total_size}"


class ChunkedUploader:
    """Drives one upload session from first chunk to the final driveItem."""

    def __init__(
        self,
        graph_client: GraphClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the uploader.

        Args:
            graph_client: Transport used to PUT chunks to the session URL.
            chunk_size: Maximum bytes per chunk.
            max_retries: Retries per chunk on transient failures.
            sleep: Backoff sleep override, used by tests.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._graph = graph_client
        self._chunk_size = chunk_size
        self._max_retries = max_retries
        self._sleep = sleep

    def upload(self, session: UploadSession, data: bytes) -> RemoteItem:
        """Send ``data`` through ``session`` and return the completed item.

        Args:
            session: Fresh session (state SESSION_PENDING) sized for ``data``.
            data: Entire file content.

        Returns:
            The RemoteItem reported by the completing chunk response.

        Raises:
            ProtocolError: On a non-2xx chunk response or if the last chunk
                does not finalize the upload.
            NetworkError: If a chunk keeps failing at the transport level.
            AuthError: If the session URL is rejected with 401.
        """
        if session.total_size != len(data):
            raise ProtocolError(
                f"session size {session.total_size} does not match data size {len(data)}"
            )
        try:
            session.transition(UploadState.UPLOADING)
            for start, end in chunk_ranges(session.total_size, self._chunk_size):
                response = self._put_chunk(session, data, start, end)
                session.advance(end)
                body = response.json()
                if FIELD_ID in body:
                    if end < session.total_size:
                        logger.warning(
                            "[upload] server finalized before last chunk; offset:%d;total:%d",
                            end,
                            session.total_size,
                        )
                    session.transition(UploadState.COMPLETED)
                    return RemoteItem.from_graph(body)
                session.transition(UploadState.UPLOADING)
            raise ProtocolError("upload did not finalize")
        except Exception:
            if session.state is not UploadState.COMPLETED:
                session.transition(UploadState.FAILED)
            raise

    def _put_chunk(
        self, session: UploadSession, data: bytes, start: int, end: int
    ) -> GraphResponse:
        header = content_range(start, end, session.total_size)
        logger.debug("[_put_chunk] sending chunk; range:%s", header)

        def send() -> GraphResponse:
            return self._graph.put_bytes(
                session.upload_url, data[start:end], {"Content-Range": header}
            )

        return retry_with_backoff(send, max_retries=self._max_retries, sleep=self._sleep)
