"""Data models for Microsoft Graph drive items and upload sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from onedrive_sync.errors import ProtocolError

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_SIZE = "size"
FIELD_FOLDER = "folder"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_PATH = "path"
FIELD_UPLOAD_URL = "uploadUrl"
FIELD_DOWNLOAD_URL = "@microsoft.graph.downloadUrl"
FIELD_CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"


@dataclass(frozen=True)
class RemoteItem:
    """A file or folder in OneDrive, as returned by list and upload calls."""

    id: str
    name: str
    path: str
    size: int
    is_folder: bool

    @classmethod
    def from_graph(cls, raw: dict[str, Any]) -> RemoteItem:
        """Map a raw Graph driveItem dict to a RemoteItem."""
        name = raw.get(FIELD_NAME, "")
        parent_path = raw.get(FIELD_PARENT_REFERENCE, {}).get(FIELD_PATH, "")
        return cls(
            id=raw.get(FIELD_ID, ""),
            name=name,
            path=f"{parent_path}/{name}" if parent_path else name,
            size=int(raw.get(FIELD_SIZE, 0)),
            is_folder=FIELD_FOLDER in raw,
        )


class UploadState(str, Enum):
    """Lifecycle of a single upload session."""

    SESSION_PENDING = "session_pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.SESSION_PENDING: frozenset({UploadState.UPLOADING, UploadState.FAILED}),
    UploadState.UPLOADING: frozenset(
        {UploadState.UPLOADING, UploadState.COMPLETED, UploadState.FAILED}
    ),
    UploadState.COMPLETED: frozenset(),
    UploadState.FAILED: frozenset(),
}


@dataclass
class UploadSession:
    """A server-assigned upload URL and the progress made against it.

    Attributes:
        upload_url: Pre-authenticated URL chunks are PUT to.
        total_size: Declared size of the whole file in bytes.
        next_offset: First byte not yet accepted by the server.
        state: Current lifecycle state; only moves forward.
    """

    upload_url: str
    total_size: int
    next_offset: int = 0
    state: UploadState = UploadState.SESSION_PENDING

    def transition(self, new_state: UploadState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise ProtocolError(f"illegal upload transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def advance(self, end: int) -> None:
        """Record that bytes up to ``end`` (exclusive) have been accepted."""
        if end < self.next_offset or end > self.total_size:
            raise ProtocolError(
                f"upload offset out of range: {end} (next {self.next_offset}, total {self.total_size})"
            )
        self.next_offset = end
