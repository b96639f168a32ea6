"""Sync orchestrator — walks the local root and pushes every file to OneDrive."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from onedrive_sync.errors import AuthError, LocalFSError, NetworkError, ProtocolError
from onedrive_sync.local.walker import enumerate_files, relative_to_root
from onedrive_sync.orchestration.status import StatusMonitor, SyncStatus

if TYPE_CHECKING:
    from onedrive_sync.graph.models import RemoteItem

logger = logging.getLogger(__name__)


class Authenticator(Protocol):
    @property
    def is_authenticated(self) -> bool: ...


class Uploader(Protocol):
    def upload(self, relative_path: str, data: bytes) -> RemoteItem: ...


class SyncOutcome(str, Enum):
    """How a call to SyncOrchestrator.sync() ended."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    UNAUTHENTICATED = "unauthenticated"
    COALESCED = "coalesced"


@dataclass(frozen=True)
class SyncJob:
    """One local file to push during a pass."""

    local_path: Path
    remote_relative_path: str
    size_bytes: int


@dataclass(frozen=True)
class SyncFailure:
    """A file (or the pass as a whole, with an empty path) that failed."""

    remote_relative_path: str
    message: str


@dataclass
class SyncReport:
    """Summary of one sync() call.

    Attributes:
        outcome: How the call ended.
        files_uploaded: Number of files confirmed by the remote.
        errors: Per-file (or pass-level) failures.
        uploaded_items: Remote items returned by successful uploads.
    """

    outcome: SyncOutcome
    files_uploaded: int = 0
    errors: list[SyncFailure] = field(default_factory=list)
    uploaded_items: list[RemoteItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "files_uploaded": self.files_uploaded,
            "errors": [
                {"path": failure.remote_relative_path, "message": failure.message}
                for failure in self.errors
            ],
        }


class SyncOrchestrator:
    """Drives one-way sync passes from a local root to the remote base folder.

    Only one pass runs at a time. A sync() call made while a pass is in
    flight returns a COALESCED report at once and causes exactly one
    follow-up pass after the running one, however many calls were made.
    """

    def __init__(
        self,
        authenticator: Authenticator,
        uploader: Uploader,
        local_root: str | Path,
        status: StatusMonitor | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            authenticator: Token manager consulted before any remote call.
            uploader: Drive client performing the uploads.
            local_root: Local directory mirrored to the remote base folder.
            status: Status monitor to publish to; a new one is created if omitted.
        """
        self._auth = authenticator
        self._uploader = uploader
        self._local_root = Path(local_root)
        self.status = status or StatusMonitor()
        self._guard = threading.Lock()
        self._running = False
        self._pending = False

    def build_jobs(self) -> list[SyncJob]:
        """Enumerate the local root into a fresh job list.

        Raises:
            LocalFSError: If the local root is missing or unreadable.
        """
        return [
            SyncJob(
                local_path=entry.path,
                remote_relative_path=relative_to_root(entry.path, self._local_root),
                size_bytes=entry.size_bytes,
            )
            for entry in enumerate_files(self._local_root)
        ]

    def sync(self) -> SyncReport:
        """Run a sync pass, or coalesce into the one already running.

        Failures outside the per-file error types end the pass with a
        FAILED report and status ERROR; a coalesced follow-up still runs.

        Returns:
            The report of the last pass run by this call, or a COALESCED
            report if another call was already running a pass.
        """
        with self._guard:
            if self._running:
                self._pending = True
                logger.info("[sync] pass already running; follow-up pass scheduled")
                return SyncReport(outcome=SyncOutcome.COALESCED)
            self._running = True

        try:
            while True:
                try:
                    report = self._run_pass()
                except Exception as exc:
                    logger.error("[sync] sync pass failed unexpectedly; error:%s", exc, exc_info=True)
                    self.status.set(SyncStatus.ERROR)
                    report = SyncReport(
                        outcome=SyncOutcome.FAILED, errors=[SyncFailure("", str(exc))]
                    )
                with self._guard:
                    if not self._pending:
                        self._running = False
                        return report
                    self._pending = False
                logger.info("[sync] running coalesced follow-up pass")
        except BaseException:
            with self._guard:
                self._running = False
            raise

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run_pass(self) -> SyncReport:
        if not self._auth.is_authenticated:
            logger.warning("[_run_pass] not authenticated; skipping pass")
            self.status.set(SyncStatus.UNAUTHENTICATED)
            return SyncReport(outcome=SyncOutcome.UNAUTHENTICATED)

        self.status.set(SyncStatus.SYNCING)
        logger.info("[_run_pass] starting sync pass; local_root:%s", self._local_root)

        try:
            jobs = self.build_jobs()
        except LocalFSError as exc:
            logger.error("[_run_pass] cannot enumerate local root; error:%s", exc)
            self.status.set(SyncStatus.ERROR)
            return SyncReport(outcome=SyncOutcome.FAILED, errors=[SyncFailure("", str(exc))])

        report = SyncReport(outcome=SyncOutcome.COMPLETED)
        for job in jobs:
            try:
                item = self._uploader.upload(job.remote_relative_path, self._read(job))
            except AuthError as exc:
                # Every remaining upload would fail the same way.
                logger.error(
                    "[_run_pass] authentication failed; aborting pass; path:%s;error:%s",
                    job.remote_relative_path,
                    exc,
                )
                report.errors.append(SyncFailure(job.remote_relative_path, str(exc)))
                report.outcome = SyncOutcome.FAILED
                self.status.set(SyncStatus.UNAUTHENTICATED)
                return report
            except (ProtocolError, NetworkError, LocalFSError) as exc:
                logger.error(
                    "[_run_pass] file failed; path:%s;error:%s", job.remote_relative_path, exc
                )
                report.errors.append(SyncFailure(job.remote_relative_path, str(exc)))
                continue
            report.files_uploaded += 1
            report.uploaded_items.append(item)

        if report.errors:
            report.outcome = SyncOutcome.PARTIAL
            self.status.set(SyncStatus.ERROR)
        else:
            self.status.set(SyncStatus.IDLE)
        logger.info(
            "[_run_pass] sync pass complete; job_count:%d;uploaded:%d;failed:%d",
            len(jobs),
            report.files_uploaded,
            len(report.errors),
        )
        return report

    @staticmethod
    def _read(job: SyncJob) -> bytes:
        try:
            return job.local_path.read_bytes()
        except OSError as exc:
            raise LocalFSError(f"cannot read {job.local_path}: {exc}") from exc
