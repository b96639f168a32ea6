"""Unit tests for orchestration/syncer.py — sync passes, failure handling and coalescing."""

import threading
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from onedrive_sync.errors import AuthError, NetworkError, ProtocolError
from onedrive_sync.graph.models import RemoteItem
from onedrive_sync.orchestration.status import StatusMonitor, SyncStatus
from onedrive_sync.orchestration.syncer import (
    SyncFailure,
    SyncJob,
    SyncOrchestrator,
    SyncOutcome,
    SyncReport,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingUploader:
    """Stores uploads in memory, optionally failing for chosen paths."""

    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.remote: dict[str, bytes] = {}
        self.calls: list[str] = []
        self._failures = failures or {}

    def upload(self, relative_path: str, data: bytes) -> RemoteItem:
        self.calls.append(relative_path)
        if relative_path in self._failures:
            raise self._failures[relative_path]
        self.remote[relative_path] = data
        return RemoteItem(
            id=f"id-{relative_path}",
            name=relative_path.rsplit("/", 1)[-1],
            path=relative_path,
            size=len(data),
            is_folder=False,
        )


class BlockingUploader(RecordingUploader):
    """Blocks the first upload until released, tracking concurrent calls."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def upload(self, relative_path: str, data: bytes) -> RemoteItem:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.started.set()
            assert self.release.wait(timeout=5)
            return super().upload(relative_path, data)
        finally:
            with self._lock:
                self.active -= 1


class FailOnceBlockingUploader(BlockingUploader):
    """Blocks the first upload, then fails it with an unexpected error."""

    def __init__(self) -> None:
        super().__init__()
        self._failed = False

    def upload(self, relative_path: str, data: bytes) -> RemoteItem:
        if not self._failed:
            self._failed = True
            self.calls.append(relative_path)
            self.started.set()
            assert self.release.wait(timeout=5)
            raise RuntimeError("unexpected")
        return super().upload(relative_path, data)


def _make_tree(root: Path) -> Path:
    (root / "sub").mkdir(parents=True)
    (root / "a.md").write_bytes(b"alpha")
    (root / "sub" / "b.md").write_bytes(b"beta")
    (root / "empty").mkdir()
    return root


def _make_orchestrator(
    root: Path, uploader: RecordingUploader, authenticated: bool = True
) -> SyncOrchestrator:
    auth = SimpleNamespace(is_authenticated=authenticated)
    return SyncOrchestrator(authenticator=auth, uploader=uploader, local_root=root)


# ---------------------------------------------------------------------------
# build_jobs tests
# ---------------------------------------------------------------------------


class TestBuildJobs:
    def test_maps_files_to_relative_remote_paths(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "MyLocalVault")
        orchestrator = _make_orchestrator(root, RecordingUploader())

        jobs = orchestrator.build_jobs()

        assert jobs == [
            SyncJob(local_path=root / "a.md", remote_relative_path="a.md", size_bytes=5),
            SyncJob(local_path=root / "sub" / "b.md", remote_relative_path="sub/b.md", size_bytes=4),
        ]


# ---------------------------------------------------------------------------
# sync() tests
# ---------------------------------------------------------------------------


class TestSync:
    def test_uploads_every_file(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = RecordingUploader()
        orchestrator = _make_orchestrator(root, uploader)

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.COMPLETED
        assert report.files_uploaded == 2
        assert report.errors == []
        assert uploader.remote == {"a.md": b"alpha", "sub/b.md": b"beta"}
        assert [item.id for item in report.uploaded_items] == ["id-a.md", "id-sub/b.md"]
        assert orchestrator.status.value is SyncStatus.IDLE

    def test_unauthenticated_makes_no_remote_calls(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = MagicMock()
        orchestrator = SyncOrchestrator(
            authenticator=SimpleNamespace(is_authenticated=False),
            uploader=uploader,
            local_root=root,
        )

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.UNAUTHENTICATED
        assert report.files_uploaded == 0
        uploader.upload.assert_not_called()
        assert orchestrator.status.value is SyncStatus.UNAUTHENTICATED

    def test_missing_local_root_fails_pass(self, tmp_path: Path) -> None:
        uploader = RecordingUploader()
        orchestrator = _make_orchestrator(tmp_path / "missing", uploader)

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.FAILED
        assert report.errors[0].remote_relative_path == ""
        assert "does not exist" in report.errors[0].message
        assert uploader.calls == []
        assert orchestrator.status.value is SyncStatus.ERROR

    def test_empty_root_completes_with_zero_uploads(self, tmp_path: Path) -> None:
        orchestrator = _make_orchestrator(tmp_path, RecordingUploader())

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.COMPLETED
        assert report.files_uploaded == 0

    @pytest.mark.parametrize(
        "error", [ProtocolError("Bad Request", 400), NetworkError("reset"), ProtocolError("shape")]
    )
    def test_per_file_failure_does_not_stop_pass(self, tmp_path: Path, error: Exception) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = RecordingUploader(failures={"a.md": error})
        orchestrator = _make_orchestrator(root, uploader)

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.PARTIAL
        assert report.files_uploaded == 1
        assert report.errors == [SyncFailure("a.md", str(error))]
        assert uploader.remote == {"sub/b.md": b"beta"}
        assert orchestrator.status.value is SyncStatus.ERROR

    def test_auth_error_aborts_remaining_uploads(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = RecordingUploader(failures={"a.md": AuthError("refresh token revoked")})
        orchestrator = _make_orchestrator(root, uploader)

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.FAILED
        assert uploader.calls == ["a.md"]
        assert report.errors == [SyncFailure("a.md", "refresh token revoked")]
        assert orchestrator.status.value is SyncStatus.UNAUTHENTICATED

    def test_repeated_sync_is_idempotent(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = RecordingUploader()
        orchestrator = _make_orchestrator(root, uploader)

        first = orchestrator.sync()
        snapshot = dict(uploader.remote)
        second = orchestrator.sync()

        assert first.files_uploaded == second.files_uploaded == 2
        assert uploader.remote == snapshot

    def test_status_transitions_are_published(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        status = StatusMonitor()
        seen: list[SyncStatus] = []
        status.subscribe(seen.append)
        orchestrator = SyncOrchestrator(
            authenticator=SimpleNamespace(is_authenticated=True),
            uploader=RecordingUploader(),
            local_root=root,
            status=status,
        )

        orchestrator.sync()

        assert seen == [SyncStatus.SYNCING, SyncStatus.IDLE]

    def test_unexpected_error_fails_pass_and_sets_error_status(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        uploader = RecordingUploader(failures={"a.md": RuntimeError("unexpected")})
        orchestrator = _make_orchestrator(root, uploader)

        report = orchestrator.sync()

        assert report.outcome is SyncOutcome.FAILED
        assert report.errors == [SyncFailure("", "unexpected")]
        assert orchestrator.status.value is SyncStatus.ERROR

        uploader._failures.clear()
        assert orchestrator.sync().outcome is SyncOutcome.COMPLETED
        assert orchestrator.status.value is SyncStatus.IDLE

    def test_file_vanishing_during_scan_is_skipped(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        vanished = MagicMock()
        vanished.name = "gone.md"
        vanished.path = str(root / "gone.md")
        vanished.is_symlink.return_value = False
        vanished.is_dir.return_value = False
        vanished.is_file.return_value = True
        vanished.stat.side_effect = FileNotFoundError("gone.md")
        uploader = RecordingUploader()
        orchestrator = _make_orchestrator(root, uploader)

        with patch("onedrive_sync.local.walker.os.scandir") as mock_scandir:
            mock_scandir.return_value.__enter__.return_value = [vanished]
            report = orchestrator.sync()

        assert report.outcome is SyncOutcome.COMPLETED
        assert report.files_uploaded == 0
        assert orchestrator.status.value is SyncStatus.IDLE


# ---------------------------------------------------------------------------
# Coalescing tests
# ---------------------------------------------------------------------------


class TestCoalescing:
    def test_concurrent_calls_coalesce_into_one_follow_up_pass(self, tmp_path: Path) -> None:
        root = tmp_path / "vault"
        root.mkdir()
        (root / "a.md").write_bytes(b"alpha")
        uploader = BlockingUploader()
        orchestrator = _make_orchestrator(root, uploader)
        results: list[SyncReport] = []

        worker = threading.Thread(target=lambda: results.append(orchestrator.sync()))
        worker.start()
        assert uploader.started.wait(timeout=5)

        assert orchestrator.status.value is SyncStatus.SYNCING
        second = orchestrator.sync()
        third = orchestrator.sync()
        uploader.release.set()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert second.outcome is SyncOutcome.COALESCED
        assert third.outcome is SyncOutcome.COALESCED
        # One pass plus exactly one follow-up, never overlapping.
        assert uploader.calls == ["a.md", "a.md"]
        assert uploader.max_active == 1
        assert results[0].outcome is SyncOutcome.COMPLETED

    def test_follow_up_pass_still_runs_after_failed_pass(self, tmp_path: Path) -> None:
        root = tmp_path / "vault"
        root.mkdir()
        (root / "a.md").write_bytes(b"alpha")
        uploader = FailOnceBlockingUploader()
        orchestrator = _make_orchestrator(root, uploader)
        results: list[SyncReport] = []

        worker = threading.Thread(target=lambda: results.append(orchestrator.sync()))
        worker.start()
        assert uploader.started.wait(timeout=5)

        assert orchestrator.sync().outcome is SyncOutcome.COALESCED
        uploader.release.set()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert uploader.calls == ["a.md", "a.md"]
        assert results[0].outcome is SyncOutcome.COMPLETED
        assert uploader.remote == {"a.md": b"alpha"}
        assert orchestrator.status.value is SyncStatus.IDLE

    def test_sync_after_pass_finishes_runs_normally(self, tmp_path: Path) -> None:
        root = _make_tree(tmp_path / "vault")
        orchestrator = _make_orchestrator(root, RecordingUploader())

        orchestrator.sync()

        assert orchestrator.sync().outcome is SyncOutcome.COMPLETED


class TestSyncReport:
    def test_to_dict(self) -> None:
        report = SyncReport(
            outcome=SyncOutcome.PARTIAL,
            files_uploaded=3,
            errors=[SyncFailure("a.md", "Graph API error 400: Bad Request")],
        )

        assert report.to_dict() == {
            "outcome": "partial",
            "files_uploaded": 3,
            "errors": [{"path": "a.md", "message": "Graph API error 400: Bad Request"}],
        }
