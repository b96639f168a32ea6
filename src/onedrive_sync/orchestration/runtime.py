"""Process-wide wiring of the credential store, token manager and orchestrator."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from onedrive_sync.auth.store import CredentialStore, credential_store_from_config
from onedrive_sync.auth.tokens import TokenManager, token_manager_from_config
from onedrive_sync.config import load_config
from onedrive_sync.graph.client import graph_client_from_config
from onedrive_sync.graph.drive import DriveClient, drive_client_from_config
from onedrive_sync.orchestration.syncer import SyncOrchestrator

if TYPE_CHECKING:
    from onedrive_sync.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncRuntime:
    """The collaborators shared by every trigger in one host process."""

    store: CredentialStore
    tokens: TokenManager
    drive: DriveClient
    orchestrator: SyncOrchestrator


def sync_runtime_from_config(config: AppConfig) -> SyncRuntime:
    """Construct a SyncRuntime from application configuration.

    Loads the persisted credential, then wires the token manager (saving
    back to the same store), the Graph and drive clients and the
    orchestrator.

    Args:
        config: Application configuration instance.

    Returns:
        Configured SyncRuntime instance.
    """
    store = credential_store_from_config(config)
    tokens = token_manager_from_config(config, credential=store.load(), save_hook=store.save)
    drive = drive_client_from_config(graph_client_from_config(config, tokens), config)
    orchestrator = SyncOrchestrator(
        authenticator=tokens,
        uploader=drive,
        local_root=config.local_root,
    )
    return SyncRuntime(store=store, tokens=tokens, drive=drive, orchestrator=orchestrator)


_runtime: SyncRuntime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> SyncRuntime:
    """Return the process-wide runtime, creating it from the environment on first use.

    Sharing one orchestrator is what makes overlapping timer and HTTP
    triggers coalesce instead of running concurrent passes.
    """
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            logger.info("[get_runtime] creating sync runtime")
            _runtime = sync_runtime_from_config(load_config())
        return _runtime


def reset_runtime() -> None:
    """Drop the cached runtime so the next get_runtime() rebuilds it."""
    global _runtime
    with _runtime_lock:
        _runtime = None
