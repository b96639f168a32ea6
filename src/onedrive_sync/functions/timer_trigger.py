"""Timer trigger blueprint — scheduled entry point for periodic sync passes."""

import logging

import azure.functions as func

from onedrive_sync.orchestration.runtime import get_runtime
from onedrive_sync.orchestration.syncer import SyncOutcome

logger = logging.getLogger(__name__)

bp = func.Blueprint()


# NCRONTAB expression resolved by the Functions host from the ODS_SYNC_SCHEDULE
# app setting, e.g. "0 */5 * * * *" for every 5 minutes.
SYNC_SCHEDULE = "%ODS_SYNC_SCHEDULE%"


@bp.timer_trigger(
    schedule=SYNC_SCHEDULE,
    arg_name="timer",
    run_on_startup=False,
)
def sync_timer(timer: func.TimerRequest) -> None:
    """Scheduled trigger that pushes the local root to OneDrive.

    Runs on the ODS_SYNC_SCHEDULE app setting. Overlapping runs coalesce
    in the orchestrator.
    """
    logger.info("Timer trigger fired")

    try:
        if timer.past_due:
            logger.warning("Timer trigger is past due")

        report = get_runtime().orchestrator.sync()
        if report.outcome is SyncOutcome.UNAUTHENTICATED:
            logger.warning("Sync skipped — not connected to OneDrive")
        for failure in report.errors:
            logger.warning("Sync failure: %s (%s)", failure.remote_relative_path, failure.message)
        logger.info(
            "Sync finished — outcome %s, %d file(s) uploaded",
            report.outcome.value,
            report.files_uploaded,
        )

    except Exception:
        logger.exception("Timer trigger failed")
        raise
