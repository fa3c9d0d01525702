"""
Owner payout job.

Runs once a day (settings.payout_cron_hour, UTC) and pays each owner the net
of their unsettled captures and refunds. See PayoutService for the rules.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict
from uuid import uuid4

from salonbook.jobs.scheduler import SchedulerManager, with_advisory_lock
from salonbook.lib.db import SessionLocal
from salonbook.lib.logging import get_logger, set_correlation_id
from salonbook.lib.settings import settings
from salonbook.models.payouts import PayoutStatus
from salonbook.services.payout_service import PayoutService

logger = get_logger(__name__)

PAYOUT_JOB_ID = "owner_payouts"


@with_advisory_lock(PAYOUT_JOB_ID)
def run_owner_payouts_job() -> Dict[str, Any]:
    """
    Run one payout cycle.

    Returns:
        {"correlation_id", "started_at", "finished_at", "processed", "failed", "total_amount"}
    """
    correlation_id = str(uuid4())
    set_correlation_id(correlation_id)
    started_at = datetime.now(timezone.utc)
    logger.info("Starting owner payout run")

    session = SessionLocal()
    try:
        payouts = PayoutService(session).run_owner_payouts()
    finally:
        session.close()
        set_correlation_id(None)

    processed = [p for p in payouts if p.status == PayoutStatus.PROCESSED]
    return {
        "correlation_id": correlation_id,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc),
        "processed": len(processed),
        "failed": len(payouts) - len(processed),
        "total_amount": sum((p.amount for p in processed), Decimal("0")),
    }


def register_payout_job(scheduler: SchedulerManager) -> None:
    """Schedule the daily payout run."""
    scheduler.add_cron_job(
        run_owner_payouts_job,
        job_id=PAYOUT_JOB_ID,
        hour=settings.payout_cron_hour,
        minute=0,
    )
