from datetime import UTC, datetime
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from recordmatch.config import Settings
from recordmatch.pipeline import ReconciliationRunner


logger = logging.getLogger(__name__)


def scheduled_run_key(now: datetime) -> str:
    return f"scheduled-{now.date().isoformat()}"


def _run_daily_reconciliation(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    run_key = scheduled_run_key(datetime.now(UTC))

    runner = ReconciliationRunner(settings, session_factory)
    result = runner.run(run_key=run_key, trigger_source="scheduled")
    extra = {
        "run_key": result.run_key,
        "status": result.status,
        "validation_status": result.validation_status,
        "reused_existing_run": result.reused_existing_run,
    }
    if result.status == "failed":
        logger.error("scheduled reconciliation failed", extra={**extra, "error": result.error})
        return
    if result.validation_status == "failed":
        logger.warning("scheduled reconciliation found mismatches", extra=extra)
        return
    logger.info("scheduled reconciliation completed", extra=extra)


def build_scheduler(settings: Settings, session_factory: sessionmaker[Session]) -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_daily_reconciliation,
        "cron",
        args=[settings, session_factory],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_reconciliation",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = build_scheduler(settings, session_factory)

    logger.info(
        "scheduler started",
        extra={
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        _run_daily_reconciliation(settings, session_factory)

    scheduler.start()
