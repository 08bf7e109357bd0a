import logging
from datetime import datetime
from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session
from kb_pipeline.models import VectorizationSchedule, utcnow
from kb_pipeline.utils import as_utc

logger = logging.getLogger(__name__)

AUTO_SCHEDULES = [
    "daily-auto-vectorization",
    "weekly-auto-vectorization",
    "monthly-auto-vectorization",
]

PERIODS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
}

DEFAULT_RUN_HOUR = 2


def schedule_period(schedule_name: str | None) -> str:
    for period in PERIODS:
        if schedule_name and schedule_name.startswith(period):
            return period
    return "weekly"


def compute_next_run(current_next: datetime | None, period: str, now: datetime) -> datetime:
    """
    Advance a schedule's next run by whole periods until it is after now.

    An unset next run starts from 02:00 UTC today.
    """
    now = as_utc(now)
    if current_next is None:
        next_run = now.replace(hour=DEFAULT_RUN_HOUR, minute=0, second=0, microsecond=0)
    else:
        next_run = as_utc(current_next)

    step = PERIODS[period]
    while next_run <= now:
        next_run = next_run + step
    return next_run


def record_scheduled_run(
    db: Session,
    processed: int,
    failed: int,
    remaining: int,
    now: datetime | None = None
) -> VectorizationSchedule | None:
    """Update the most recently touched auto schedule after a vectorization run."""
    now = now or utcnow()
    try:
        schedule = (
            db.query(VectorizationSchedule)
            .filter(VectorizationSchedule.schedule_name.in_(AUTO_SCHEDULES))
            .order_by(VectorizationSchedule.updated_at.desc())
            .first()
        )
        if schedule is None:
            logger.warning("[SCHEDULE] No auto-vectorization schedule to update")
            return None

        period = schedule_period(schedule.schedule_name)
        schedule.last_run_at = now
        schedule.articles_processed = processed
        schedule.articles_failed = failed
        schedule.status = "running" if remaining > 0 else "active"
        schedule.next_run_at = compute_next_run(schedule.next_run_at, period, now)
        schedule.updated_at = now
        db.commit()

        logger.info(
            f"[SCHEDULE] Updated {schedule.schedule_name}: next run {schedule.next_run_at.isoformat()}"
        )
        return schedule

    except Exception as e:
        db.rollback()
        logger.error(f"[SCHEDULE] Failed to update schedule tracking: {e}")
        return None


def list_schedules(db: Session) -> list[VectorizationSchedule]:
    return db.query(VectorizationSchedule).order_by(VectorizationSchedule.schedule_name).all()


def seed_schedules(db: Session, names: list[str] = AUTO_SCHEDULES) -> int:
    """Create any missing schedule rows. Returns how many were created."""
    existing = {row.schedule_name for row in db.query(VectorizationSchedule.schedule_name).all()}
    now = utcnow()
    created = 0

    for name in names:
        if name in existing:
            continue
        db.add(VectorizationSchedule(
            schedule_name=name,
            next_run_at=compute_next_run(None, schedule_period(name), now),
            status="active",
        ))
        created += 1

    db.commit()
    if created:
        logger.info(f"[SCHEDULE] Seeded {created} schedules")
    return created
