from datetime import timedelta
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from caseintake.config import Settings
from caseintake.db_models import utc_now
from caseintake.import_store import find_stuck_imports


logger = logging.getLogger(__name__)


def report_stuck_imports(settings: Settings, session_factory: sessionmaker[Session]) -> int:
    now = utc_now()
    with session_factory() as db:
        stuck = find_stuck_imports(db, older_than=timedelta(minutes=settings.stuck_import_minutes), now=now)
        for record in stuck:
            # Reported only; status stays PROCESSING until an operator acts.
            logger.warning(
                "import stuck in processing",
                extra={
                    "import_id": record.id,
                    "import_filename": record.filename,
                    "created_by": record.created_by,
                    "age_minutes": int((now - record.created_at).total_seconds() // 60),
                },
            )
    if not stuck:
        logger.info("no stuck imports found")
    return len(stuck)


def start_monitor(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        report_stuck_imports,
        "interval",
        args=[settings, session_factory],
        minutes=settings.monitor_interval_minutes,
        id="stuck_import_monitor",
        replace_existing=True,
    )

    logger.info(
        "stuck import monitor started",
        extra={
            "interval_minutes": settings.monitor_interval_minutes,
            "stuck_after_minutes": settings.stuck_import_minutes,
        },
    )

    if run_now:
        report_stuck_imports(settings, session_factory)

    scheduler.start()
