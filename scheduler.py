import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select

from config import get_settings
from database import session_scope
from models import FundAllocation
from periods import current_month
from services import CategoryBalanceService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def resync_all_users(source: str = "manual") -> int:
    """Re-derive the current month's cached balances for every configured user."""
    month = current_month()
    with session_scope() as session:
        user_ids = session.scalars(select(FundAllocation.user_id)).all()
    synced = 0
    for user_id in user_ids:
        try:
            with session_scope() as session:
                CategoryBalanceService(session, user_id).sync_month(month)
            synced += 1
        except ValueError:
            logger.exception(
                f"scheduler_run: source={source} user_id={user_id} sync failed"
            )
    return synced


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        count = resync_all_users(source)
        logger.info(f"scheduler_run: source={source} users_synced={count}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(day=1, hour=0, minute=5)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["monthly_rollover"],
            id="balances_monthly",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=6)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["resync_safety_net"],
            id="balances_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with monthly rollover and 6-hourly resync")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
