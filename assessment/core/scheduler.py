import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from assessment.core.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def expire_overdue_attempts():
    from assessment.services.exam_attempt import attempt_engine

    try:
        expired = await attempt_engine.expire_overdue()
        if expired:
            logger.info(f"Expiry sweep finalized {expired} overdue attempts")
    except Exception as e:
        logger.error(f"Error expiring overdue attempts: {e}")


async def rescore_flagged_attempts():
    from assessment.services.exam_attempt import attempt_engine

    try:
        rescored = await attempt_engine.rescore_pending()
        if rescored:
            logger.info(f"Rescore sweep scored attempts {rescored}")
    except Exception as e:
        logger.error(f"Error rescoring flagged attempts: {e}")


def start_scheduler():
    if settings.TESTING:
        logger.info("Scheduler disabled in test environment")
        return

    if not scheduler.running:
        scheduler.add_job(
            expire_overdue_attempts,
            'interval',
            seconds=settings.EXPIRY_SWEEP_SECONDS,
            id='expire_overdue_attempts',
            name='Expire Overdue Exam Attempts',
            replace_existing=True
        )
        scheduler.add_job(
            rescore_flagged_attempts,
            'interval',
            seconds=settings.RESCORE_SWEEP_SECONDS,
            id='rescore_flagged_attempts',
            name='Rescore Flagged Exam Attempts',
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started with expiry and rescore sweeps")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
