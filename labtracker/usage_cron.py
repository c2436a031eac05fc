# usage_cron.py
import schedule
import time
from labtracker.models import db, Subscription, utcnow
from labtracker.usage import current_period_start, next_period_start
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def roll_subscription_periods(now=None):
    """Move expired billing periods of active subscriptions to the current month"""
    now = now or utcnow()
    start = current_period_start(now)
    end = next_period_start(start)

    expired = (
        Subscription.query
        .filter(Subscription.is_active.is_(True))
        .filter(Subscription.current_period_end <= now)
        .all()
    )
    try:
        for subscription in expired:
            subscription.current_period_start = start
            subscription.current_period_end = end
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to roll subscription periods: {e}")
        raise

    logger.info(f"Rolled {len(expired)} subscriptions to {start.strftime('%Y-%m')}")
    return len(expired)


def run_job():
    from labtracker import app
    with app.app_context():
        try:
            roll_subscription_periods()
        except Exception as e:
            logger.error(f"Subscription rollover job failed: {e}")


if __name__ == "__main__":
    # Ejecutar inmediatamente, luego una vez al dia
    run_job()

    schedule.every().day.at("00:05").do(run_job)

    while True:
        schedule.run_pending()
        time.sleep(60)
