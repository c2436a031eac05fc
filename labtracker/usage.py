from labtracker.models import db, Subscription, UsageTracking, utcnow
from labtracker.config import TIER_ITEM_LIMITS
from labtracker import repository
from datetime import datetime
import logging
import math

logger = logging.getLogger(__name__)


def current_period_start(now=None):
    now = now or utcnow()
    return datetime(now.year, now.month, 1)


def next_period_start(period_start):
    if period_start.month == 12:
        return datetime(period_start.year + 1, 1, 1)
    return datetime(period_start.year, period_start.month + 1, 1)


class UsageSummary:
    """Subscription limit vs. items sent in the current period"""

    def __init__(self, subscription, usage, now=None):
        self.subscription = subscription
        self.usage = usage
        self.now = now or utcnow()

    @property
    def limit(self):
        return self.subscription.monthly_item_limit if self.subscription else 0

    @property
    def used(self):
        return self.usage.items_sent_this_month if self.usage else 0

    def can_send_items(self, item_count):
        if not self.subscription or not self.usage:
            return False
        return self.limit - self.used >= item_count

    def remaining_items(self):
        if not self.subscription or not self.usage:
            return 0
        return max(0, self.limit - self.used)

    def usage_percentage(self):
        # Not capped: going over the limit reads as more than 100
        if not self.subscription or not self.usage:
            return 0.0
        if self.limit == 0:
            return 0.0 if self.used == 0 else math.inf
        return self.used / self.limit * 100

    def days_until_reset(self):
        if not self.subscription:
            return 0
        diff = self.subscription.current_period_end - self.now
        return math.ceil(diff.total_seconds() / 86400)

    def usage_level(self):
        pct = self.usage_percentage()
        if pct >= 90:
            return "critical"
        if pct >= 70:
            return "warning"
        return "normal"

    def should_prompt_upgrade(self):
        return self.usage_percentage() >= 80

    def to_dict(self):
        pct = self.usage_percentage()
        return {
            "subscription": self.subscription.to_dict() if self.subscription else None,
            "usage": self.usage.to_dict() if self.usage else None,
            "remaining_items": self.remaining_items(),
            "usage_percentage": round(pct, 2) if math.isfinite(pct) else None,
            "days_until_reset": self.days_until_reset(),
            "usage_level": self.usage_level(),
            "prompt_upgrade": self.should_prompt_upgrade(),
        }


def load_usage_summary(user_id, now=None):
    now = now or utcnow()
    subscription = None
    usage = None
    try:
        subscription = repository.get_subscription(user_id)
    except Exception as e:
        logger.error(f"Error fetching subscription for {user_id}: {e}")
        db.session.rollback()
    try:
        usage = repository.get_current_usage(user_id, current_period_start(now))
    except Exception as e:
        logger.error(f"Error fetching usage for {user_id}: {e}")
        db.session.rollback()
    return UsageSummary(subscription, usage, now)


def track_usage(user_id, item_count, now=None):
    """Add `item_count` to this month's usage record, creating it if missing.

    Read-then-write without a lock: two concurrent calls for the same user
    can both create a record or overwrite each other's increment.
    """
    now = now or utcnow()
    month = current_period_start(now)
    usage = repository.get_current_usage(user_id, month)
    try:
        if usage:
            usage.items_sent_this_month = usage.items_sent_this_month + item_count
            usage.updated_at = now
            logger.info(f"Updated usage for user {user_id}: {usage.items_sent_this_month} total items")
        else:
            usage = UsageTracking(
                user_id=user_id,
                items_sent_this_month=item_count,
                period_start=month,
                period_end=next_period_start(month),
            )
            db.session.add(usage)
            logger.info(f"Created new usage record for user {user_id}: {item_count} items")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return usage


def create_subscription(user_id, tier="free", monthly_item_limit=None, now=None):
    now = now or utcnow()
    start = current_period_start(now)
    if monthly_item_limit is None:
        monthly_item_limit = TIER_ITEM_LIMITS.get(tier, TIER_ITEM_LIMITS["free"])
    subscription = Subscription(
        user_id=user_id,
        tier=tier,
        monthly_item_limit=monthly_item_limit,
        is_active=True,
        current_period_start=start,
        current_period_end=next_period_start(start),
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def get_monthly_usage_summary(user_id, year=None):
    """Get usage for a user for all months in a year"""
    if year is None:
        year = utcnow().year

    summary = []
    for month in range(1, 13):
        month_start = datetime(year, month, 1)
        usage = UsageTracking.query.filter_by(
            user_id=user_id,
            period_start=month_start
        ).first()

        if usage:
            summary.append({
                "month": month_start.strftime("%Y-%m"),
                "items_sent": usage.items_sent_this_month,
            })

    return summary
