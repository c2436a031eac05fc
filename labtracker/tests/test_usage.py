from datetime import datetime


from labtracker.models import Subscription, UsageTracking
from labtracker.usage import (
    UsageSummary, current_period_start, next_period_start, track_usage,
    create_subscription, get_monthly_usage_summary, load_usage_summary,
)
from labtracker.usage_cron import roll_subscription_periods

NOW = datetime(2026, 3, 15, 12, 0, 0)


def summary(limit=100, used=95, period_end=datetime(2026, 4, 1), now=NOW):
    subscription = Subscription(
        user_id="u1",
        tier="pro",
        monthly_item_limit=limit,
        current_period_start=datetime(2026, 3, 1),
        current_period_end=period_end,
    )
    usage = UsageTracking(user_id="u1", items_sent_this_month=used)
    return UsageSummary(subscription, usage, now)


def test_can_send_items_example():
    s = summary(limit=100, used=95)
    assert s.can_send_items(5) is True
    assert s.can_send_items(6) is False
    assert s.usage_percentage() == 95
    assert s.remaining_items() == 5


def test_missing_subscription_or_usage():
    s = summary()
    assert UsageSummary(None, s.usage, NOW).can_send_items(0) is False
    assert UsageSummary(s.subscription, None, NOW).can_send_items(0) is False
    assert UsageSummary(None, s.usage, NOW).usage_percentage() == 0
    assert UsageSummary(s.subscription, None, NOW).usage_percentage() == 0
    assert UsageSummary(s.subscription, None, NOW).remaining_items() == 0
    assert UsageSummary(None, None, NOW).days_until_reset() == 0


def test_percentage_is_not_capped():
    s = summary(limit=100, used=150)
    assert s.usage_percentage() == 150
    assert s.remaining_items() == 0
    assert s.can_send_items(0) is False


def test_days_until_reset_rounds_up():
    assert summary().days_until_reset() == 17
    assert summary(period_end=datetime(2026, 3, 15, 12, 0, 1)).days_until_reset() == 1
    # past the end and not yet rolled over
    assert summary(period_end=datetime(2026, 3, 13, 12, 0, 0)).days_until_reset() == -2


def test_usage_levels():
    assert summary(used=10).usage_level() == "normal"
    assert summary(used=70).usage_level() == "warning"
    assert summary(used=90).usage_level() == "critical"
    assert summary(used=80).should_prompt_upgrade()
    assert not summary(used=79).should_prompt_upgrade()


def test_period_bounds():
    assert current_period_start(NOW) == datetime(2026, 3, 1)
    assert next_period_start(datetime(2026, 3, 1)) == datetime(2026, 4, 1)
    assert next_period_start(datetime(2026, 12, 1)) == datetime(2027, 1, 1)


def test_track_usage_creates_then_increments(app):
    usage = track_usage("u1", 3, now=NOW)
    assert usage.items_sent_this_month == 3
    assert usage.period_start == datetime(2026, 3, 1)
    assert usage.period_end == datetime(2026, 4, 1)

    usage = track_usage("u1", 4, now=NOW)
    assert usage.items_sent_this_month == 7
    assert UsageTracking.query.filter_by(user_id="u1").count() == 1


def test_track_usage_starts_new_record_each_month(app):
    track_usage("u1", 3, now=NOW)
    track_usage("u1", 2, now=datetime(2026, 4, 2))

    assert UsageTracking.query.filter_by(user_id="u1").count() == 2
    history = get_monthly_usage_summary("u1", 2026)
    assert history == [
        {"month": "2026-03", "items_sent": 3},
        {"month": "2026-04", "items_sent": 2},
    ]


def test_load_usage_summary_reads_current_period(app):
    create_subscription("u1", tier="free", now=NOW)
    track_usage("u1", 4, now=NOW)

    s = load_usage_summary("u1", now=NOW)
    assert s.limit == 5
    assert s.used == 4
    assert s.can_send_items(1)
    assert not s.can_send_items(2)
    assert s.to_dict()["usage_percentage"] == 80.0


def test_load_usage_summary_without_rows(app):
    s = load_usage_summary("nobody", now=NOW)
    assert s.subscription is None
    assert s.usage is None
    assert s.to_dict()["remaining_items"] == 0


def test_zero_limit_reports_infinite_percentage_as_null():
    s = summary(limit=0, used=1)
    assert s.usage_percentage() == float("inf")
    assert s.to_dict()["usage_percentage"] is None


def test_roll_subscription_periods(app):
    expired = create_subscription("u1", tier="pro", now=datetime(2026, 1, 10))
    current = create_subscription("u2", tier="pro", now=NOW)

    rolled = roll_subscription_periods(now=NOW)

    assert rolled == 1
    assert expired.current_period_start == datetime(2026, 3, 1)
    assert expired.current_period_end == datetime(2026, 4, 1)
    assert current.current_period_end == datetime(2026, 4, 1)
