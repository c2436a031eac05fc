from labtracker.models import (
    db, Quote, QuoteItem, Lab, LabUser, Profile, UserRole, Subscription, UsageTracking,
)
from labtracker.errors import BadRequest
from labtracker.statuses import (
    QuoteStatus, SHIPMENT_STATUSES, TRACKABLE_STATUSES, LAB_HIDDEN_STATUSES,
    pipeline_summary, status_counts,
)
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)

ROLES = ["admin", "subscriber", "lab"]
DEFAULT_ROLE = "subscriber"

# Columns a quote patch may touch
UPDATABLE_QUOTE_FIELDS = {
    "quote_number", "lab_quote_number", "status", "lab_id", "notes",
    "tracking_number", "shipped_date", "payment_status", "payment_amount_usd",
    "payment_date", "transaction_id",
}

DATE_FIELDS = {"shipped_date", "payment_date"}


# ========== QUOTES ==========
def list_quotes(user_id, is_admin=False):
    """Quotes newest first; admins see every quote, everyone else only their own"""
    query = Quote.query
    if not is_admin:
        query = query.filter_by(user_id=user_id)
    quotes = query.order_by(Quote.created_at.desc()).all()
    return [q.to_dict() for q in quotes]


def get_quote(quote_id, user_id=None, is_admin=False):
    """Fetch one quote, None when absent or not owned by `user_id`"""
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        return None
    if not is_admin and user_id is not None and quote.user_id != user_id:
        return None
    return quote


def list_lab_quotes(lab_id):
    quotes = (
        Quote.query
        .filter(Quote.lab_id == lab_id)
        .filter(Quote.status.notin_(LAB_HIDDEN_STATUSES))
        .order_by(Quote.created_at.desc())
        .all()
    )
    return [q.to_dict() for q in quotes]


def delete_quote(quote_id):
    """Delete the quote's items, then the quote.

    The items are flushed first; if that fails the quote is never touched.
    """
    try:
        for item in QuoteItem.query.filter_by(quote_id=quote_id).all():
            db.session.delete(item)
        db.session.flush()
    except Exception:
        db.session.rollback()
        raise

    try:
        quote = db.session.get(Quote, quote_id)
        if quote is not None:
            db.session.delete(quote)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def delete_quotes(quote_ids):
    quote_ids = list(quote_ids)
    try:
        for item in QuoteItem.query.filter(QuoteItem.quote_id.in_(quote_ids)).all():
            db.session.delete(item)
        db.session.flush()
    except Exception:
        db.session.rollback()
        raise

    try:
        for quote in Quote.query.filter(Quote.id.in_(quote_ids)).all():
            db.session.delete(quote)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _coerce(field, value):
    if value in (None, ""):
        return None
    try:
        if field in DATE_FIELDS:
            if isinstance(value, datetime):
                return value
            if not isinstance(value, str):
                raise ValueError(value)
            return datetime.fromisoformat(value)
        if field == "payment_amount_usd":
            amount = Decimal(str(value))
            if not amount.is_finite():
                raise ValueError(value)
            return amount
    except (ValueError, InvalidOperation):
        raise BadRequest(f"Invalid value for {field}")
    return value


def coerce_quote_updates(updates):
    """Column values for a quote patch; BadRequest on malformed dates or amounts"""
    return {field: _coerce(field, value) for field, value in updates.items()}


def update_quote(quote_id, updates):
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise LookupError(f"Quote {quote_id} not found")
    try:
        for field, value in coerce_quote_updates(updates).items():
            setattr(quote, field, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return quote.to_dict()


def update_quote_status(quote_id, status):
    return update_quote(quote_id, {"status": status})


def list_all_quote_statuses():
    rows = db.session.query(Quote.id, Quote.status).all()
    return [{"id": quote_id, "status": status} for quote_id, status in rows]


def get_pipeline_stats():
    return pipeline_summary(list_all_quote_statuses())


# ========== QUOTE ITEMS ==========
def get_quote_item_rows(quote_id):
    return QuoteItem.query.filter_by(quote_id=quote_id).all()


def list_quote_items(quote_id):
    return [item.to_dict() for item in get_quote_item_rows(quote_id)]


def get_quote_item(item_id):
    return db.session.get(QuoteItem, item_id)


# ========== ROLES / PROFILES ==========
def get_user_role(user_id):
    """Role of `user_id`, falling back to the least privileged one"""
    if not user_id:
        return DEFAULT_ROLE
    try:
        row = UserRole.query.filter_by(user_id=user_id).first()
    except Exception as e:
        logger.error(f"Error fetching user role for {user_id}: {e}")
        db.session.rollback()
        return DEFAULT_ROLE
    return row.role if row and row.role else DEFAULT_ROLE


def set_user_role(user_id, role):
    row = UserRole.query.filter_by(user_id=user_id).first()
    if row is None:
        row = UserRole(user_id=user_id, role=role)
        db.session.add(row)
    else:
        row.role = role
    db.session.commit()
    return row


def get_onboarding_status(user_id):
    try:
        profile = db.session.get(Profile, user_id) if user_id else None
    except Exception as e:
        logger.error(f"Error fetching onboarding status for {user_id}: {e}")
        db.session.rollback()
        profile = None

    if profile is None:
        return {"show_onboarding": False, "current_step": 0}
    return {
        "show_onboarding": not profile.onboarding_completed,
        "current_step": profile.onboarding_step or 0,
    }


def get_active_lab_membership(user_id):
    return LabUser.query.filter_by(user_id=user_id, is_active=True).first()


def get_lab_membership(user_id):
    return LabUser.query.filter_by(user_id=user_id).first()


def get_lab(lab_id):
    return db.session.get(Lab, lab_id)


# ========== SUBSCRIPTION / USAGE ==========
def get_subscription(user_id):
    return Subscription.query.filter_by(user_id=user_id).first()


def get_current_usage(user_id, month_start):
    return (
        UsageTracking.query
        .filter(UsageTracking.user_id == user_id)
        .filter(UsageTracking.period_start >= month_start)
        .order_by(UsageTracking.period_start.asc())
        .first()
    )


# ========== DASHBOARD ==========
def _average_completion_days(completed_quotes):
    total_days = 0
    valid_count = 0
    for quote in completed_quotes:
        if not quote.shipped_date or not quote.updated_at:
            continue
        days = round((quote.updated_at - quote.shipped_date).total_seconds() / 86400)
        if days >= 0:
            total_days += days
            valid_count += 1
    if valid_count == 0:
        return None
    return round(total_days / valid_count)


def _brief(quote, with_tracking=False):
    data = {"id": quote.id, "quote_number": quote.quote_number}
    if with_tracking:
        data["tracking_number"] = quote.tracking_number
    return data


def get_dashboard_data(user_id, now):
    """Everything the customer dashboard shows, for one user"""
    base = Quote.query.filter(Quote.user_id == user_id)

    active_quotes = (
        base.filter(Quote.status != QuoteStatus.completed.value)
        .order_by(Quote.created_at.desc())
        .limit(10)
        .all()
    )
    shipments = (
        base.filter(Quote.status.in_(SHIPMENT_STATUSES))
        .order_by(Quote.shipped_date.desc())
        .all()
    )
    completed = (
        base.filter(Quote.status == QuoteStatus.completed.value)
        .filter(Quote.updated_at >= now - timedelta(days=90))
        .all()
    )
    awaiting_approval = (
        base.filter(Quote.status == QuoteStatus.awaiting_customer_approval.value)
        .order_by(Quote.created_at.desc())
        .all()
    )
    ready_for_payment = (
        base.filter(Quote.status == QuoteStatus.approved_payment_pending.value)
        .order_by(Quote.created_at.desc())
        .all()
    )
    to_track = (
        base.filter(Quote.status.in_(TRACKABLE_STATUSES))
        .filter(Quote.tracking_number.isnot(None))
        .order_by(Quote.shipped_date.desc())
        .all()
    )

    return {
        "active_quotes": [q.to_dict() for q in active_quotes],
        "shipments_in_progress": [q.to_dict() for q in shipments],
        "avg_completion_days": _average_completion_days(completed),
        "status_counts": status_counts(active_quotes),
        "quotes_awaiting_approval": [_brief(q) for q in awaiting_approval],
        "quotes_ready_for_payment": [_brief(q) for q in ready_for_payment],
        "shipments_to_track": [_brief(q, with_tracking=True) for q in to_track],
    }
