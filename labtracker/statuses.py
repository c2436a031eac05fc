"""Quote lifecycle statuses and the per-status summaries built on them.

Statuses form a closed set. Writes are not checked against a transition
graph: any status may replace any other, so everything here only reads the
current value.
"""
import enum


class QuoteStatus(str, enum.Enum):
    draft = "draft"
    sent_to_vendor = "sent_to_vendor"
    awaiting_customer_approval = "awaiting_customer_approval"
    approved_payment_pending = "approved_payment_pending"
    paid = "paid"
    paid_awaiting_shipping = "paid_awaiting_shipping"
    shipped = "shipped"
    in_transit = "in_transit"
    delivered = "delivered"
    testing_in_progress = "testing_in_progress"
    completed = "completed"
    rejected = "rejected"
    failed = "failed"


ALL_STATUSES = [s.value for s in QuoteStatus]

# Buckets shown on the pipeline card, in lifecycle order
PIPELINE_STATUSES = [
    QuoteStatus.draft.value,
    QuoteStatus.sent_to_vendor.value,
    QuoteStatus.approved_payment_pending.value,
    QuoteStatus.paid.value,
    QuoteStatus.shipped.value,
    QuoteStatus.in_transit.value,
    QuoteStatus.delivered.value,
    QuoteStatus.testing_in_progress.value,
    QuoteStatus.completed.value,
]

PIPELINE_LABELS = {
    "draft": "Draft",
    "sent_to_vendor": "Sent to Vendor",
    "approved_payment_pending": "Approved - Payment Pending",
    "paid": "Paid",
    "shipped": "Shipped",
    "in_transit": "In Transit",
    "delivered": "Delivered",
    "testing_in_progress": "Testing in Progress",
    "completed": "Completed",
}

ERROR_STATUSES = {QuoteStatus.rejected.value, QuoteStatus.failed.value}

LOCKED_STATUSES = {
    QuoteStatus.paid_awaiting_shipping.value,
    QuoteStatus.in_transit.value,
    QuoteStatus.delivered.value,
    QuoteStatus.testing_in_progress.value,
    QuoteStatus.completed.value,
}

SHIPMENT_STATUSES = [
    QuoteStatus.shipped.value,
    QuoteStatus.in_transit.value,
    QuoteStatus.delivered.value,
    QuoteStatus.testing_in_progress.value,
]

TRACKABLE_STATUSES = [QuoteStatus.shipped.value, QuoteStatus.in_transit.value]

# Lab request lists hide these
LAB_HIDDEN_STATUSES = [
    QuoteStatus.completed.value,
    QuoteStatus.rejected.value,
    QuoteStatus.draft.value,
]


def is_valid_status(value):
    return value in ALL_STATUSES


def _status_of(quote):
    if isinstance(quote, dict):
        return quote.get("status")
    return getattr(quote, "status", None)


def pipeline_summary(quotes):
    """Count quotes per pipeline bucket.

    Every bucket is present, defaulting to zero. Statuses outside
    PIPELINE_STATUSES (unknown values, rejected, failed, ...) are dropped.
    """
    summary = {status: 0 for status in PIPELINE_STATUSES}
    for quote in quotes:
        status = _status_of(quote)
        if status in summary:
            summary[status] += 1
    return summary


def status_counts(quotes):
    """Raw per-status counts, only for statuses that actually appear"""
    counts = {}
    for quote in quotes:
        status = _status_of(quote)
        counts[status] = counts.get(status, 0) + 1
    return counts


def is_quote_locked(status):
    return status in LOCKED_STATUSES


def is_editing_disabled(status, role):
    if role == "admin":
        return False
    return is_quote_locked(status)


def available_actions(quote, role):
    """Actions a caller with `role` may take on `quote` in its current status"""
    status = _status_of(quote)
    if isinstance(quote, dict):
        tracking_number = quote.get("tracking_number")
    else:
        tracking_number = getattr(quote, "tracking_number", None)

    actions = {
        "view": True,
        "edit": False,
        "delete": False,
        "manage_items": False,
        "send_to_vendor": False,
        "approve_reject": False,
        "add_payment": False,
        "add_shipping": False,
        "refresh_tracking": False,
    }

    if status == QuoteStatus.draft.value:
        actions["edit"] = True
        actions["delete"] = True
    elif status == QuoteStatus.awaiting_customer_approval.value:
        actions["approve_reject"] = True
    elif status == QuoteStatus.approved_payment_pending.value:
        actions["add_payment"] = True
    elif status == QuoteStatus.paid_awaiting_shipping.value:
        actions["edit"] = not is_editing_disabled(status, role)
        actions["add_shipping"] = not tracking_number
    elif status == QuoteStatus.in_transit.value:
        actions["refresh_tracking"] = bool(tracking_number)
    elif status in (QuoteStatus.delivered.value, QuoteStatus.testing_in_progress.value):
        actions["manage_items"] = True

    if role == "admin" and status not in (
        QuoteStatus.sent_to_vendor.value,
        QuoteStatus.awaiting_customer_approval.value,
    ):
        actions["edit"] = True
        actions["delete"] = True
        actions["manage_items"] = True

    return actions
