from flask import Blueprint, request, jsonify, g, session, current_app
import logging
import time

from labtracker.auth import auth_required, role_required
from labtracker.cache import query_cache
from labtracker.errors import BadRequest, Forbidden, NotFound
from labtracker.impersonation import ImpersonationSession
from labtracker.models import db, utcnow
from labtracker.mutations import QuoteMutations
from labtracker.pricing import price_breakdown
from labtracker.s3client import upload_bytes
from labtracker.statuses import pipeline_summary, available_actions, PIPELINE_LABELS
from labtracker.usage import load_usage_summary, get_monthly_usage_summary
from labtracker import repository

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api/v1")


def _json_body():
    return request.get_json(silent=True) or {}


def _sees_all_quotes(ctx):
    # an admin acting as a customer sees that customer's quotes only
    return ctx.is_admin and not ctx.is_impersonating_customer


def _quotes_key(ctx):
    return ("quotes", ctx.target_user_id, _sees_all_quotes(ctx))


def _cached_quotes(ctx):
    return query_cache.get_or_fetch(
        _quotes_key(ctx),
        lambda: repository.list_quotes(ctx.target_user_id, _sees_all_quotes(ctx)),
    )


def _owned_quote(quote_id):
    ctx = g.ctx
    quote = repository.get_quote(quote_id, ctx.target_user_id, _sees_all_quotes(ctx))
    if quote is None:
        raise NotFound("Quote not found")
    return quote


def _check_lab_access(lab_id):
    ctx = g.ctx
    # an admin acting as a lab is limited to that lab
    if ctx.is_impersonating_lab:
        if lab_id != ctx.target_lab_id:
            raise Forbidden("Forbidden - not a member of this lab")
        return
    if ctx.is_admin:
        return
    membership = repository.get_active_lab_membership(ctx.user_id)
    if membership is None or membership.lab_id != lab_id:
        raise Forbidden("Forbidden - not a member of this lab")


def _mutations():
    return QuoteMutations(query_cache)


# ========== QUOTES ==========
@api.route("/quotes", methods=["GET"])
@auth_required
def list_quotes():
    """Quotes visible to the caller (or to the impersonated customer)"""
    quotes = _cached_quotes(g.ctx)
    return jsonify({
        "quotes": quotes,
        "count": len(quotes),
        "target_user_id": g.ctx.target_user_id
    })


@api.route("/quotes/<quote_id>", methods=["GET"])
@auth_required
def get_quote(quote_id):
    quote = _owned_quote(quote_id)
    data = quote.to_dict()
    data["items"] = repository.list_quote_items(quote_id)
    return jsonify(data)


@api.route("/quotes/<quote_id>/items", methods=["GET"])
@auth_required
def get_quote_items(quote_id):
    _owned_quote(quote_id)
    items = repository.list_quote_items(quote_id)
    return jsonify({"quote_id": quote_id, "items": items, "count": len(items)})


@api.route("/quotes/<quote_id>", methods=["DELETE"])
@auth_required
def delete_quote(quote_id):
    _owned_quote(quote_id)
    _mutations().delete_quote(quote_id)
    logger.info(f"Deleted quote {quote_id} for user {g.ctx.user_id}")
    return jsonify({"success": True, "id": quote_id})


@api.route("/quotes/bulk-delete", methods=["POST"])
@auth_required
def bulk_delete_quotes():
    ids = _json_body().get("ids") or []
    if not isinstance(ids, list) or not ids:
        raise BadRequest("ids must be a non-empty list")
    for quote_id in ids:
        _owned_quote(quote_id)
    _mutations().bulk_delete_quotes(ids)
    logger.info(f"Deleted {len(ids)} quotes for user {g.ctx.user_id}")
    return jsonify({"success": True, "deleted": len(ids)})


@api.route("/quotes/<quote_id>/status", methods=["PATCH"])
@auth_required
def update_quote_status(quote_id):
    status = _json_body().get("status")
    if not status:
        raise BadRequest("Missing status")
    _owned_quote(quote_id)
    quote = _mutations().update_quote_status(quote_id, status)
    return jsonify(quote)


@api.route("/quotes/<quote_id>", methods=["PATCH"])
@auth_required
def update_quote(quote_id):
    updates = _json_body()
    if not updates:
        raise BadRequest("No fields to update")
    unknown = sorted(set(updates) - repository.UPDATABLE_QUOTE_FIELDS)
    if unknown:
        raise BadRequest(f"Fields cannot be updated: {', '.join(unknown)}")
    # malformed dates or amounts are rejected before the cache is patched
    repository.coerce_quote_updates(updates)
    _owned_quote(quote_id)
    quote = _mutations().update_quote(quote_id, updates)
    return jsonify(quote)


@api.route("/quotes/<quote_id>/actions", methods=["GET"])
@auth_required
def get_quote_actions(quote_id):
    quote = _owned_quote(quote_id)
    return jsonify({
        "quote_id": quote_id,
        "status": quote.status,
        "actions": available_actions(quote, g.ctx.role)
    })


@api.route("/quotes/<quote_id>/pricing", methods=["GET"])
@auth_required
def get_quote_pricing(quote_id):
    quote = _owned_quote(quote_id)
    items = repository.get_quote_item_rows(quote.id)
    breakdown = price_breakdown(items)
    breakdown["quote_id"] = quote_id
    return jsonify(breakdown)


# ========== LABS ==========
@api.route("/labs/<lab_id>/quotes", methods=["GET"])
@auth_required
def list_lab_quotes(lab_id):
    """Open requests for a lab; completed, rejected and draft quotes are hidden"""
    _check_lab_access(lab_id)
    quotes = query_cache.get_or_fetch(
        ("lab-quotes", lab_id),
        lambda: repository.list_lab_quotes(lab_id),
    )
    return jsonify({"lab_id": lab_id, "quotes": quotes, "count": len(quotes)})


# ========== DASHBOARD ==========
@api.route("/pipeline", methods=["GET"])
@auth_required
def get_pipeline():
    ctx = g.ctx
    if _sees_all_quotes(ctx):
        rows = query_cache.get_or_fetch(("pipeline",), repository.list_all_quote_statuses)
    else:
        rows = _cached_quotes(ctx)
    return jsonify({
        "pipeline": pipeline_summary(rows),
        "labels": PIPELINE_LABELS
    })


@api.route("/dashboard", methods=["GET"])
@auth_required
def get_dashboard():
    data = repository.get_dashboard_data(g.ctx.target_user_id, utcnow())
    return jsonify(data)


@api.route("/subscription", methods=["GET"])
@auth_required
def get_subscription():
    summary = load_usage_summary(g.ctx.target_user_id)
    data = summary.to_dict()
    items = request.args.get("items", type=int)
    if items is not None:
        data["can_send_items"] = summary.can_send_items(items)
    return jsonify(data)


@api.route("/usage/history", methods=["GET"])
@auth_required
def get_usage_history():
    year = request.args.get("year", utcnow().year, type=int)
    summary = get_monthly_usage_summary(g.ctx.target_user_id, year)
    return jsonify({
        "user_id": g.ctx.target_user_id,
        "year": year,
        "usage_summary": summary,
        "total_items": sum(item["items_sent"] for item in summary)
    })


@api.route("/role", methods=["GET"])
@auth_required
def get_role():
    ctx = g.ctx
    return jsonify({
        "role": ctx.role,
        "is_admin": ctx.is_admin,
        "is_subscriber": ctx.is_subscriber,
        "is_lab": ctx.is_lab
    })


@api.route("/onboarding", methods=["GET"])
@auth_required
def get_onboarding():
    return jsonify(repository.get_onboarding_status(g.ctx.user_id))


@api.route("/me", methods=["GET"])
@auth_required
def get_me():
    return jsonify(g.ctx.to_dict())


# ========== IMPERSONATION ==========
@api.route("/impersonation", methods=["GET"])
@auth_required
def get_impersonation():
    user = ImpersonationSession(session).current() if g.ctx.is_admin else None
    return jsonify({
        "impersonating": user is not None,
        "user": user.to_dict() if user else None
    })


@api.route("/impersonation/customer", methods=["POST"])
@role_required("admin")
def start_customer_impersonation():
    data = _json_body()
    user_id = data.get("userId")
    email = data.get("email")
    if not user_id or not email:
        raise BadRequest("Missing userId or email")
    user = ImpersonationSession(session).start_customer(user_id, email, data.get("name"))
    logger.info(f"Admin {g.ctx.user_id} impersonating customer {user_id}")
    return jsonify({"impersonating": True, "user": user.to_dict()})


@api.route("/impersonation/lab", methods=["POST"])
@role_required("admin")
def start_lab_impersonation():
    data = _json_body()
    lab_id = data.get("labId")
    if not lab_id:
        raise BadRequest("Missing labId")
    lab_name = data.get("labName")
    if not lab_name:
        lab = repository.get_lab(lab_id)
        if lab is None:
            raise NotFound("Lab not found")
        lab_name = lab.name
    user = ImpersonationSession(session).start_lab(lab_id, lab_name, data.get("labRole"))
    logger.info(f"Admin {g.ctx.user_id} impersonating lab {lab_id}")
    return jsonify({"impersonating": True, "user": user.to_dict()})


@api.route("/impersonation", methods=["DELETE"])
@role_required("admin")
def stop_impersonation():
    ImpersonationSession(session).stop()
    logger.info(f"Admin {g.ctx.user_id} stopped impersonation")
    return jsonify({"impersonating": False, "user": None})


# ========== REPORT FILES ==========
@api.route("/quote-items/<item_id>/report", methods=["POST"])
@auth_required
def upload_item_report(item_id):
    """Upload a lab report for a quote item to S3"""
    item = repository.get_quote_item(item_id)
    if item is None:
        raise NotFound("Quote item not found")
    quote = repository.get_quote(item.quote_id)
    ctx = g.ctx
    if ctx.is_impersonating_lab or (not ctx.is_admin and quote.user_id != ctx.target_user_id):
        _check_lab_access(quote.lab_id)

    file_content = request.data or b""
    if not file_content:
        raise BadRequest("No file content provided")

    bucket = current_app.config.get("S3_BUCKET")
    key = f"{quote.lab_id}/reports/{quote.id}/{item.id}-{int(time.time())}.bin"
    s3_uri = upload_bytes(bucket, key, file_content)

    try:
        item.report_file = key
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Uploaded report for item {item_id}: {s3_uri}")
    return jsonify({
        "message": "Report uploaded successfully",
        "s3_uri": s3_uri,
        "size": len(file_content)
    }), 201
