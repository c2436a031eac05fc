"""Privileged operations.

Each endpoint takes a bearer token and checks the caller's role against
user_roles on every call. Unexpected failures return 500 with the message
passed through.
"""
from flask import Blueprint, request, jsonify, g
import logging

from labtracker.auth import auth_required, role_required
from labtracker.models import UserRole, Profile
from labtracker.usage import track_usage
from labtracker import directory, repository

logger = logging.getLogger(__name__)

functions = Blueprint("functions", __name__, url_prefix="/functions")


def _error(message, status):
    return jsonify({"error": message}), status


@functions.route("/list-users", methods=["POST", "GET"])
@role_required("admin")
def list_users():
    """Every user with a role, joined with directory email and profile name"""
    try:
        auth_users = directory.list_directory_users()
        user_roles = UserRole.query.order_by(UserRole.created_at.desc()).all()
        profiles = {p.id: p for p in Profile.query.all()}

        users = []
        for ur in user_roles:
            auth_user = auth_users.get(ur.user_id) or {}
            profile = profiles.get(ur.user_id)
            users.append({
                "id": ur.user_id,
                "email": auth_user.get("email") or "Unknown",
                "full_name": profile.full_name if profile else None,
                "created_at": auth_user.get("created_at") or "",
                "role": ur.role
            })

        logger.info(f"list-users: Returning {len(users)} users")
        return jsonify({"users": users})
    except Exception as e:
        logger.error(f"Error listing users: {e}")
        return _error(str(e), 500)


@functions.route("/list-admins", methods=["POST", "GET"])
@role_required("admin")
def list_admins():
    try:
        auth_users = directory.list_directory_users()
        admin_roles = (
            UserRole.query
            .filter_by(role="admin")
            .order_by(UserRole.created_at.desc())
            .all()
        )
        profiles = {p.id: p for p in Profile.query.all()}

        admins = []
        for ur in admin_roles:
            auth_user = auth_users.get(ur.user_id) or {}
            profile = profiles.get(ur.user_id)
            admins.append({
                "id": ur.user_id,
                "email": auth_user.get("email") or "Unknown",
                "username": profile.username if profile else None,
                "created_at": auth_user.get("created_at") or ""
            })

        logger.info(f"list-admins: Returning {len(admins)} admins")
        return jsonify({"admins": admins})
    except Exception as e:
        logger.error(f"list-admins: Error: {e}")
        return _error(str(e), 500)


@functions.route("/update-user-role", methods=["POST"])
@role_required("admin")
def update_user_role():
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("userId")
        new_role = data.get("newRole")

        if not user_id or not new_role:
            return _error("Missing userId or newRole", 400)
        if new_role not in repository.ROLES:
            return _error(f"Invalid role: {new_role}", 400)

        existing = UserRole.query.filter_by(user_id=user_id).first()
        if existing is None:
            return _error("User role not found", 404)

        repository.set_user_role(user_id, new_role)
        logger.info(f"Admin {g.ctx.user_id} set role of {user_id} to {new_role}")
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Error updating user role: {e}")
        return _error(str(e), 500)


@functions.route("/get-lab-user-email", methods=["POST"])
@auth_required
def get_lab_user_email():
    """Email of a lab user; lab admins only see users of their own lab"""
    try:
        ctx = g.ctx
        is_platform_admin = ctx.is_admin
        caller_lab_user = repository.get_active_lab_membership(ctx.user_id)
        is_lab_admin = caller_lab_user is not None and caller_lab_user.role == "admin"

        if not is_platform_admin and not is_lab_admin:
            return _error("Only admins can view user details", 403)

        data = request.get_json(silent=True) or {}
        user_id = data.get("userId")
        if not user_id:
            return _error("Missing userId", 400)

        target_lab_user = repository.get_lab_membership(user_id)
        if target_lab_user is None:
            return _error("User not found", 404)

        if ctx.is_impersonating_lab:
            if target_lab_user.lab_id != ctx.target_lab_id:
                return _error("User not found in your lab", 404)
        elif not is_platform_admin and target_lab_user.lab_id != caller_lab_user.lab_id:
            return _error("User not found in your lab", 404)

        email = directory.get_user_email(user_id)
        if not email:
            return _error("User not found", 404)

        return jsonify({"email": email})
    except Exception as e:
        logger.error(f"Error getting lab user email: {e}")
        return _error(str(e), 500)


@functions.route("/track-usage", methods=["POST"])
@auth_required
def track_usage_function():
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("userId")
        item_count = data.get("itemCount")

        if not user_id or not item_count:
            return _error("Missing required parameters", 400)
        if not isinstance(item_count, int) or isinstance(item_count, bool) or item_count < 0:
            return _error("itemCount must be a positive integer", 400)

        ctx = g.ctx
        if user_id != ctx.user_id and not ctx.is_admin:
            return _error("Forbidden - cannot track usage for another user", 403)

        logger.info(f"Tracking usage for user {user_id}: {item_count} items")
        usage = track_usage(user_id, item_count)
        return jsonify({
            "success": True,
            "items_sent_this_month": usage.items_sent_this_month
        })
    except Exception as e:
        logger.error(f"Error in track-usage function: {e}")
        return _error(str(e), 500)
