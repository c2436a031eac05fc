# directory.py
import boto3
from flask import current_app
import logging

logger = logging.getLogger(__name__)


def _cognito():
    return boto3.client("cognito-idp", region_name=current_app.config.get("AWS_REGION", "us-east-2"))


def _to_user(cognito_user):
    attrs = {a["Name"]: a["Value"] for a in cognito_user.get("Attributes", [])}
    created = cognito_user.get("UserCreateDate")
    return {
        "id": attrs.get("sub"),
        "email": attrs.get("email"),
        "name": attrs.get("name"),
        "created_at": created.isoformat() if created else "",
    }


def list_directory_users():
    """All users in the pool, keyed by sub"""
    cognito = _cognito()
    user_pool_id = current_app.config.get("COGNITO_POOL_ID")
    users = {}
    paginator = cognito.get_paginator("list_users")
    for page in paginator.paginate(UserPoolId=user_pool_id):
        for cognito_user in page.get("Users", []):
            user = _to_user(cognito_user)
            if user["id"]:
                users[user["id"]] = user
    logger.info(f"Loaded {len(users)} users from Cognito")
    return users


def get_directory_user(user_id):
    # filter values may not contain quotes or backslashes
    if not isinstance(user_id, str) or not user_id or any(c in user_id for c in ('"', "\\")):
        logger.warning(f"Rejected directory lookup for malformed user id {user_id!r}")
        return None
    cognito = _cognito()
    response = cognito.list_users(
        UserPoolId=current_app.config.get("COGNITO_POOL_ID"),
        Filter=f'sub = "{user_id}"',
        Limit=1,
    )
    found = response.get("Users", [])
    if not found:
        return None
    return _to_user(found[0])


def get_user_email(user_id):
    user = get_directory_user(user_id)
    return user["email"] if user else None
