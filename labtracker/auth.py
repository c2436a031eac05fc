from jose import jwk, jwt
from jose.utils import base64url_decode
from flask import request, g, session, current_app
from functools import wraps
import logging
import requests

from labtracker.context import resolve_context
from labtracker.errors import Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_jwks = None


def jwks_url():
    region = current_app.config.get("AWS_REGION")
    pool_id = current_app.config.get("COGNITO_POOL_ID")
    return f"https://cognito-idp.{region}.amazonaws.com/{pool_id}/.well-known/jwks.json"


def get_jwks():
    global _jwks
    if _jwks is None:
        r = requests.get(jwks_url(), timeout=10)
        r.raise_for_status()
        _jwks = r.json()
    return _jwks


def _verify_cognito(token):
    jwks = get_jwks()
    headers = jwt.get_unverified_header(token)
    kid = headers.get("kid")
    key = next((k for k in jwks["keys"] if k["kid"] == kid), None)
    if not key:
        raise Unauthorized("Public key not found in jwks")
    public_key = jwk.construct(key)
    message, encoded_sig = token.rsplit(".", 1)
    decoded_sig = base64url_decode(encoded_sig.encode("utf-8"))
    if not public_key.verify(message.encode("utf8"), decoded_sig):
        raise Unauthorized("Signature verification failed")
    claims = jwt.get_unverified_claims(token)
    client_id = current_app.config.get("COGNITO_APP_CLIENT_ID")
    # id tokens carry aud, access tokens carry client_id
    if client_id and client_id not in (claims.get("aud"), claims.get("client_id")):
        raise Unauthorized("Invalid audience")
    return claims


def verify_jwt(token):
    secret = current_app.config.get("JWT_SECRET")
    if secret:
        try:
            claims = jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
        except Exception as e:
            raise Unauthorized(f"Token invalid: {e}")
    else:
        claims = _verify_cognito(token)
    if not claims.get("sub"):
        raise Unauthorized("Token has no subject")
    return claims


def bearer_token():
    auth = request.headers.get("Authorization")
    if not auth:
        return None
    return auth.split(" ")[1] if " " in auth else auth


def authenticate():
    """Verify the bearer token and store claims and context on g"""
    token = bearer_token()
    if not token:
        raise Unauthorized("Unauthorized - No auth header")
    try:
        claims = verify_jwt(token)
    except Unauthorized as e:
        logger.warning(f"Authentication failed: {e.message}")
        raise
    except Exception as e:
        logger.warning(f"Authentication failed: {e}")
        raise Unauthorized("Unauthorized", details=str(e))
    g.claims = claims
    g.ctx = resolve_context(claims, session)
    return g.ctx


def auth_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        authenticate()
        return f(*args, **kwargs)
    return decorated


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            ctx = authenticate()
            if ctx.role not in roles:
                raise Forbidden(f"Forbidden - {' or '.join(roles)} access required")
            return f(*args, **kwargs)
        return decorated
    return decorator
