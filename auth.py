from datetime import datetime, timedelta
from functools import wraps

import jwt
from flask import current_app, g, request

from errors import AuthenticationError, ForbiddenError


def _lifetime(role):
    hours = current_app.config["ADMIN_TOKEN_HOURS"] if role == "admin" \
        else current_app.config["CLIENT_TOKEN_HOURS"]
    return timedelta(hours=hours)


def issue_token(principal, now=None):
    """Sign a token for an Administrator or Customer row.

    Claims: ``sub`` (the row id as a string), ``username``, ``name``,
    ``role``, ``iat`` and ``exp``. Administrators get ADMIN_TOKEN_HOURS,
    everybody else CLIENT_TOKEN_HOURS.
    """
    issued = now or datetime.utcnow()
    claims = {
        "sub": str(principal.id),
        "username": principal.username,
        "name": principal.name,
        "role": principal.role,
        "iat": issued,
        "exp": issued + _lifetime(principal.role),
    }
    return jwt.encode(
        claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"]
    )


def verify_token(token):
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise ForbiddenError("Token expired")
    except jwt.InvalidTokenError:
        raise ForbiddenError("Invalid token")
    claims["principal_id"] = int(claims["sub"])
    return claims


def bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_principal(optional=False):
    """Verify the request's bearer token and stash its claims on ``g.principal``."""
    token = bearer_token()
    if token is None:
        if optional:
            return None
        raise AuthenticationError("Token not provided")
    g.principal = verify_token(token)
    return g.principal


def token_required(*roles):
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            claims = current_principal()
            if roles and claims.get("role") not in roles:
                raise ForbiddenError("Insufficient permissions")
            return view(*args, **kwargs)
        return wrapper
    return decorator


admin_required = token_required("admin")
customer_required = token_required("customer")
