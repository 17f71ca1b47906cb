"""
middleware/auth_middleware.py — Bearer-token authentication for ledger routes.

Member tokens are minted by the identity service. This module verifies them
and exposes the acting member to the view as flask.g.member_id (the token's
`sub`, an opaque string). Membership and settlement policy are decided
further in, by the services.

Verification uses the app config:
  JWT_SECRET_KEY, JWT_ALGORITHM  signature
  JWT_AUDIENCE                   checked only when set
  JWT_LEEWAY_SECONDS             clock skew allowed on exp

Error codes (all 401):
  TOKEN_MISSING  no Authorization header
  TOKEN_INVALID  not "Bearer <token>", bad signature, missing sub/exp, wrong audience
  TOKEN_EXPIRED  signature fine, exp in the past
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

import jwt
from flask import current_app, g, request

from groupledger.app.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["sub", "exp"]


def require_auth(view: Callable) -> Callable:
    """
    Route decorator. The wrapped view runs only for a verified member:

        @settlements_bp.route("/<group_id>/settlements", methods=["POST"])
        @require_auth
        def propose_settlement(group_id):
            payer = g.member_id
    """
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        g.member_id = _member_from_request()
        return view(*args, **kwargs)

    return wrapper


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Send 'Authorization: Bearer <token>'.",
            401,
        )

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return token


def _member_from_request() -> str:
    token = _bearer_token()
    config = current_app.config
    audience = config.get("JWT_AUDIENCE")

    try:
        claims = jwt.decode(
            token,
            config["JWT_SECRET_KEY"],
            algorithms=[config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            leeway=config.get("JWT_LEEWAY_SECONDS", 0),
            options={"require": _REQUIRED_CLAIMS, "verify_aud": audience is not None},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(ErrorCode.TOKEN_EXPIRED, "The access token has expired.", 401)
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    member_id = claims["sub"]
    if not isinstance(member_id, str) or not member_id.strip():
        raise AppError(ErrorCode.TOKEN_INVALID, "The access token has no usable 'sub' claim.", 401)
    return member_id.strip()
