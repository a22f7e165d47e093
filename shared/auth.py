"""
Request authentication.

Bearer tokens are resolved to an owner id by an identity object installed on
the app. Speaking an identity provider's protocol is someone else's job; the
resolver only has to answer "whose token is this?".
"""

import hmac
import logging
from functools import wraps
from typing import Dict, Optional, Protocol

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> Optional[str]:
        """Owner id for a valid token, None otherwise."""
        ...


class StaticTokenIdentity:
    """Fixed token -> owner table, typically loaded from ``API_TOKENS``."""

    def __init__(self, tokens: Dict[str, str]):
        self._tokens = dict(tokens)

    def resolve(self, token: str) -> Optional[str]:
        if not token:
            return None
        for known, owner in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return owner
        return None


def bearer_token() -> Optional[str]:
    """
    Token from ``Authorization: Bearer <t>``, or the ``token`` query parameter
    (media elements cannot set headers).
    """
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.args.get("token") or None


def require_user(view):
    """Reject unauthenticated requests with 401; sets ``g.owner`` otherwise."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Access token is required"}), 401
        identity = current_app.extensions["tuneshift"].identity
        owner = identity.resolve(token)
        if not owner:
            logger.info(f"Rejected invalid token from {request.remote_addr}")
            return jsonify({"error": "Invalid or expired token"}), 401
        g.owner = owner
        return view(*args, **kwargs)

    return wrapper
