# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_actor(f):
    """
    Require a resolved actor identity.

    Authentication happens upstream; the gateway forwards the resolved user
    id in the X-Actor-Id header. Sets:
    - g.actor_id: positive integer id used to stamp received_by / audit fields

    No authorization decisions are made here. Returns 401 when the header is
    missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-Actor-Id") or "").strip()
        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": "Actor identity required"}), 401

        g.actor_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
