# Overview: Shared helpers for API routes; policy lookup and error responses.

from flask import current_app, jsonify, request

from ..config import DepositPolicy
from ..errors import ContentionError, DepositError


def current_policy() -> DepositPolicy:
    return DepositPolicy.from_config(current_app.config)


def json_body() -> dict:
    """Request JSON, {} when the body is empty. Non-object bodies are left to validation."""
    data = request.get_json(silent=True)
    return {} if data is None else data


def json_error(exc: DepositError):
    if isinstance(exc, ContentionError):
        current_app.logger.warning("Contention on %s %s: %s", request.method, request.path, exc.message)
    return jsonify(exc.to_dict()), exc.http_status
