"""Shared-secret bearer token check for the admin routes."""

import hmac
from functools import wraps
from typing import Optional

from flask import current_app, jsonify, request

BEARER_PREFIX = "Bearer "


class AdminTokenGate:
    """Wraps view functions so they only run for the configured admin token.

    A missing or malformed ``Authorization`` header is answered with 401, a
    wrong token with 403. The wrapped view is called with its original
    arguments and its return value is passed back untouched.
    """

    def __init__(self, secret: Optional[str]):
        self._secret = (secret or "").encode("utf-8")

    def __call__(self, handler):
        return self.wrap(handler)

    def wrap(self, handler):
        @wraps(handler)
        def guarded(*args, **kwargs):
            try:
                rejection = self._check_request()
            except Exception:
                current_app.logger.exception("Auth error while checking admin token")
                return jsonify({"error": "Authentication error"}), 500

            if rejection is not None:
                return rejection
            return handler(*args, **kwargs)

        return guarded

    def _check_request(self):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith(BEARER_PREFIX):
            current_app.logger.warning(
                "Rejected %s %s: missing or malformed bearer token",
                request.method,
                request.path,
            )
            return (
                jsonify({"error": "Unauthorized - Missing or invalid token"}),
                401,
            )

        token = auth_header[len(BEARER_PREFIX):]
        if not self.matches(token):
            current_app.logger.warning(
                "Rejected %s %s: admin token mismatch", request.method, request.path
            )
            return jsonify({"error": "Forbidden: Admin access required"}), 403

        return None

    def matches(self, token: str) -> bool:
        # An unset secret never matches, not even an empty token.
        if not self._secret:
            return False
        # WSGI decodes header bytes as latin-1; re-encoding recovers what the
        # client sent.
        try:
            raw_token = token.encode("latin-1")
        except UnicodeEncodeError:
            return False
        return hmac.compare_digest(raw_token, self._secret)
