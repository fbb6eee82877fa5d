"""Cross-origin headers for every API response."""

from typing import Dict, Iterable, Optional

from flask import current_app, request

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Authorization")


class CorsPolicy:
    """Origin allow-list plus the fixed method/header lists.

    Only origins on the allow-list are echoed back; there is no wildcard
    fallback.
    """

    def __init__(self, allowed_origins: Iterable[str] = ()):
        self.allowed_origins = frozenset(
            origin.strip() for origin in allowed_origins if origin and origin.strip()
        )

    @classmethod
    def from_env_value(cls, raw_value: Optional[str]) -> "CorsPolicy":
        return cls((raw_value or "").split(","))

    def headers_for(self, origin: Optional[str]) -> Dict[str, str]:
        headers = {}
        if origin and origin in self.allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Methods"] = ", ".join(ALLOWED_METHODS)
        headers["Access-Control-Allow-Headers"] = ", ".join(ALLOWED_HEADERS)
        headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    def init_app(self, app) -> None:
        app.before_request(self._answer_preflight)
        app.after_request(self._apply_headers)

    def _answer_preflight(self):
        # Runs before routing errors and view decorators, so preflights never
        # hit the admin token check.
        if request.method == "OPTIONS":
            return current_app.response_class(status=204)
        return None

    def _apply_headers(self, response):
        for name, value in self.headers_for(request.headers.get("Origin")).items():
            response.headers[name] = value
        response.vary.add("Origin")
        return response
