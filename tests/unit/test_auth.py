"""Unit tests for the admin token gate."""

import pytest
from flask import Flask, jsonify

from backend.auth import AdminTokenGate

SECRET = "s3cret-token"


class ExplodingGate(AdminTokenGate):
    def matches(self, token: str) -> bool:
        raise RuntimeError("comparator broke")


def build_app(gate: AdminTokenGate):
    app = Flask(__name__)
    calls = []

    @app.route("/items/<item_id>", methods=["PUT"])
    @gate
    def update_item(item_id):
        calls.append(item_id)
        return jsonify({"updated": item_id}), 202

    return app, calls


@pytest.fixture
def guarded():
    return build_app(AdminTokenGate(SECRET))


class TestAdminTokenGate:
    """Test AdminTokenGate.wrap."""

    def test_missing_header_is_unauthorized(self, guarded) -> None:
        app, calls = guarded
        response = app.test_client().put("/items/1")
        assert response.status_code == 401
        assert response.content_type == "application/json"
        assert response.get_json()["error"].startswith("Unauthorized")
        assert calls == []

    @pytest.mark.parametrize(
        "header", [SECRET, f"Basic {SECRET}", f"bearer {SECRET}", "Bearer"]
    )
    def test_malformed_header_is_unauthorized(self, guarded, header) -> None:
        app, calls = guarded
        response = app.test_client().put("/items/1", headers={"Authorization": header})
        assert response.status_code == 401
        assert calls == []

    def test_wrong_token_is_forbidden(self, guarded) -> None:
        app, calls = guarded
        response = app.test_client().put(
            "/items/1", headers={"Authorization": "Bearer wrong-token"}
        )
        assert response.status_code == 403
        assert response.content_type == "application/json"
        assert response.get_json()["error"].startswith("Forbidden")
        assert calls == []

    def test_token_prefix_is_not_enough(self, guarded) -> None:
        app, calls = guarded
        response = app.test_client().put(
            "/items/1", headers={"Authorization": f"Bearer {SECRET[:-1]}"}
        )
        assert response.status_code == 403
        assert calls == []

    def test_correct_token_delegates_once(self, guarded) -> None:
        app, calls = guarded
        response = app.test_client().put(
            "/items/42", headers={"Authorization": f"Bearer {SECRET}"}
        )
        assert response.status_code == 202
        assert response.get_json() == {"updated": "42"}
        assert calls == ["42"]

    def test_unset_secret_rejects_everything(self) -> None:
        app, calls = build_app(AdminTokenGate(""))
        client = app.test_client()
        assert client.put("/items/1", headers={"Authorization": "Bearer x"}).status_code == 403
        assert calls == []

    def test_gate_failure_is_authentication_error(self) -> None:
        app, calls = build_app(ExplodingGate(SECRET))
        response = app.test_client().put(
            "/items/1", headers={"Authorization": f"Bearer {SECRET}"}
        )
        assert response.status_code == 500
        assert response.get_json() == {"error": "Authentication error"}
        assert calls == []

    def test_handler_errors_are_not_swallowed(self) -> None:
        gate = AdminTokenGate(SECRET)
        app = Flask(__name__)

        @app.route("/boom", methods=["POST"])
        @gate
        def boom():
            raise ValueError("handler failure")

        app.config["TESTING"] = True
        with pytest.raises(ValueError):
            app.test_client().post("/boom", headers={"Authorization": f"Bearer {SECRET}"})

    def test_wrap_keeps_function_name(self) -> None:
        def handler():
            return "ok"

        assert AdminTokenGate(SECRET).wrap(handler).__name__ == "handler"

    def test_non_ascii_secret_matches_raw_header_bytes(self) -> None:
        app, calls = build_app(AdminTokenGate("café-clé"))
        raw_header = "Bearer café-clé".encode("utf-8").decode("latin-1")
        response = app.test_client().put(
            "/items/7", environ_overrides={"HTTP_AUTHORIZATION": raw_header}
        )
        assert response.status_code == 202
        assert calls == ["7"]

    def test_non_ascii_secret_rejects_other_bytes(self) -> None:
        app, calls = build_app(AdminTokenGate("café-clé"))
        raw_header = "Bearer cafe-cle".encode("utf-8").decode("latin-1")
        response = app.test_client().put(
            "/items/7", environ_overrides={"HTTP_AUTHORIZATION": raw_header}
        )
        assert response.status_code == 403
        assert calls == []
