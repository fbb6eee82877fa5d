"""Shared pytest fixtures and configuration."""

import mongomock
import pytest

from backend.app import create_app

ADMIN_TOKEN = "test-admin-token"
ALLOWED_ORIGIN = "http://localhost:3000"


@pytest.fixture
def db():
    """In-memory MongoDB database."""
    return mongomock.MongoClient()["photoshop_test"]


@pytest.fixture
def app(db):
    """Application wired to the in-memory database."""
    app = create_app(
        {
            "TESTING": True,
            "ADMIN_API_KEY": ADMIN_TOKEN,
            "CORS_ALLOWED_ORIGINS": f"{ALLOWED_ORIGIN}, https://shop.example.com",
        },
        db=db,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers() -> dict:
    """Headers carrying the admin bearer token."""
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def allowed_origin() -> str:
    return ALLOWED_ORIGIN
