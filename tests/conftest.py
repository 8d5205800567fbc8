"""Shared fixtures: a mongomock-backed store and a TestClient running the app lifespan."""

import os

# Keep tests off any real deployment settings
os.environ.setdefault("DATABASE_NAME", "catalog_test")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("ADMIN_PASSWORD", "admin-password")
os.environ.setdefault("LOG_FORMAT", "text")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest.fixture
def db():
    database.close_database()
    handle = database.connect(mongomock.MongoClient())
    yield handle
    database.close_database()


@pytest.fixture
def client(db):
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign_in_as(client):
    """Register (when needed) and sign in a user; returns the bearer token."""

    def _sign_in(email, password="password123", full_name="Test User"):
        if database.find_user_by_email(email) is None:
            response = client.post(
                "/api/auth/sign-up/email",
                json={"fullName": full_name, "email": email, "password": password},
            )
            assert response.status_code == 200, response.text
        response = client.post("/api/auth/sign-in/email", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _sign_in


@pytest.fixture
def admin_token(sign_in_as):
    return sign_in_as(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def customer_token(sign_in_as):
    return sign_in_as("customer@example.com")
