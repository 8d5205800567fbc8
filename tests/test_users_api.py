"""Auth, current-user and admin user routes."""

from fastapi.testclient import TestClient

import database
from config import get_settings

SIGN_UP = "/api/auth/sign-up/email"
SIGN_IN = "/api/auth/sign-in/email"


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


# ─── sign up / sign in / sign out ────────────────────────────────

def test_sign_up(client):
    payload = {"fullName": "Test User", "email": " Test@Example.com ", "password": "password123"}
    response = client.post(SIGN_UP, json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User registered"
    assert body["user"]["email"] == "test@example.com"
    assert body["user"]["roles"] == ["customer"]
    assert "password" not in body["user"]


def test_sign_up_ignores_client_roles(client):
    payload = {"fullName": "Sneaky", "email": "sneaky@example.com", "password": "password123", "roles": ["admin"]}
    assert client.post(SIGN_UP, json=payload).json()["user"]["roles"] == ["customer"]


def test_sign_up_duplicate_email(client):
    payload = {"fullName": "Test User", "email": "dup@example.com", "password": "password123"}
    client.post(SIGN_UP, json=payload)
    response = client.post(SIGN_UP, json={**payload, "email": "DUP@example.com"})
    assert response.status_code == 400
    assert response.json() == {"message": "Email already in use"}


def test_sign_up_validation(client):
    response = client.post(SIGN_UP, json={"fullName": "", "email": "not-an-email", "password": "short"})
    assert response.status_code == 400
    fields = {error["path"][-1] for error in response.json()["errors"]}
    assert fields == {"fullName", "email", "password"}


def test_sign_in(client, sign_in_as):
    sign_in_as("login@example.com")
    response = client.post(SIGN_IN, json={"email": "LOGIN@example.com", "password": "password123"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Signed in"
    assert body["token"]
    assert body["user"]["email"] == "login@example.com"
    assert get_settings().session_cookie_names[0] in response.cookies


def test_sign_in_invalid_credentials(client, sign_in_as):
    sign_in_as("login@example.com")
    response = client.post(SIGN_IN, json={"email": "login@example.com", "password": "wrongpass"})
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid email or password"}


def test_sign_out_invalidates_token(client, sign_in_as):
    token = sign_in_as("logout@example.com")
    assert client.post("/api/auth/sign-out", headers=auth_header(token)).status_code == 200
    assert client.get("/api/user/me", headers=auth_header(token)).status_code == 401
    assert client.post("/api/auth/sign-out", headers=auth_header(token)).status_code == 401


def test_cookie_transport(client, sign_in_as, monkeypatch):
    monkeypatch.setattr(get_settings(), "token_sources", ["cookie"])
    sign_in_as("cookie@example.com")
    response = client.get("/api/user/me")
    assert response.status_code == 200
    assert response.json()["email"] == "cookie@example.com"


# ─── current user ────────────────────────────────────────────────

def test_me(client, customer_token):
    response = client.get("/api/user/me", headers=auth_header(customer_token))
    assert response.status_code == 200
    assert response.json()["email"] == "customer@example.com"
    assert client.get("/api/user/me").status_code == 401


def test_update_me(client, customer_token):
    response = client.patch(
        "/api/user/me", json={"fullName": "  Renamed ", "email": "New@Example.com"},
        headers=auth_header(customer_token),
    )
    assert response.status_code == 200
    assert response.json()["fullName"] == "Renamed"
    assert response.json()["email"] == "new@example.com"


def test_update_me_requires_a_field(client, customer_token):
    response = client.patch("/api/user/me", json={}, headers=auth_header(customer_token))
    assert response.status_code == 400


def test_update_me_to_taken_email(client, sign_in_as):
    sign_in_as("taken@example.com", full_name="Owner")
    token = sign_in_as("mover@example.com", full_name="Mover")
    response = client.patch("/api/user/me", json={"email": "TAKEN@example.com"}, headers=auth_header(token))
    assert response.status_code == 400
    assert response.json() == {"message": "Email already in use"}
    assert database.find_user_by_email("taken@example.com")["fullName"] == "Owner"
    assert database.find_user_by_email("mover@example.com")["fullName"] == "Mover"


def test_update_me_password(client, sign_in_as):
    token = sign_in_as("rotate@example.com")
    response = client.patch("/api/user/me", json={"password": "brand-new-pass"}, headers=auth_header(token))
    assert response.status_code == 200
    old = client.post(SIGN_IN, json={"email": "rotate@example.com", "password": "password123"})
    assert old.status_code == 400
    new = client.post(SIGN_IN, json={"email": "rotate@example.com", "password": "brand-new-pass"})
    assert new.status_code == 200


# ─── users (admin) ───────────────────────────────────────────────

def test_list_users_role_gate(client, admin_token, customer_token):
    assert client.get("/api/users").status_code == 401
    assert client.get("/api/users", headers=auth_header(customer_token)).status_code == 403
    response = client.get("/api/users", headers=auth_header(admin_token))
    assert response.status_code == 200
    emails = [user["email"] for user in response.json()]
    assert emails == ["admin@example.com", "customer@example.com"]


def test_get_user(client, admin_token, customer_token):
    customer = database.find_user_by_email("customer@example.com")
    headers = auth_header(admin_token)
    assert client.get(f"/api/users/{customer['id']}", headers=headers).json()["id"] == customer["id"]
    assert client.get("/api/users/not-an-id", headers=headers).status_code == 400
    assert client.get("/api/users/5f1d7f1e2b3c4d5e6f708192", headers=headers).status_code == 404


def test_unhandled_errors_are_masked(client, admin_token, monkeypatch):
    from main import app

    def explode():
        raise RuntimeError("connection reset")

    monkeypatch.setattr(database, "find_all_users", explode)
    quiet_client = TestClient(app, raise_server_exceptions=False)
    response = quiet_client.get("/api/users", headers=auth_header(admin_token))
    assert response.status_code == 500
    assert response.json() == {"message": "Internal Server Error"}


def test_health(client):
    body = client.get("/health").json()
    assert body["database"] == "Connected"
