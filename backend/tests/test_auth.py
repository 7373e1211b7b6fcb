from datetime import timedelta

from conftest import ADMIN_EMAIL, STRONG_PASSWORD, auth_header, login, signup
from ielts_api.security import create_access_token


def test_signup_lowercases_email_and_hides_hash(client):
    res = signup(client, email="Mixed.Case@Example.COM")
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["errors"] is None
    user = body["data"]["user"]
    assert user["email"] == "mixed.case@example.com"
    assert user["role"] == "student"
    assert "password_hash" not in user and "passwordHash" not in user
    assert body["data"]["token"]


def test_duplicate_signup_is_conflict(client):
    assert signup(client, email="dup@example.com").status_code == 201
    res = signup(client, email="DUP@example.com")
    assert res.status_code == 409
    body = res.json()
    assert body["success"] is False
    assert body["errors"]


def test_signup_reports_every_weak_password_rule(client):
    res = signup(client, email="weak@example.com", password="short")
    assert res.status_code == 400
    errors = res.json()["errors"]
    assert {e["field"] for e in errors} == {"password"}
    assert len(errors) == 4  # length, uppercase, digit, special


def test_signup_requires_fields(client):
    res = client.post("/auth/signup", json={"email": "x@example.com"})
    assert res.status_code == 400
    fields = {e["field"] for e in res.json()["errors"]}
    assert {"name", "password"} <= fields


def test_admin_signup_is_rejected_when_disabled(client):
    res = signup(client, email="wannabe@example.com", role="admin")
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "role"


def test_login_and_me(client):
    signup(client, email="me@example.com")
    res = login(client, "ME@example.com", STRONG_PASSWORD)
    assert res.status_code == 200
    token = res.json()["data"]["token"]
    me = client.get("/auth/me", headers=auth_header(token))
    assert me.status_code == 200
    user = me.json()["data"]["user"]
    assert user["email"] == "me@example.com"
    assert user["lastLoginAt"] is not None


def test_login_with_wrong_password(client):
    signup(client, email="wrong@example.com")
    res = login(client, "wrong@example.com", "Nope1234!")
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_missing_credentials_is_401_with_errors(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    body = res.json()
    assert body["success"] is False
    assert body["errors"]
    assert body["errors"][0]["code"] == "missing_credentials"


def test_garbage_token_is_401(client):
    res = client.get("/auth/me", headers=auth_header("not-a-jwt"))
    assert res.status_code == 401
    assert res.json()["errors"][0]["code"] == "invalid_credentials"


def test_logout_revokes_the_session(client, student_token):
    assert client.post("/auth/logout", headers=auth_header(student_token)).status_code == 200
    assert client.get("/auth/me", headers=auth_header(student_token)).status_code == 401


def test_logout_without_token_is_noop(client):
    res = client.post("/auth/logout")
    assert res.status_code == 200
    assert res.json()["success"] is True


def test_student_cannot_list_users(client, student_token):
    res = client.get("/auth/users", headers=auth_header(student_token))
    assert res.status_code == 403
    assert res.json()["errors"][0]["code"] == "forbidden"


def test_admin_lists_users(client, admin_token, student_token):
    res = client.get("/auth/users", headers=auth_header(admin_token))
    assert res.status_code == 200
    data = res.json()["data"]
    emails = {u["email"] for u in data["users"]}
    assert {ADMIN_EMAIL, "student@example.com"} <= emails
    assert data["results"] == len(data["users"])


def test_toggle_twice_restores_state(client, admin_token, student_token):
    me = client.get("/auth/me", headers=auth_header(student_token)).json()["data"]["user"]
    url = f"/auth/users/{me['id']}/toggle-status"
    first = client.patch(url, headers=auth_header(admin_token))
    assert first.status_code == 200
    assert first.json()["data"]["user"]["isActive"] is False

    blocked = login(client, "student@example.com", STRONG_PASSWORD)
    assert blocked.status_code == 401
    assert blocked.json()["message"] == "Account is deactivated"

    second = client.patch(url, headers=auth_header(admin_token))
    assert second.json()["data"]["user"]["isActive"] is True
    assert login(client, "student@example.com", STRONG_PASSWORD).status_code == 200


def test_toggle_unknown_user_is_404(client, admin_token):
    res = client.patch("/auth/users/does-not-exist/toggle-status", headers=auth_header(admin_token))
    assert res.status_code == 404
    assert res.json()["success"] is False


def test_admin_cannot_toggle_self(client, admin_token):
    me = client.get("/auth/me", headers=auth_header(admin_token)).json()["data"]["user"]
    res = client.patch(f"/auth/users/{me['id']}/toggle-status", headers=auth_header(admin_token))
    assert res.status_code == 400


def test_expired_token_is_401(client, student_token):
    me = client.get("/auth/me", headers=auth_header(student_token)).json()["data"]["user"]
    expired = create_access_token({"sub": me["id"], "jti": "whatever", "role": "student"}, timedelta(seconds=-5))
    res = client.get("/auth/me", headers=auth_header(expired))
    assert res.status_code == 401
    assert res.json()["errors"][0]["code"] == "invalid_credentials"
