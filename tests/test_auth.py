from datetime import timedelta

import pytest
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import undefer

from contactbook import crud
from contactbook.auth import get_password_hash, verify_password
from contactbook.models import Role, User, hash_reset_token, utcnow
from contactbook.schemas import UserCreate


NEW_USER = {
    "firstName": "First",
    "lastName": "Last",
    "email": "test@gmail.com",
    "password": "test1234",
    "passwordConfirm": "test1234",
}


def test_password_hashing_roundtrip():
    password = "secret123"
    hashed = get_password_hash(password)
    assert hashed != password
    assert verify_password(password, hashed)


def test_signup_then_login(client):
    signup_resp = client.post("/api/v1/auth/signup", json=NEW_USER)
    assert signup_resp.status_code == status.HTTP_201_CREATED
    body = signup_resp.json()
    assert body["status"] == "success"
    assert body["data"]["token"]
    assert body["data"]["user"]["email"] == "test@gmail.com"
    assert "id" in body["data"]["user"]
    assert body["data"]["user"]["fullName"] == "First Last"
    assert "jwt" in signup_resp.cookies

    login_resp = client.post(
        "/api/v1/auth/login",
        json={"email": NEW_USER["email"], "password": NEW_USER["password"]},
    )
    assert login_resp.status_code == status.HTTP_200_OK
    data = login_resp.json()["data"]
    assert data["user"]["role"] == "USER"
    assert "password" not in data["user"]
    assert "jwt" in login_resp.cookies
    assert "httponly" in login_resp.headers["set-cookie"].lower()


def test_signup_ignores_role(client, db_session):
    resp = client.post("/api/v1/auth/signup", json={**NEW_USER, "role": "ADMIN"})
    assert resp.status_code == status.HTTP_201_CREATED
    assert resp.json()["data"]["user"]["role"] == "USER"

    user = crud.get_user_by_email(db_session, NEW_USER["email"])
    assert user.role == Role.USER


def test_signup_hashes_password(client, db_session):
    client.post("/api/v1/auth/signup", json=NEW_USER)
    user = crud.get_user_by_email(db_session, NEW_USER["email"], with_password=True)
    assert user.password != NEW_USER["password"]
    assert verify_password(NEW_USER["password"], user.password)


def test_signup_normalizes_email(client):
    resp = client.post("/api/v1/auth/signup", json={**NEW_USER, "email": "Test@Gmail.com"})
    assert resp.status_code == status.HTTP_201_CREATED
    assert resp.json()["data"]["user"]["email"] == "test@gmail.com"


def test_signup_password_mismatch(client):
    resp = client.post(
        "/api/v1/auth/signup", json={**NEW_USER, "passwordConfirm": "different1"}
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["status"] == "fail"
    assert "Passwords do not match" in resp.json()["message"]


def test_signup_short_password(client):
    resp = client.post(
        "/api/v1/auth/signup",
        json={**NEW_USER, "password": "short", "passwordConfirm": "short"},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST


def test_signup_duplicate_email(client, create_user):
    create_user(email=NEW_USER["email"])
    resp = client.post("/api/v1/auth/signup", json=NEW_USER)
    assert resp.status_code == status.HTTP_409_CONFLICT
    assert resp.json() == {"status": "fail", "message": "User already exists"}


def test_login_missing_credentials(client):
    resp = client.post("/api/v1/auth/login", json={})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["status"] == "fail"

    resp = client.post("/api/v1/auth/login", json={"email": "user@example.com"})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST


def test_login_invalid_credentials(client, create_user):
    create_user()
    resp = client.post(
        "/api/v1/auth/login", json={"email": "nobody@example.com", "password": "1234"}
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED

    resp = client.post(
        "/api/v1/auth/login",
        json={"email": "user@example.com", "password": "wrongpass"},
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert resp.json() == {"status": "fail", "message": "Invalid credentials"}


def test_login_admin(client, create_user, db_session):
    admin = create_user(email="admin@gmail.com", password="test1234")
    admin.role = Role.ADMIN
    crud.save_user(db_session, admin)

    resp = client.post(
        "/api/v1/auth/login", json={"email": "admin@gmail.com", "password": "test1234"}
    )
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["data"]["user"]["role"] == "ADMIN"


def test_password_not_loaded_by_default(create_user, db_session):
    create_user()
    db_session.expunge_all()

    user = db_session.scalars(select(User)).one()
    assert "password" not in user.__dict__

    db_session.expunge_all()
    user = crud.get_user_by_email(db_session, "user@example.com", with_password=True)
    assert "password" in user.__dict__


def test_me(client, create_user, auth_headers):
    user = create_user()
    resp = client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["status"] == "success"
    assert body["data"]["user"]["email"] == "user@example.com"
    assert "password" not in body["data"]["user"]


def test_me_with_cookie(client, create_user):
    create_user()
    client.post(
        "/api/v1/auth/login",
        json={"email": "user@example.com", "password": "secret123"},
    )
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == status.HTTP_200_OK


def test_me_requires_token(client):
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert resp.json()["status"] == "fail"

    resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_me_rejects_token_of_deleted_user(client, create_user, auth_headers, db_session):
    user = create_user()
    headers = auth_headers(user)
    db_session.delete(user)
    db_session.commit()

    resp = client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert "no longer exists" in resp.json()["message"]


def test_me_rejects_token_older_than_password_change(
    client, create_user, auth_headers, db_session
):
    user = create_user()
    headers = auth_headers(user)
    user.password_changed_at = utcnow() + timedelta(minutes=1)
    db_session.commit()

    resp = client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert "recently changed password" in resp.json()["message"]


def test_forgot_and_reset_password(client, create_user, mailer, db_session):
    create_user(email="reset@example.com")
    resp = client.post(
        "/api/v1/auth/forgotPassword", json={"email": "reset@example.com"}
    )
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["status"] == "success"

    assert len(mailer.outbox) == 1
    message = mailer.outbox[0]
    assert message["to"] == "reset@example.com"
    marker = "/api/v1/auth/resetPassword/"
    assert marker in message["text"]
    token = message["text"].split(marker, 1)[1].split()[0]

    stored = db_session.scalars(
        select(User).options(undefer(User.password_reset_token))
    ).one()
    assert stored.password_reset_token == hash_reset_token(token)
    assert stored.password_reset_token != token

    new_password = {"password": "newpass123", "passwordConfirm": "newpass123"}
    reset_resp = client.patch(f"/api/v1/auth/resetPassword/{token}", json=new_password)
    assert reset_resp.status_code == status.HTTP_200_OK
    assert reset_resp.json()["data"]["token"]

    login_resp = client.post(
        "/api/v1/auth/login",
        json={"email": "reset@example.com", "password": "newpass123"},
    )
    assert login_resp.status_code == status.HTTP_200_OK

    again = client.patch(f"/api/v1/auth/resetPassword/{token}", json=new_password)
    assert again.status_code == status.HTTP_400_BAD_REQUEST


def test_reset_token_from_reset_stays_valid(client, create_user, mailer):
    create_user(email="reset@example.com")
    client.post("/api/v1/auth/forgotPassword", json={"email": "reset@example.com"})
    token = mailer.outbox[0]["text"].split("/resetPassword/", 1)[1].split()[0]

    reset_resp = client.patch(
        f"/api/v1/auth/resetPassword/{token}",
        json={"password": "newpass123", "passwordConfirm": "newpass123"},
    )
    session_token = reset_resp.json()["data"]["token"]

    me = client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {session_token}"}
    )
    assert me.status_code == status.HTTP_200_OK


def test_forgot_password_unknown_email(client, mailer):
    resp = client.post(
        "/api/v1/auth/forgotPassword", json={"email": "ghost@example.com"}
    )
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert mailer.outbox == []


def test_forgot_password_mail_failure_clears_token(client, create_user, mailer, db_session):
    create_user(email="reset@example.com")
    mailer.fail = True

    resp = client.post(
        "/api/v1/auth/forgotPassword", json={"email": "reset@example.com"}
    )
    assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert resp.json()["status"] == "error"

    db_session.expire_all()
    user = db_session.scalars(
        select(User).options(
            undefer(User.password_reset_token), undefer(User.password_reset_expires)
        )
    ).one()
    assert user.password_reset_token is None
    assert user.password_reset_expires is None


def test_reset_password_expired_token_looks_like_unknown(client, create_user, db_session):
    user = create_user(email="reset@example.com")
    token = user.create_password_reset_token(expires_minutes=10)
    user.password_reset_expires = utcnow() - timedelta(minutes=1)
    db_session.commit()

    body = {"password": "newpass123", "passwordConfirm": "newpass123"}
    expired = client.patch(f"/api/v1/auth/resetPassword/{token}", json=body)
    unknown = client.patch("/api/v1/auth/resetPassword/not-a-token", json=body)

    assert expired.status_code == status.HTTP_400_BAD_REQUEST
    assert expired.json() == unknown.json()
    assert expired.json()["message"] == "Token is invalid or has expired"


def test_signup_race_on_same_email_is_conflict(db_session, create_user, monkeypatch):
    create_user(email=NEW_USER["email"])
    # the second signup misses the first one in its lookup
    monkeypatch.setattr(crud, "get_user_by_email", lambda *args, **kwargs: None)

    user_in = UserCreate.model_validate(NEW_USER)
    with pytest.raises(HTTPException) as exc_info:
        crud.create_user(db_session, user_in, get_password_hash(NEW_USER["password"]))

    assert exc_info.value.status_code == status.HTTP_409_CONFLICT
    assert [user.email for user in db_session.scalars(select(User))] == [NEW_USER["email"]]


def test_cookie_is_secure_only_in_production(client, create_user, production_settings):
    create_user()
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": "user@example.com", "password": "secret123"},
    )
    assert resp.status_code == status.HTTP_200_OK
    set_cookie = resp.headers["set-cookie"].lower()
    assert set_cookie.startswith("jwt=")
    assert "secure" in set_cookie
    assert "httponly" in set_cookie


def test_cookie_is_not_secure_in_development(client, create_user):
    create_user()
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": "user@example.com", "password": "secret123"},
    )
    assert "secure" not in resp.headers["set-cookie"].lower()


def test_forgot_password_malformed_email(client, mailer):
    resp = client.post("/api/v1/auth/forgotPassword", json={"email": "nobody"})
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json() == {
        "status": "fail",
        "message": "There is no user with this email.",
    }
    assert mailer.outbox == []


def test_forgot_password_cleanup_failure_still_reports_mail_error(
    client, create_user, mailer, monkeypatch
):
    create_user(email="reset@example.com")
    mailer.fail = True

    save_user = crud.save_user
    calls = []

    def failing_cleanup(db, user):
        calls.append(user.id)
        if len(calls) > 1:
            raise OperationalError("UPDATE users", {}, Exception("database is locked"))
        return save_user(db, user)

    monkeypatch.setattr(crud, "save_user", failing_cleanup)

    resp = client.post(
        "/api/v1/auth/forgotPassword", json={"email": "reset@example.com"}
    )
    assert len(calls) == 2
    assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert resp.json() == {
        "status": "error",
        "message": "There was an error sending an email. Try again later!",
    }
