from datetime import date, timedelta

import pytest

from errors import InvalidOrExpiredError, NotFoundError, ValidationError
from models import utcnow
from password_reset import forgot, reset, verify_date_of_birth
from security import hash_reset_token
from users import check_password, find_by_email

from .helpers import register


class TestResetStateMachine:
    def test_dob_mismatch_leaves_reset_state_untouched(self, make_user, db):
        user = make_user(email="a@example.com", dob=date(1990, 5, 2))

        with pytest.raises(ValidationError) as exc:
            forgot(db, "a@example.com", date(1990, 5, 3))

        assert exc.value.message == "Date of birth does not match our records"
        db.refresh(user)
        assert user.reset_token is None
        assert user.reset_token_expiry is None

    def test_unknown_email(self, db):
        with pytest.raises(NotFoundError):
            forgot(db, "ghost@example.com", date(1990, 5, 2))

    def test_only_digest_is_stored(self, make_user, db):
        user = make_user()

        token = forgot(db, user.email, user.date_of_birth)

        db.refresh(user)
        assert len(token) == 40
        assert user.reset_token == hash_reset_token(token)
        assert user.reset_token != token
        assert user.reset_token_expiry is not None

    def test_expiry_is_thirty_minutes_out(self, make_user, db):
        user = make_user()
        issued_at = utcnow()

        forgot(db, user.email, user.date_of_birth, now=issued_at)

        db.refresh(user)
        assert user.reset_token_expiry == issued_at + timedelta(minutes=30)

    def test_round_trip(self, make_user, db, pwd_context):
        user = make_user(password="old-password")
        token = forgot(db, user.email, user.date_of_birth)

        reset(db, pwd_context, token, "new-password")

        db.refresh(user)
        assert check_password(pwd_context, user, "new-password")
        assert not check_password(pwd_context, user, "old-password")
        assert user.reset_token is None
        assert user.reset_token_expiry is None

    def test_token_is_single_use(self, make_user, db, pwd_context):
        user = make_user()
        token = forgot(db, user.email, user.date_of_birth)
        reset(db, pwd_context, token, "new-password")

        with pytest.raises(InvalidOrExpiredError):
            reset(db, pwd_context, token, "another-password")

    def test_expired_token(self, make_user, db, pwd_context):
        user = make_user()
        issued_at = utcnow() - timedelta(minutes=31)
        token = forgot(db, user.email, user.date_of_birth, now=issued_at)

        with pytest.raises(InvalidOrExpiredError):
            reset(db, pwd_context, token, "new-password")

    def test_expired_and_unknown_tokens_look_the_same(self, make_user, db, pwd_context):
        user = make_user()
        token = forgot(db, user.email, user.date_of_birth, now=utcnow() - timedelta(hours=1))

        with pytest.raises(InvalidOrExpiredError) as expired:
            reset(db, pwd_context, token, "new-password")
        with pytest.raises(InvalidOrExpiredError) as unknown:
            reset(db, pwd_context, "0" * 40, "new-password")

        assert expired.value.message == unknown.value.message

    def test_new_request_replaces_old_token(self, make_user, db, pwd_context):
        user = make_user()
        first = forgot(db, user.email, user.date_of_birth)
        second = forgot(db, user.email, user.date_of_birth)

        with pytest.raises(InvalidOrExpiredError):
            reset(db, pwd_context, first, "new-password")
        reset(db, pwd_context, second, "new-password")

    def test_short_password_rejected_before_lookup(self, make_user, db, pwd_context):
        user = make_user()
        token = forgot(db, user.email, user.date_of_birth)

        with pytest.raises(ValidationError):
            reset(db, pwd_context, token, "12345")

        db.refresh(user)
        assert user.reset_token == hash_reset_token(token)

    def test_verify_date_of_birth_is_read_only(self, make_user, db):
        user = make_user(dob=date(1990, 5, 2))

        assert verify_date_of_birth(db, user.email, date(1990, 5, 2)) is True
        assert verify_date_of_birth(db, user.email, date(1990, 5, 3)) is False
        db.refresh(user)
        assert user.reset_token is None


class TestPasswordEndpoints:
    def test_forgot_then_reset(self, client):
        register(client, password="old-password")

        resp = client.post(
            "/api/password/forgot", json={"email": "alice@example.com", "dateOfBirth": "1990-05-02"}
        )
        assert resp.status_code == 200
        token = resp.json()["data"]["resetToken"]

        resp = client.put("/api/password/reset", json={"token": token, "password": "new-password"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        old = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "old-password"})
        new = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "new-password"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_forgot_ignores_time_of_day(self, client):
        register(client)

        resp = client.post(
            "/api/password/forgot",
            json={"email": "alice@example.com", "dateOfBirth": "1990-05-02T18:45:00Z"},
        )
        assert resp.status_code == 200

    def test_forgot_mismatch(self, client):
        register(client)

        resp = client.post(
            "/api/password/forgot", json={"email": "alice@example.com", "dateOfBirth": "1990-05-03"}
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Date of birth does not match our records"

    def test_forgot_unknown_email(self, client):
        resp = client.post(
            "/api/password/forgot", json={"email": "ghost@example.com", "dateOfBirth": "1990-05-02"}
        )
        assert resp.status_code == 404

    def test_token_hidden_when_not_exposed(self, client, app):
        from dataclasses import replace

        ctx = app.state.context
        ctx.settings = replace(ctx.settings, expose_reset_token=False)
        register(client)

        resp = client.post(
            "/api/password/forgot", json={"email": "alice@example.com", "dateOfBirth": "1990-05-02"}
        )
        assert resp.status_code == 200
        assert "resetToken" not in resp.json()["data"]

    def test_reset_with_aged_token(self, client, db):
        register(client)
        token = client.post(
            "/api/password/forgot", json={"email": "alice@example.com", "dateOfBirth": "1990-05-02"}
        ).json()["data"]["resetToken"]

        user = find_by_email(db, "alice@example.com")
        user.reset_token_expiry = utcnow() - timedelta(seconds=1)
        db.commit()

        resp = client.put("/api/password/reset", json={"token": token, "newPassword": "new-password"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid or expired reset token"

    def test_reset_requires_long_enough_password(self, client):
        resp = client.put("/api/password/reset", json={"token": "abc", "password": "123"})

        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] in ("password", "newPassword")

    def test_verify_dob(self, client):
        register(client)

        match = client.post(
            "/api/password/verify-dob", json={"email": "alice@example.com", "dateOfBirth": "1990-05-02"}
        )
        miss = client.post(
            "/api/password/verify-dob", json={"email": "alice@example.com", "dateOfBirth": "1991-05-02"}
        )
        assert match.json()["data"]["isMatch"] is True
        assert miss.json()["data"]["isMatch"] is False
