"""Shared fixtures: an app over a private in-memory SQLite database."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from schemas import RegisterRequest
from users import create_user

from .helpers import bearer, register


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite://",
        secret_key="test-secret",
        bcrypt_rounds=4,
        expose_reset_token=True,
    )


@pytest.fixture()
def app(settings):
    app = create_app(settings)
    yield app
    app.state.context.engine.dispose()


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db(app):
    session = app.state.context.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def pwd_context(app):
    return app.state.context.pwd_context


@pytest.fixture()
def make_user(db, pwd_context):
    def _make(email="alice@example.com", password="secret123", name="Alice", dob=date(1990, 5, 2)):
        return create_user(
            db,
            pwd_context,
            RegisterRequest(name=name, email=email, password=password, date_of_birth=dob),
        )

    return _make


@pytest.fixture()
def alice(client):
    data = register(client)
    return {"user": data["user"], "headers": bearer(data["token"])}


@pytest.fixture()
def bob(client):
    data = register(client, email="bob@example.com", name="Bob", dob="1985-01-20")
    return {"user": data["user"], "headers": bearer(data["token"])}
