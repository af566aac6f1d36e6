"""Shared fixtures for gateway tests."""

from __future__ import annotations

from collections.abc import Iterator

import bcrypt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from music_gateway.config import Settings
from music_gateway.core.token_codec import TokenCodec
from music_gateway.main import create_app

UPSTREAM_URL = "http://upstream.test"
GET_USER_URL = f"{UPSTREAM_URL}/getUserByEmail"
ADMIN_VERIFY_URL = f"{UPSTREAM_URL}/api/admin/verify"

USER_EMAIL = "a@x.com"
USER_PASSWORD = "secret"


def hash_for_tests(password: str) -> str:
    """bcrypt hash with the minimum cost factor to keep tests fast."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=4)).decode()


def make_user(email: str = USER_EMAIL, **overrides) -> dict:
    user = {
        "email": email,
        "password": hash_for_tests(USER_PASSWORD),
        "email_verified": True,
        "favorite_genre": "jazz",
        "favorite_artist": "Nina Simone",
        "bio": "Listens to everything",
        "avatar": "1700000000000-me.png",
    }
    user.update(overrides)
    return user


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        backend_url=UPSTREAM_URL,
        token_secret="test-secret",
        uploads_dir=str(tmp_path / "uploads"),
        frontend_dir=str(tmp_path / "no-frontend"),
    )


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec(settings.token_secret)


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(codec: TokenCodec) -> dict[str, str]:
    return {"Authorization": f"Bearer {codec.encode(USER_EMAIL)}"}
