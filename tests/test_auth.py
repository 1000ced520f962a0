"""Tests for API key loading and verification."""

import asyncio

import pytest
from fastapi import HTTPException

import backend.auth as auth


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for i in range(1, auth.MAX_KEY_SLOTS + 1):
        monkeypatch.delenv(f"API_KEY_USER{i}", raising=False)
    monkeypatch.delenv("ADMIN_API_KEY_USERS", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setattr(auth, "_valid_api_keys", None)


def test_keys_map_to_backend_users(monkeypatch):
    monkeypatch.setenv("API_KEY_USER1", "alpha:11111111-aaaa")
    monkeypatch.setenv("API_KEY_USER2", "beta")

    keys = auth.get_valid_api_keys()

    assert keys["alpha"] == auth.ApiUser("user1", "11111111-aaaa", is_admin=True)
    assert keys["beta"] == auth.ApiUser("user2", "user2", is_admin=False)


def test_admin_slots_from_env(monkeypatch):
    monkeypatch.setenv("API_KEY_USER1", "alpha:a")
    monkeypatch.setenv("API_KEY_USER3", "gamma:c")
    monkeypatch.setenv("ADMIN_API_KEY_USERS", "user3, ")

    keys = auth.get_valid_api_keys()

    assert not keys["alpha"].is_admin
    assert keys["gamma"].is_admin


def test_no_keys_outside_development_raises():
    with pytest.raises(ValueError):
        auth.get_valid_api_keys()


def test_development_fallback(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEV_USER_ID", "dev-uuid")
    caller = auth.get_valid_api_keys()["dev-key-insecure"]
    assert caller.user_id == "dev-uuid"
    assert caller.is_admin


def test_verify_api_key(monkeypatch):
    monkeypatch.setenv("API_KEY_USER1", "alpha:a")
    assert asyncio.run(auth.verify_api_key("alpha")).user_id == "a"

    with pytest.raises(HTTPException) as exc:
        asyncio.run(auth.verify_api_key("wrong"))
    assert exc.value.status_code == 401

    with pytest.raises(HTTPException) as exc:
        asyncio.run(auth.verify_api_key(None))
    assert exc.value.status_code == 401


def test_verify_admin_api_key():
    with pytest.raises(HTTPException) as exc:
        asyncio.run(auth.verify_admin_api_key(auth.ApiUser("user2", "b")))
    assert exc.value.status_code == 403

    admin = auth.ApiUser("user1", "a", is_admin=True)
    assert asyncio.run(auth.verify_admin_api_key(admin)) is admin
