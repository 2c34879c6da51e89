from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.backend.config import get_settings
from app.backend.exceptions import ChatError
from app.backend.services.auth import AuthFailure, AuthService, extract_bearer_token


@pytest.fixture
def auth(store):
    return AuthService(store)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc.def.ghi", "abc.def.ghi"),
        ("abc.def.ghi", "abc.def.ghi"),
        ("  Bearer   abc  ", "abc"),
        ("Bearer ", None),
        ("Bearer", None),
        ("  bearer  ", None),
        ("BEARER xyz", "xyz"),
        ("", None),
        (None, None),
        ("Bearer two tokens", None),
    ],
)
def test_extract_bearer_token(raw, expected):
    assert extract_bearer_token(raw) == expected


def test_password_hashes_verify_and_never_store_plaintext(auth):
    hashed = auth.hash_password("correct horse")

    assert hashed != "correct horse"
    assert auth.check_password("correct horse", hashed)
    assert not auth.check_password("wrong horse", hashed)
    assert not auth.check_password("correct horse", "not-a-bcrypt-hash")


def test_register_issues_a_verifiable_token(auth, store):
    response = asyncio.run(auth.register("alice@example.com", "alice", "s3cret"))

    claims = auth.verify_token(response.access_token)
    stored = asyncio.run(store.get_user_by_id(response.user.id))

    assert claims.sub == response.user.id
    assert claims.username == "alice"
    assert claims.email == "alice@example.com"
    assert response.user.color == "#1E90FF"
    assert stored.password_hash != "s3cret"


def test_register_rejects_duplicate_email_and_username(auth):
    asyncio.run(auth.register("alice@example.com", "alice", "s3cret"))

    with pytest.raises(ChatError) as email_error:
        asyncio.run(auth.register("alice@example.com", "alice2", "s3cret"))
    with pytest.raises(ChatError) as username_error:
        asyncio.run(auth.register("other@example.com", "alice", "s3cret"))

    assert email_error.value.status_code == 400
    assert email_error.value.message == "Email already in use"
    assert username_error.value.message == "Username already in use"


def test_authenticate_checks_the_password(auth):
    asyncio.run(auth.register("bob@example.com", "bob", "hunter22"))

    assert asyncio.run(auth.authenticate("bob", "hunter22")).username == "bob"
    assert asyncio.run(auth.authenticate("bob", "wrong")) is None
    assert asyncio.run(auth.authenticate("nobody", "hunter22")) is None


def test_expired_token_is_rejected(auth):
    now = datetime.now(tz=timezone.utc)
    token = jwt.encode(
        {"sub": "u1", "iat": now - timedelta(hours=2), "exp": now - timedelta(hours=1)},
        get_settings().jwt_secret,
        algorithm="HS256",
    )

    with pytest.raises(AuthFailure):
        auth.verify_token(token)


def test_token_signed_with_another_secret_is_rejected(auth):
    token = jwt.encode(
        {"sub": "u1", "exp": datetime.now(tz=timezone.utc) + timedelta(hours=1)},
        "a-completely-different-signing-secret",
        algorithm="HS256",
    )

    with pytest.raises(AuthFailure):
        auth.verify_token(token)


def test_token_without_subject_is_rejected(auth):
    token = jwt.encode(
        {"exp": datetime.now(tz=timezone.utc) + timedelta(hours=1)},
        get_settings().jwt_secret,
        algorithm="HS256",
    )

    with pytest.raises(AuthFailure):
        auth.verify_token(token)


def test_garbage_token_is_rejected(auth):
    with pytest.raises(AuthFailure):
        auth.verify_token("not-a-jwt")


def _max_tick_lateness(work):
    """Run ``work`` while a 10 ms ticker runs; return the worst tick delay."""

    async def scenario():
        lateness = []
        done = asyncio.Event()

        async def ticker():
            loop = asyncio.get_running_loop()
            while not done.is_set():
                started = loop.time()
                await asyncio.sleep(0.01)
                lateness.append(loop.time() - started - 0.01)

        task = asyncio.create_task(ticker())
        try:
            result = await work()
        finally:
            done.set()
            await task
        return result, max(lateness)

    return asyncio.run(scenario())


def test_register_hashes_without_blocking_the_event_loop(auth, monkeypatch):
    real_hash = AuthService.hash_password

    def slow_hash(self, password):
        time.sleep(0.3)
        return real_hash(self, password)

    monkeypatch.setattr(AuthService, "hash_password", slow_hash)

    response, worst = _max_tick_lateness(lambda: auth.register("carol@example.com", "carol", "s3cret"))

    assert response.user.username == "carol"
    assert worst < 0.1


def test_login_checks_password_without_blocking_the_event_loop(auth, monkeypatch):
    asyncio.run(auth.register("dave@example.com", "dave", "s3cret"))
    real_check = AuthService.check_password

    def slow_check(password, password_hash):
        time.sleep(0.3)
        return real_check(password, password_hash)

    monkeypatch.setattr(AuthService, "check_password", staticmethod(slow_check))

    user, worst = _max_tick_lateness(lambda: auth.authenticate("dave", "s3cret"))

    assert user is not None and user.username == "dave"
    assert worst < 0.1


def test_concurrent_registrations_of_one_username_admit_only_one(auth, store):
    async def scenario():
        return await asyncio.gather(
            auth.register("first@example.com", "erin", "pw-one"),
            auth.register("second@example.com", "erin", "pw-two"),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())

    errors = [result for result in results if isinstance(result, ChatError)]
    assert len(errors) == 1
    assert errors[0].message == "Username already in use"
    assert [user.username for user in asyncio.run(store.list_users())] == ["erin"]
