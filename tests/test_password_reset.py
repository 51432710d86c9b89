"""Password reset flow: forgotPassword → email → resetPassword/{token}.

Learn: The emailed URL is the only place the raw token exists. Tests
fish it out of the recording email sender, exactly like a user clicking
the link would.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from natours.auth.password import hash_reset_token
from natours.db.models import User

PASSWORD = "pass1234"
RESET_URL = re.compile(r"http://test/api/v1/users/resetPassword/(?P<token>[0-9a-f]{64})")


async def _forgot(client, email):
    return await client.post("/api/v1/users/forgotPassword", json={"email": email})


async def _reset(client, token, password="brandnew99", confirm=None):
    return await client.patch(
        f"/api/v1/users/resetPassword/{token}",
        json={"password": password, "password_confirm": confirm or password},
    )


def _token_from(outbox, email) -> str:
    msg = outbox.last_to(email)
    match = RESET_URL.search(msg["body"])
    assert match, msg["body"]
    return match.group("token")


async def _stored(db_session, user_id) -> User:
    result = await db_session.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ═══════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_forgot_password_emails_link(client, make_user, outbox, db_session):
    user = await make_user("reset@example.com")
    r = await _forgot(client, "reset@example.com")
    assert r.status_code == 200
    assert r.json() == {"status": "success", "message": "Token sent to email"}

    msg = outbox.last_to("reset@example.com")
    assert msg["subject"] == "Your password reset token (valid for 5 minutes)"
    raw = _token_from(outbox, "reset@example.com")

    stored = await _stored(db_session, user.id)
    assert stored.password_reset_token == hash_reset_token(raw)
    assert stored.password_reset_token != raw
    expires = stored.password_reset_expires.replace(tzinfo=timezone.utc)
    remaining = expires - datetime.now(timezone.utc)
    assert timedelta(minutes=4) < remaining <= timedelta(minutes=5)


@pytest.mark.asyncio
async def test_forgot_password_unknown_email(client, outbox):
    r = await _forgot(client, "nobody@example.com")
    assert r.status_code == 404
    assert r.json() == {"status": "fail", "message": "There is no user with that email address"}
    assert outbox.sent == []


@pytest.mark.asyncio
async def test_delivery_failure_clears_reset_fields(client, make_user, outbox, db_session):
    user = await make_user("nomail@example.com")
    outbox.fail = True
    r = await _forgot(client, "nomail@example.com")
    assert r.status_code == 500
    assert r.json() == {
        "status": "error",
        "message": "There was an error sending the email. Try again later",
    }

    stored = await _stored(db_session, user.id)
    assert stored.password_reset_token is None
    assert stored.password_reset_expires is None


# ═══════════════════════════════════════════════════════════
# Consume
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_reset_logs_user_in_with_new_password(client, make_user, outbox, db_session, auth):
    user = await make_user("flow@example.com")
    await _forgot(client, "flow@example.com")
    raw = _token_from(outbox, "flow@example.com")

    r = await _reset(client, raw)
    assert r.status_code == 200
    body = r.json()
    assert body["token"]
    assert body["data"]["user"]["id"] == str(user.id)
    assert (await client.get("/api/v1/users/me", headers=auth(body["token"]))).status_code == 200

    stored = await _stored(db_session, user.id)
    assert stored.password_reset_token is None
    assert stored.password_reset_expires is None
    assert stored.password_changed_at is not None

    login = await client.post(
        "/api/v1/users/login", json={"email": "flow@example.com", "password": "brandnew99"}
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_reset_token_is_single_use(client, make_user, outbox):
    await make_user("once@example.com")
    await _forgot(client, "once@example.com")
    raw = _token_from(outbox, "once@example.com")

    assert (await _reset(client, raw)).status_code == 200
    r = await _reset(client, raw, password="another123")
    assert r.status_code == 400
    assert r.json()["message"] == "Token is invalid or has expired"


@pytest.mark.asyncio
async def test_expired_reset_token(client, make_user, outbox, db_session):
    user = await make_user("late@example.com")
    await _forgot(client, "late@example.com")
    raw = _token_from(outbox, "late@example.com")

    stored = await _stored(db_session, user.id)
    stored.password_reset_expires = datetime.now(timezone.utc) - timedelta(seconds=1)
    await db_session.commit()

    r = await _reset(client, raw)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_unknown_reset_token(client):
    r = await _reset(client, "f" * 64)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_reset_password_mismatch_keeps_token(client, make_user, outbox, db_session):
    user = await make_user("typo@example.com")
    await _forgot(client, "typo@example.com")
    raw = _token_from(outbox, "typo@example.com")

    r = await _reset(client, raw, password="brandnew99", confirm="brandnew98")
    assert r.status_code == 400

    stored = await _stored(db_session, user.id)
    assert stored.password_reset_token == hash_reset_token(raw)


@pytest.mark.asyncio
async def test_second_request_replaces_first_token(client, make_user, outbox):
    await make_user("twice@example.com")
    await _forgot(client, "twice@example.com")
    first = _token_from(outbox, "twice@example.com")
    await _forgot(client, "twice@example.com")
    second = _token_from(outbox, "twice@example.com")

    assert first != second
    assert (await _reset(client, first)).status_code == 400
    assert (await _reset(client, second)).status_code == 200
