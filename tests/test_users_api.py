"""User profile and admin endpoint tests."""

import pytest
from sqlalchemy import select

from natours.db.models import Review, Role, Tour, User

PASSWORD = "pass1234"


# ═══════════════════════════════════════════════════════════
# updateMe / deleteMe
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_update_me_changes_profile(client, make_user, token_for, auth):
    user = await make_user("me@example.com")
    r = await client.patch(
        "/api/v1/users/updateMe",
        json={"name": "New Name", "email": "New@Example.com"},
        headers=auth(token_for(user)),
    )
    assert r.status_code == 200
    data = r.json()["data"]["user"]
    assert data["name"] == "New Name"
    assert data["email"] == "new@example.com"


@pytest.mark.asyncio
async def test_update_me_ignores_role(client, make_user, token_for, auth):
    user = await make_user("me@example.com")
    r = await client.patch(
        "/api/v1/users/updateMe",
        json={"name": "Still User", "role": "admin"},
        headers=auth(token_for(user)),
    )
    assert r.status_code == 200
    assert r.json()["data"]["user"]["role"] == "user"


@pytest.mark.asyncio
async def test_update_me_rejects_password(client, make_user, token_for, auth):
    user = await make_user("me@example.com")
    r = await client.patch(
        "/api/v1/users/updateMe",
        json={"password": "sneaky123", "password_confirm": "sneaky123"},
        headers=auth(token_for(user)),
    )
    assert r.status_code == 400
    assert r.json()["message"] == (
        "This route is not for password updates. Please use /updateMyPassword"
    )


@pytest.mark.asyncio
async def test_update_me_email_taken(client, make_user, token_for, auth):
    await make_user("taken@example.com")
    user = await make_user("me@example.com")
    r = await client.patch(
        "/api/v1/users/updateMe",
        json={"email": "taken@example.com"},
        headers=auth(token_for(user)),
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_delete_me_deactivates(client, make_user, token_for, auth, db_session):
    user = await make_user("leaving@example.com")
    token = token_for(user)
    r = await client.delete("/api/v1/users/deleteMe", headers=auth(token))
    assert r.status_code == 204

    # the row stays, but the user is gone for auth purposes
    row = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()
    assert row.active is False
    assert (await client.get("/api/v1/users/me", headers=auth(token))).status_code == 401
    r = await client.post(
        "/api/v1/users/login", json={"email": "leaving@example.com", "password": PASSWORD}
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_admin_creates_user_with_role(client, make_user, token_for, auth):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    r = await client.post(
        "/api/v1/users",
        json={"name": "Leo", "email": "leo@example.com", "password": PASSWORD, "role": "lead-guide"},
        headers=auth(token_for(admin)),
    )
    assert r.status_code == 201
    assert r.json()["data"]["user"]["role"] == "lead-guide"


@pytest.mark.asyncio
async def test_admin_get_update_user(client, make_user, token_for, auth):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    user = await make_user("u@example.com")
    headers = auth(token_for(admin))

    r = await client.get(f"/api/v1/users/{user.id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["email"] == "u@example.com"

    r = await client.patch(f"/api/v1/users/{user.id}", json={"role": "guide"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["role"] == "guide"


@pytest.mark.asyncio
async def test_admin_get_unknown_user(client, make_user, token_for, auth):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    r = await client.get(
        "/api/v1/users/00000000-0000-0000-0000-000000000000", headers=auth(token_for(admin))
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_admin_delete_user_removes_reviews(
    client, make_user, make_tour, token_for, auth, db_session
):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    user = await make_user("u@example.com")
    tour = await make_tour("The Forest Hiker")
    await client.post(
        f"/api/v1/tours/{tour.id}/reviews",
        json={"review": "Meh", "rating": 2},
        headers=auth(token_for(user)),
    )

    r = await client.delete(f"/api/v1/users/{user.id}", headers=auth(token_for(admin)))
    assert r.status_code == 204

    assert (await db_session.execute(select(Review))).scalars().all() == []
    refreshed = (
        await db_session.execute(
            select(Tour).where(Tour.id == tour.id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert refreshed.ratings_quantity == 0
    assert refreshed.ratings_average == 4.5
