"""Tours API tests: listing, CRUD permissions, aggregates and geo search."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from natours.db.models import Role

TOUR_BODY = {
    "name": "The Forest Hiker",
    "duration": 5,
    "max_group_size": 25,
    "difficulty": "easy",
    "price": 397,
    "summary": "Breathtaking hike through the Canadian Banff National Park",
    "image_cover": "tour-1-cover.jpg",
    "start_dates": ["2021-04-25T09:00:00Z", "2021-07-20T09:00:00Z"],
    "start_location": {
        "type": "Point",
        "coordinates": [-115.570154, 51.178456],
        "address": "224 Banff Ave, Banff, AB, Canada",
    },
    "locations": [
        {"coordinates": [-116.214531, 51.417611], "description": "Banff National Park", "day": 1},
    ],
}


@pytest_asyncio.fixture()
async def staff_headers(make_user, token_for, auth):
    lead = await make_user("lead@example.com", role=Role.LEAD_GUIDE, name="Lead")
    return auth(token_for(lead))


# ═══════════════════════════════════════════════════════════
# Create / update / delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_lead_guide_creates_tour(client, staff_headers):
    r = await client.post("/api/v1/tours", json=TOUR_BODY, headers=staff_headers)
    assert r.status_code == 201
    tour = r.json()["data"]["tour"]
    assert tour["slug"] == "the-forest-hiker"
    assert tour["duration_weeks"] == 1
    assert tour["ratings_average"] == 4.5
    assert tour["ratings_quantity"] == 0
    assert tour["start_location"]["coordinates"] == [-115.570154, 51.178456]
    assert tour["locations"][0]["day"] == 1
    assert len(tour["start_dates"]) == 2


@pytest.mark.asyncio
async def test_regular_user_cannot_create_tour(client, make_user, token_for, auth):
    user = await make_user("u@example.com")
    r = await client.post("/api/v1/tours", json=TOUR_BODY, headers=auth(token_for(user)))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_anonymous_cannot_create_tour(client):
    r = await client.post("/api/v1/tours", json=TOUR_BODY)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_discount_must_be_below_price(client, staff_headers):
    r = await client.post(
        "/api/v1/tours", json={**TOUR_BODY, "price_discount": 500}, headers=staff_headers
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_tour_name(client, staff_headers):
    assert (await client.post("/api/v1/tours", json=TOUR_BODY, headers=staff_headers)).status_code == 201
    r = await client.post("/api/v1/tours", json=TOUR_BODY, headers=staff_headers)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_update_renames_and_reslugs(client, make_tour, staff_headers):
    tour = await make_tour("The Sea Explorer")
    r = await client.patch(
        f"/api/v1/tours/{tour.id}",
        json={"name": "The Sea Adventurer", "price_discount": 100},
        headers=staff_headers,
    )
    assert r.status_code == 200
    data = r.json()["data"]["tour"]
    assert data["slug"] == "the-sea-adventurer"
    assert data["price_discount"] == 100


@pytest.mark.asyncio
async def test_update_discount_checked_against_stored_price(client, make_tour, staff_headers):
    tour = await make_tour("The Snow Adventurer", price=300)
    r = await client.patch(
        f"/api/v1/tours/{tour.id}", json={"price_discount": 350}, headers=staff_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_assign_guides(client, make_tour, make_user, staff_headers):
    tour = await make_tour("The City Wanderer")
    guide = await make_user("g@example.com", role=Role.GUIDE, name="Guide")
    tourist = await make_user("t@example.com")

    r = await client.patch(
        f"/api/v1/tours/{tour.id}", json={"guides": [str(guide.id)]}, headers=staff_headers
    )
    assert r.status_code == 200
    assert [g["name"] for g in r.json()["data"]["tour"]["guides"]] == ["Guide"]

    r = await client.patch(
        f"/api/v1/tours/{tour.id}", json={"guides": [str(tourist.id)]}, headers=staff_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_tour(client, make_tour, staff_headers):
    tour = await make_tour("The Park Camper")
    r = await client.delete(f"/api/v1/tours/{tour.id}", headers=staff_headers)
    assert r.status_code == 204
    assert (await client.get(f"/api/v1/tours/{tour.id}")).status_code == 404


# ═══════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_filters_sorts_and_projects(client, make_tour):
    await make_tour("The Forest Hiker", price=397)
    await make_tour("The Sea Explorer", price=497, difficulty="medium")
    await make_tour("The Snow Adventurer", price=997, difficulty="difficult")

    r = await client.get("/api/v1/tours?price[lt]=900&sort=-price&fields=name,price")
    assert r.status_code == 200
    body = r.json()
    assert body["results"] == 2
    tours = body["data"]["tours"]
    assert [t["name"] for t in tours] == ["The Sea Explorer", "The Forest Hiker"]
    assert set(tours[0]) == {"id", "name", "price"}


@pytest.mark.asyncio
async def test_list_repeated_filter_matches_any(client, make_tour):
    await make_tour("The Forest Hiker", duration=5)
    await make_tour("The Sea Explorer", duration=7)
    await make_tour("The Snow Adventurer", duration=9)

    r = await client.get("/api/v1/tours?duration=5&duration=9&sort=name&sort=duration")
    assert r.status_code == 200
    assert [t["name"] for t in r.json()["data"]["tours"]] == [
        "The Forest Hiker",
        "The Snow Adventurer",
    ]


@pytest.mark.asyncio
async def test_pagination(client, make_tour):
    for i, price in enumerate([100, 200, 300]):
        await make_tour(f"Tour number {i} abc", price=price)
    r = await client.get("/api/v1/tours?sort=price&limit=2&page=2")
    assert [t["price"] for t in r.json()["data"]["tours"]] == [300]


@pytest.mark.asyncio
async def test_secret_tours_hidden(client, make_tour):
    await make_tour("The Public Wanderer")
    secret = await make_tour("The Secret Wanderer", secret=True)
    r = await client.get("/api/v1/tours")
    assert [t["name"] for t in r.json()["data"]["tours"]] == ["The Public Wanderer"]
    assert (await client.get(f"/api/v1/tours/{secret.id}")).status_code == 404


@pytest.mark.asyncio
async def test_top_five_cheap(client, make_tour):
    for i in range(6):
        await make_tour(f"Cheap tour number {i}", price=100 + i * 10, ratings_average=4.0 + i * 0.1)
    r = await client.get("/api/v1/tours/top-5-cheap")
    assert r.status_code == 200
    tours = r.json()["data"]["tours"]
    assert len(tours) == 5
    assert tours[0]["name"] == "Cheap tour number 5"
    assert set(tours[0]) == {"id", "name", "price", "ratings_average", "summary", "difficulty"}


@pytest.mark.asyncio
async def test_get_unknown_tour(client):
    r = await client.get("/api/v1/tours/00000000-0000-0000-0000-000000000000")
    assert r.status_code == 404
    assert r.json() == {"status": "fail", "message": "No tour found with that ID"}


# ═══════════════════════════════════════════════════════════
# Aggregates
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_tour_stats(client, make_tour):
    await make_tour("Easy tour number one", price=400, ratings_average=4.8, ratings_quantity=3)
    await make_tour("Easy tour number two", price=600, ratings_average=4.6, ratings_quantity=1)
    await make_tour("Hard tour number one", price=1000, difficulty="difficult", ratings_average=4.9)
    await make_tour("Badly rated tour one", price=50, ratings_average=3.0)

    r = await client.get("/api/v1/tours/tour-stats")
    assert r.status_code == 200
    stats = r.json()["data"]["stats"]
    assert [s["difficulty"] for s in stats] == ["EASY", "DIFFICULT"]
    easy = stats[0]
    assert easy["num_tours"] == 2
    assert easy["num_ratings"] == 4
    assert easy["avg_price"] == 500
    assert easy["min_price"] == 400
    assert easy["max_price"] == 600


@pytest.mark.asyncio
async def test_monthly_plan(client, make_tour, make_user, token_for, auth):
    utc = timezone.utc
    await make_tour("The Forest Hiker", start_dates=[
        datetime(2021, 4, 25, tzinfo=utc), datetime(2021, 7, 20, tzinfo=utc),
    ])
    await make_tour("The Sea Explorer", start_dates=[
        datetime(2021, 7, 5, tzinfo=utc), datetime(2022, 1, 1, tzinfo=utc),
    ])
    guide = await make_user("guide@example.com", role=Role.GUIDE)

    r = await client.get("/api/v1/tours/monthly-plan/2021", headers=auth(token_for(guide)))
    assert r.status_code == 200
    plan = r.json()["data"]["plan"]
    assert plan[0]["month"] == 7
    assert plan[0]["num_tour_starts"] == 2
    assert sorted(plan[0]["tours"]) == ["The Forest Hiker", "The Sea Explorer"]
    assert plan[1] == {"month": 4, "num_tour_starts": 1, "tours": ["The Forest Hiker"]}


@pytest.mark.asyncio
async def test_monthly_plan_requires_staff(client, make_user, token_for, auth):
    user = await make_user("u@example.com")
    r = await client.get("/api/v1/tours/monthly-plan/2021", headers=auth(token_for(user)))
    assert r.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("year", [0, 9999])
async def test_monthly_plan_year_out_of_range(client, make_user, token_for, auth, year):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    r = await client.get(f"/api/v1/tours/monthly-plan/{year}", headers=auth(token_for(admin)))
    assert r.status_code == 400
    assert r.json() == {"status": "fail", "message": "Year must be between 1 and 9998"}


@pytest.mark.asyncio
async def test_monthly_plan_last_supported_year(client, make_user, token_for, auth):
    admin = await make_user("admin@example.com", role=Role.ADMIN)
    r = await client.get("/api/v1/tours/monthly-plan/9998", headers=auth(token_for(admin)))
    assert r.status_code == 200
    assert r.json()["data"]["plan"] == []


# ═══════════════════════════════════════════════════════════
# Geo
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_tours_within_radius(client, make_tour):
    await make_tour("Los Angeles walker", start=(34.0522, -118.2437))
    await make_tour("New York walker abc", start=(40.7128, -74.0060))
    await make_tour("Tour without start", start=None)

    r = await client.get("/api/v1/tours/tours-within/400/center/34.111745,-118.113491/unit/mi")
    assert r.status_code == 200
    assert [t["name"] for t in r.json()["data"]["tours"]] == ["Los Angeles walker"]


@pytest.mark.asyncio
async def test_distances_sorted(client, make_tour):
    await make_tour("New York walker abc", start=(40.7128, -74.0060))
    await make_tour("Los Angeles walker", start=(34.0522, -118.2437))

    r = await client.get("/api/v1/tours/distances/34.111745,-118.113491/unit/km")
    distances = r.json()["data"]["distances"]
    assert [d["name"] for d in distances] == ["Los Angeles walker", "New York walker abc"]
    assert distances[0]["distance"] < 20
    assert 3800 < distances[1]["distance"] < 4000


@pytest.mark.asyncio
async def test_bad_latlng(client):
    r = await client.get("/api/v1/tours/distances/not-a-point/unit/km")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_bad_unit(client):
    r = await client.get("/api/v1/tours/distances/34.1,-118.1/unit/furlongs")
    assert r.status_code == 400
