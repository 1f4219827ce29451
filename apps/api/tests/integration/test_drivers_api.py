from datetime import datetime, timezone

from dispatch_api.config import settings
from dispatch_api.dependencies import driver_index

CHEF_LAT, CHEF_LNG = 6.4281, 3.4219


def test_location_heartbeat_updates_index_and_active_track(
    client, kitchen, headers, create_assignment
):
    driver_id = kitchen["driver"].id
    assignment_id = create_assignment()["id"]
    client.post(f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"])

    response = client.put(
        "/api/v1/drivers/me/location",
        json={"lat": 6.4300, "lng": 3.4200, "speed": 8.5, "heading": 90},
        headers=headers["driver"],
    )

    assert response.status_code == 200
    assert response.json()["active_assignment_id"] == assignment_id
    assert driver_index.position(driver_id) == (6.4300, 3.4200)

    track = client.get(
        f"/api/v1/assignments/{assignment_id}", headers=headers["driver"]
    ).json()["driver_track"]
    assert track[-1]["lat"] == 6.43
    assert track[-1]["speed"] == 8.5


def test_location_heartbeat_rejects_out_of_range_coordinates(client, headers):
    response = client.put(
        "/api/v1/drivers/me/location", json={"lat": 95, "lng": 3.42}, headers=headers["driver"]
    )

    assert response.status_code == 422


def test_going_offline_removes_driver_from_matching(client, kitchen, headers):
    driver_id = kitchen["driver"].id

    offline = client.put(
        "/api/v1/drivers/me/availability", json={"is_online": False}, headers=headers["driver"]
    )
    assert offline.status_code == 200
    assert offline.json()["is_online"] is False
    assert driver_id not in driver_index

    online = client.put(
        "/api/v1/drivers/me/availability", json={"is_online": True}, headers=headers["driver"]
    )
    assert online.json()["is_online"] is True
    assert driver_id in driver_index


def test_nearby_drivers_for_admin(client, kitchen, headers):
    response = client.get(
        f"/api/v1/drivers/nearby?lat={CHEF_LAT}&lng={CHEF_LNG}&radius_km=5",
        headers=headers["admin"],
    )

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["driver"]["id"] for item in items] == [str(kitchen["driver"].id)]
    assert 1.0 < items[0]["distance_km"] < 1.2
    assert items[0]["load"] == 0


def test_my_assignments_returns_active_delivery_with_code(
    client, headers, create_assignment
):
    created = create_assignment()
    client.post(f"/api/v1/assignments/{created['id']}/accept", headers=headers["driver"])

    response = client.get("/api/v1/drivers/me/assignments", headers=headers["driver"])

    items = response.json()["items"]
    assert [item["status"] for item in items] == ["assigned"]
    assert items[0]["confirmation_code"] == created["confirmation_code"]


def test_my_assignments_skips_offers_outside_radius(
    client, headers, create_assignment, monkeypatch
):
    create_assignment()
    monkeypatch.setattr(settings, "driver_offer_radius_km", 0.5)

    response = client.get("/api/v1/drivers/me/assignments", headers=headers["driver"])

    assert response.json()["items"] == []


def test_history_and_daily_stats_after_a_delivery(client, headers, create_assignment):
    created = create_assignment()
    assignment_id = created["id"]
    client.post(f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"])
    client.post(
        f"/api/v1/assignments/{assignment_id}/pickup",
        json={"confirmed": True},
        headers=headers["driver"],
    )
    client.post(
        f"/api/v1/assignments/{assignment_id}/deliver",
        json={"confirmation_code": created["confirmation_code"]},
        headers=headers["driver"],
    )

    history = client.get("/api/v1/drivers/me/history", headers=headers["driver"])
    assert history.status_code == 200
    assert history.json()["total"] == 1
    assert history.json()["items"][0]["id"] == assignment_id
    assert history.json()["items"][0]["confirmation_code"] is None

    today = datetime.now(timezone.utc).date().isoformat()
    stats = client.get(f"/api/v1/drivers/me/stats?date={today}", headers=headers["driver"])
    assert stats.status_code == 200
    assert stats.json() == {
        "day": today,
        "total_deliveries": 1,
        "completed_deliveries": 1,
        "earnings": 1670,
        "distance_km": 11.7,
    }


def test_history_and_stats_are_driver_only(client, headers):
    for path in ("/api/v1/drivers/me/history", "/api/v1/drivers/me/stats"):
        assert client.get(path, headers=headers["customer"]).status_code == 403
