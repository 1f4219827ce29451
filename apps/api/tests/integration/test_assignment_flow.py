from dispatch_api.dependencies import driver_index
from dispatch_api.services.drivers_service import get_driver


def _detail_code(response) -> str:
    return response.json()["detail"]["code"]


def test_delivery_lifecycle_over_http(client, kitchen, headers, api_notifier, create_assignment):
    created = create_assignment(special_instructions="Keep upright")
    assignment_id = created["id"]
    driver_id = str(kitchen["driver"].id)

    assert created["status"] == "available"
    assert created["driver_id"] is None
    assert created["total_distance_km"] == 11.7
    assert created["total_earning"] == 1670
    assert len(created["confirmation_code"]) == 6
    assert "new_delivery_available" in api_notifier.kinds_for(driver_id)

    offers = client.get("/api/v1/drivers/me/assignments", headers=headers["driver"])
    assert offers.status_code == 200
    assert [item["id"] for item in offers.json()["items"]] == [assignment_id]

    accepted = client.post(
        f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"]
    )
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "assigned"
    assert accepted.json()["driver_id"] == driver_id
    assert accepted.json()["confirmation_code"] == created["confirmation_code"]

    picked = client.post(
        f"/api/v1/assignments/{assignment_id}/pickup",
        json={"confirmed": True, "notes": "Two bags"},
        headers=headers["driver"],
    )
    assert picked.status_code == 200
    assert picked.json()["status"] == "picked_up"
    assert picked.json()["confirmation_code"] is None

    delivered = client.post(
        f"/api/v1/assignments/{assignment_id}/deliver",
        json={"confirmation_code": created["confirmation_code"]},
        headers=headers["driver"],
    )
    assert delivered.status_code == 200
    assert delivered.json()["status"] == "delivered"
    assert delivered.json()["delivered_at"] is not None

    for_customer = client.get(
        f"/api/v1/orders/{kitchen['order'].id}/assignment", headers=headers["customer"]
    )
    assert for_customer.status_code == 200
    assert for_customer.json()["status"] == "delivered"

    events = client.get(f"/api/v1/assignments/{assignment_id}/events", headers=headers["admin"])
    assert [event["to_status"] for event in events.json()["items"]] == [
        "available",
        "assigned",
        "picked_up",
        "delivered",
    ]
    assert api_notifier.kinds_for(kitchen["order"].customer_id) == [
        "driver_assigned",
        "order_out_for_delivery",
        "order_delivered",
    ]


def test_wrong_code_and_repeated_actions_return_structured_errors(
    client, headers, create_assignment
):
    assignment_id = create_assignment()["id"]
    client.post(f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"])
    client.post(
        f"/api/v1/assignments/{assignment_id}/pickup",
        json={"confirmed": True},
        headers=headers["driver"],
    )

    wrong = client.post(
        f"/api/v1/assignments/{assignment_id}/deliver",
        json={"confirmation_code": "000000"},
        headers=headers["driver"],
    )
    assert wrong.status_code == 400
    assert _detail_code(wrong) == "INVALID_CONFIRMATION_CODE"

    non_alphanumeric = client.post(
        f"/api/v1/assignments/{assignment_id}/deliver",
        json={"confirmation_code": "ÄBC123"},
        headers=headers["driver"],
    )
    assert non_alphanumeric.status_code == 422

    again = client.post(
        f"/api/v1/assignments/{assignment_id}/pickup",
        json={"confirmed": True},
        headers=headers["driver"],
    )
    assert again.status_code == 409
    assert again.json()["detail"] == {
        "code": "INVALID_TRANSITION",
        "message": "Assignment already picked up",
    }


def test_duplicate_assignment_for_order_is_rejected(client, kitchen, headers, create_assignment):
    create_assignment()

    duplicate = client.post(
        "/api/v1/assignments",
        json={"order_id": str(kitchen["order"].id)},
        headers=headers["admin"],
    )

    assert duplicate.status_code == 409
    assert _detail_code(duplicate) == "ASSIGNMENT_ALREADY_EXISTS"


def test_pickup_far_from_kitchen_is_rejected(client, headers, create_assignment):
    assignment_id = create_assignment()["id"]
    client.post(f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"])

    response = client.post(
        f"/api/v1/assignments/{assignment_id}/pickup",
        json={"lat": 6.5244, "lng": 3.3792},
        headers=headers["driver"],
    )

    assert response.status_code == 400
    assert _detail_code(response) == "VALIDATION_FAILED"


def test_auto_assign_and_dispatch_run(client, kitchen, headers, create_assignment):
    assignment_id = create_assignment()["id"]

    matched = client.post(
        f"/api/v1/assignments/{assignment_id}/auto-assign", headers=headers["admin"]
    )
    assert matched.status_code == 200
    assert matched.json()["status"] == "assigned"
    assert matched.json()["driver_id"] == str(kitchen["driver"].id)

    sweep = client.post("/api/v1/dispatch/run", headers=headers["admin"])
    assert sweep.status_code == 200
    assert sweep.json() == {
        "assigned_count": 0,
        "searching_count": 0,
        "conflict_count": 0,
        "assignments": [],
    }


def test_dispatch_run_reports_searching_without_drivers(client, headers, create_assignment):
    create_assignment()
    driver_index.clear()

    sweep = client.post(
        "/api/v1/dispatch/run", json={"max_assignments": 5}, headers=headers["admin"]
    )

    assert sweep.status_code == 200
    assert sweep.json()["searching_count"] == 1
    assert sweep.json()["assigned_count"] == 0


def test_customer_cancel_releases_driver(client, kitchen, headers, create_assignment, db_session):
    assignment_id = create_assignment()["id"]
    client.post(f"/api/v1/assignments/{assignment_id}/accept", headers=headers["driver"])

    cancelled = client.post(
        f"/api/v1/assignments/{assignment_id}/cancel",
        json={"reason": "Changed my mind"},
        headers=headers["customer"],
    )

    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancelled_by"] == "customer"
    db_session.expire_all()
    assert get_driver(db_session, kitchen["driver"].id).is_available is True


def test_admin_status_patch_assigns_driver(client, kitchen, headers, create_assignment):
    assignment_id = create_assignment()["id"]

    response = client.patch(
        f"/api/v1/assignments/{assignment_id}/status",
        json={"status": "assigned", "driver_id": str(kitchen["driver"].id)},
        headers=headers["admin"],
    )

    assert response.status_code == 200
    assert response.json()["status"] == "assigned"


def test_admin_lists_assignments_by_status(client, headers, create_assignment):
    create_assignment()

    listed = client.get("/api/v1/assignments?status=available", headers=headers["admin"])
    empty = client.get("/api/v1/assignments?status=delivered", headers=headers["admin"])

    assert listed.json()["total"] == 1
    assert empty.json()["total"] == 0
    assert empty.json()["items"] == []


def test_order_without_assignment_returns_not_found(client, kitchen, headers):
    response = client.get(
        f"/api/v1/orders/{kitchen['order'].id}/assignment", headers=headers["admin"]
    )

    assert response.status_code == 404
    assert _detail_code(response) == "ASSIGNMENT_NOT_FOUND"
