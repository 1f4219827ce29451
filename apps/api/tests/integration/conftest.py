import pytest

from dispatch_api.dependencies import driver_index
from dispatch_api.integrations.notification_client import get_notification_sink


@pytest.fixture
def api_notifier(client, notifier):
    client.app.dependency_overrides[get_notification_sink] = lambda: notifier
    return notifier


@pytest.fixture
def kitchen(make_chef, make_order, make_driver):
    """One chef with a ready order and one approved driver online next door."""
    chef = make_chef()
    order = make_order(chef=chef)
    driver = make_driver(driver_index)
    return {"chef": chef, "order": order, "driver": driver}


@pytest.fixture
def headers(auth_headers, kitchen):
    return {
        "admin": auth_headers("ADMIN", "admin-1"),
        "chef": auth_headers("CHEF", str(kitchen["chef"].id)),
        "customer": auth_headers("CUSTOMER", kitchen["order"].customer_id),
        "other_customer": auth_headers("CUSTOMER", "customer-2"),
        "driver": auth_headers("DRIVER", str(kitchen["driver"].id)),
    }


@pytest.fixture
def create_assignment(client, kitchen, headers):
    def _create(**overrides) -> dict:
        body = {"order_id": str(kitchen["order"].id), **overrides}
        response = client.post("/api/v1/assignments", json=body, headers=headers["chef"])
        assert response.status_code == 201, response.text
        return response.json()

    return _create
