import os
import tempfile
from collections.abc import Callable

os.environ.setdefault("DISPATCH_TESTING", "true")
os.environ.setdefault(
    "DISPATCH_DATABASE_URL",
    f"sqlite+pysqlite:///{os.path.join(tempfile.gettempdir(), 'dispatch_api_test.db')}",
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import dispatch_api.models  # noqa: E402,F401
from dispatch_api.auth.jwt import issue_user_token  # noqa: E402
from dispatch_api.config import settings  # noqa: E402
from dispatch_api.db.base import Base  # noqa: E402
from dispatch_api.db.session import engine as app_engine  # noqa: E402
from dispatch_api.dependencies import connection_registry, driver_index  # noqa: E402
from dispatch_api.main import app  # noqa: E402
from dispatch_api.models.chef import Chef  # noqa: E402
from dispatch_api.models.driver import Driver, DriverAccountStatus  # noqa: E402
from dispatch_api.models.order import Order  # noqa: E402
from dispatch_api.observability import metrics_store  # noqa: E402
from dispatch_api.services.connection_registry import InMemoryConnectionRegistry  # noqa: E402
from dispatch_api.services.dispatch_service import DispatchOrchestrator  # noqa: E402
from dispatch_api.services.drivers_service import register_driver  # noqa: E402
from dispatch_api.services.geo_index import DriverGeoIndex  # noqa: E402
from dispatch_api.services.orders_service import create_chef, create_order  # noqa: E402

# Lekki kitchen and a Yaba drop-off, about 11.7 km apart
CHEF_LAT, CHEF_LNG = 6.4281, 3.4219
DROP_LAT, DROP_LNG = 6.5244, 3.3792

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []

    def notify(self, target_ref: str, kind: str, payload: dict) -> bool:
        self.sent.append((target_ref, kind, payload))
        return True

    def kinds_for(self, target_ref: str) -> list[str]:
        return [kind for target, kind, _ in self.sent if target == target_ref]


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, target_ref: str, kind: str, payload: dict) -> bool:
        self.calls += 1
        raise RuntimeError(f"notification service down for {target_ref}")


class RecordingCache:
    def __init__(self) -> None:
        self.invalidated: list[str] = []

    def invalidate(self, key: str) -> bool:
        self.invalidated.append(key)
        return True


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_process_state():
    metrics_store.reset()
    driver_index.clear()
    connection_registry.clear()
    yield


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str, str], dict[str, str]]:
    def _headers(role: str, sub: str) -> dict[str, str]:
        token = issue_user_token(sub, role, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def geo_index() -> DriverGeoIndex:
    return DriverGeoIndex(cell_deg=settings.geo_index_cell_deg)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def session_factory() -> sessionmaker:
    return TestingSessionLocal


@pytest.fixture
def cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def registry() -> InMemoryConnectionRegistry:
    return InMemoryConnectionRegistry()


@pytest.fixture
def orchestrator(db_session, geo_index, notifier, cache, registry) -> DispatchOrchestrator:
    return DispatchOrchestrator(
        db=db_session, index=geo_index, notifier=notifier, cache=cache, registry=registry
    )


@pytest.fixture
def make_chef(db_session) -> Callable[..., Chef]:
    def _make(**overrides) -> Chef:
        fields = {
            "full_name": "Mama Put Kitchen",
            "phone": "+2348000000001",
            "lat": CHEF_LAT,
            "lng": CHEF_LNG,
            "street_address": "12 Admiralty Way",
            "city": "Lekki",
            "state": "Lagos",
            "pickup_instructions": "Ring the bell at the side gate",
        }
        fields.update(overrides)
        return create_chef(db_session, **fields)

    return _make


@pytest.fixture
def make_order(db_session, make_chef) -> Callable[..., Order]:
    def _make(chef: Chef | None = None, **overrides) -> Order:
        chef = chef or make_chef()
        fields = {
            "customer_id": "customer-1",
            "chef_id": chef.id,
            "delivery_address": "5 Herbert Macaulay Way, Yaba",
            "delivery_lat": DROP_LAT,
            "delivery_lng": DROP_LNG,
            "delivery_area": "Yaba",
            "delivery_notes": "Leave with security",
        }
        fields.update(overrides)
        return create_order(db_session, **fields)

    return _make


@pytest.fixture
def make_driver(db_session) -> Callable[..., Driver]:
    """Approved, online driver placed in ``index`` at the given position."""

    def _make(
        index: DriverGeoIndex,
        *,
        lat: float = CHEF_LAT + 0.01,
        lng: float = CHEF_LNG,
        rating: float = 4.5,
        name: str = "Tunde",
        account_status: DriverAccountStatus = DriverAccountStatus.APPROVED,
    ) -> Driver:
        driver = register_driver(
            db_session,
            full_name=name,
            phone="+2348000000002",
            account_status=account_status,
            rating=rating,
            is_online=True,
        )
        driver.current_lat = lat
        driver.current_lng = lng
        db_session.commit()
        index.upsert(driver.id, lat, lng)
        return driver

    return _make
