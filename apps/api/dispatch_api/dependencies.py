from fastapi import Depends
from sqlalchemy.orm import Session

from dispatch_api.config import settings
from dispatch_api.db.session import get_db
from dispatch_api.integrations.cache_client import CacheInvalidator, get_cache_invalidator
from dispatch_api.integrations.notification_client import NotificationSink, get_notification_sink
from dispatch_api.services.connection_registry import InMemoryConnectionRegistry
from dispatch_api.services.dispatch_service import DispatchOrchestrator
from dispatch_api.services.geo_index import DriverGeoIndex

# Process-wide state shared by every request
driver_index = DriverGeoIndex(cell_deg=settings.geo_index_cell_deg)
connection_registry = InMemoryConnectionRegistry()


def get_driver_index() -> DriverGeoIndex:
    return driver_index


def get_connection_registry() -> InMemoryConnectionRegistry:
    return connection_registry


def get_orchestrator(
    db: Session = Depends(get_db),
    index: DriverGeoIndex = Depends(get_driver_index),
    notifier: NotificationSink = Depends(get_notification_sink),
    cache: CacheInvalidator = Depends(get_cache_invalidator),
    registry: InMemoryConnectionRegistry = Depends(get_connection_registry),
) -> DispatchOrchestrator:
    return DispatchOrchestrator(
        db=db,
        index=index,
        notifier=notifier,
        cache=cache,
        registry=registry,
        config=settings,
    )
