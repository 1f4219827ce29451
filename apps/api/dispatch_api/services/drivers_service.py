import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from dispatch_api.errors import DriverNotFoundError, DriverUnavailableError, ValidationFailedError
from dispatch_api.models.assignment import ACTIVE_DRIVER_STATUSES, DriverAssignment
from dispatch_api.models.driver import Driver, DriverAccountStatus
from dispatch_api.observability import log_event
from dispatch_api.services.geo_index import DriverGeoIndex

_DRIVER_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class NearbyDriver:
    driver: Driver
    distance_km: float
    load: int


def _generate_driver_code() -> str:
    return "DRV-" + "".join(secrets.choice(_DRIVER_CODE_ALPHABET) for _ in range(6))


def register_driver(
    db: Session,
    *,
    full_name: str,
    phone: str,
    account_status: DriverAccountStatus = DriverAccountStatus.PENDING,
    rating: float = 0.0,
    is_online: bool = False,
) -> Driver:
    driver_code = _generate_driver_code()
    while db.scalar(select(Driver.id).where(Driver.driver_code == driver_code)):
        driver_code = _generate_driver_code()

    driver = Driver(
        driver_code=driver_code,
        full_name=full_name,
        phone=phone,
        account_status=account_status,
        rating=rating,
        is_online=is_online,
        is_available=True,
    )
    db.add(driver)
    db.commit()
    db.refresh(driver)
    return driver


def get_driver(db: Session, driver_id: uuid.UUID) -> Driver:
    driver = db.get(Driver, driver_id)
    if not driver:
        raise DriverNotFoundError()
    return driver


def active_assignment_count(
    db: Session, driver_id: uuid.UUID, *, exclude_assignment_id: uuid.UUID | None = None
) -> int:
    query = select(func.count(DriverAssignment.id)).where(
        DriverAssignment.driver_id == driver_id,
        DriverAssignment.status.in_(ACTIVE_DRIVER_STATUSES),
    )
    if exclude_assignment_id is not None:
        query = query.where(DriverAssignment.id != exclude_assignment_id)
    return db.scalar(query) or 0


def find_nearby(
    db: Session,
    index: DriverGeoIndex,
    lat: float,
    lng: float,
    radius_km: float,
    *,
    limit: int | None = None,
) -> list[NearbyDriver]:
    """Dispatchable drivers around a point, best candidate first.

    Only approved drivers that are online and not holding a delivery are
    returned. Ranking is rating (desc), current load (asc), distance (asc),
    then id so equal candidates always come back in the same order.
    """
    hits = index.within(lat, lng, radius_km)
    if not hits:
        return []

    distances = dict(hits)
    drivers = db.scalars(
        select(Driver).where(
            Driver.id.in_(list(distances)),
            Driver.account_status == DriverAccountStatus.APPROVED,
            Driver.is_online.is_(True),
            Driver.is_available.is_(True),
        )
    ).all()
    if not drivers:
        return []

    loads = dict(
        db.execute(
            select(DriverAssignment.driver_id, func.count(DriverAssignment.id))
            .where(
                DriverAssignment.driver_id.in_([driver.id for driver in drivers]),
                DriverAssignment.status.in_(ACTIVE_DRIVER_STATUSES),
            )
            .group_by(DriverAssignment.driver_id)
        ).all()
    )

    candidates = [
        NearbyDriver(driver=driver, distance_km=distances[driver.id], load=loads.get(driver.id, 0))
        for driver in drivers
    ]
    candidates.sort(
        key=lambda item: (-item.driver.rating, item.load, item.distance_km, str(item.driver.id))
    )
    if limit is not None:
        return candidates[:limit]
    return candidates


def reserve_driver(
    db: Session, driver_id: uuid.UUID, *, for_assignment_id: uuid.UUID | None = None
) -> None:
    """Claim a driver for one delivery, or raise if another claim won."""
    driver = get_driver(db, driver_id)
    if driver.account_status != DriverAccountStatus.APPROVED:
        raise DriverUnavailableError("Driver account is not approved")
    if active_assignment_count(db, driver_id, exclude_assignment_id=for_assignment_id) > 0:
        raise DriverUnavailableError()

    result = db.execute(
        update(Driver)
        .where(Driver.id == driver_id, Driver.is_available.is_(True))
        .values(is_available=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise DriverUnavailableError("Driver is no longer available")


def release_driver(db: Session, driver_id: uuid.UUID) -> None:
    db.execute(
        update(Driver)
        .where(Driver.id == driver_id)
        .values(is_available=True)
        .execution_options(synchronize_session=False)
    )


def credit_driver(db: Session, driver_id: uuid.UUID, *, earning: int, distance_km: float) -> None:
    db.execute(
        update(Driver)
        .where(Driver.id == driver_id)
        .values(
            total_deliveries=Driver.total_deliveries + 1,
            total_earnings=Driver.total_earnings + earning,
            total_distance_km=Driver.total_distance_km + distance_km,
        )
        .execution_options(synchronize_session=False)
    )


def set_online(db: Session, index: DriverGeoIndex, driver: Driver, is_online: bool) -> Driver:
    driver.is_online = is_online
    db.commit()
    db.refresh(driver)
    if is_online and driver.has_location:
        index.upsert(driver.id, driver.current_lat, driver.current_lng)
    elif not is_online:
        index.remove(driver.id)
    log_event(f"driver_online={is_online}", driver_id=driver.id)
    return driver


def record_location(
    db: Session,
    index: DriverGeoIndex,
    driver: Driver,
    *,
    lat: float,
    lng: float,
    now: datetime,
    speed: float | None = None,
    heading: float | None = None,
    max_track_points: int = 50,
) -> DriverAssignment | None:
    """Store a location heartbeat and return the driver's active assignment, if any."""
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValidationFailedError("Coordinates out of range")

    driver.current_lat = lat
    driver.current_lng = lng
    driver.location_updated_at = now

    active = db.scalar(
        select(DriverAssignment).where(
            DriverAssignment.driver_id == driver.id,
            DriverAssignment.status.in_(ACTIVE_DRIVER_STATUSES),
        )
    )
    if active is not None:
        point = {"lat": lat, "lng": lng, "timestamp": now.isoformat()}
        if speed is not None:
            point["speed"] = speed
        if heading is not None:
            point["heading"] = heading
        active.driver_track = [*(active.driver_track or []), point][-max_track_points:]

    db.commit()
    if driver.is_online:
        index.upsert(driver.id, lat, lng)
    return active


def rebuild_index(db: Session, index: DriverGeoIndex) -> int:
    """Load every online driver with a known position into ``index``."""
    index.clear()
    rows = db.execute(
        select(Driver.id, Driver.current_lat, Driver.current_lng).where(
            Driver.is_online.is_(True),
            Driver.current_lat.is_not(None),
            Driver.current_lng.is_not(None),
        )
    ).all()
    for driver_id, lat, lng in rows:
        index.upsert(driver_id, lat, lng)
    log_event(f"driver_index_rebuilt size={len(rows)}")
    return len(rows)
