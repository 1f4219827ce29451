"""Distance, earnings and schedule estimates for delivery assignments.

Everything here is a pure function of its inputs. Money is computed with
``Decimal`` so the same distance and priority always produce the same
breakdown, whatever platform the service runs on.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from dispatch_api.errors import ValidationFailedError
from dispatch_api.models.assignment import AssignmentPriority

EARTH_RADIUS_KM = 6371.0

DEFAULT_BASE_FEE = 500
DEFAULT_PER_KM_RATE = 100
DEFAULT_MIN_DISTANCE_KM = 0.5

PRIORITY_MULTIPLIERS: dict[AssignmentPriority, Decimal] = {
    AssignmentPriority.LOW: Decimal("1"),
    AssignmentPriority.NORMAL: Decimal("1"),
    AssignmentPriority.HIGH: Decimal("1.2"),
    AssignmentPriority.URGENT: Decimal("1.5"),
}

_DISTANCE_STEP = Decimal("0.1")


@dataclass(frozen=True)
class EarningsBreakdown:
    base_fee: int
    distance_fee: int
    total_earning: int


@dataclass(frozen=True)
class DeliverySchedule:
    duration_min: int
    estimated_pickup_time: datetime
    estimated_delivery_time: datetime


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    lat1_rad, lng1_rad, lat2_rad, lng2_rad = map(math.radians, [lat1, lng1, lat2, lng2])
    dlat = lat2_rad - lat1_rad
    dlng = lng2_rad - lng1_rad
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def delivery_distance_km(
    pickup_lat: float,
    pickup_lng: float,
    delivery_lat: float,
    delivery_lng: float,
    *,
    min_distance_km: float = DEFAULT_MIN_DISTANCE_KM,
) -> float:
    """Great-circle trip length rounded to 0.1 km, never below the minimum."""
    raw = haversine_km(pickup_lat, pickup_lng, delivery_lat, delivery_lng)
    rounded = Decimal(str(raw)).quantize(_DISTANCE_STEP, rounding=ROUND_HALF_UP)
    return max(float(min_distance_km), float(rounded))


def priority_multiplier(priority: AssignmentPriority | str) -> Decimal:
    return PRIORITY_MULTIPLIERS[AssignmentPriority(priority)]


def calculate_earnings(
    distance_km: float,
    priority: AssignmentPriority | str = AssignmentPriority.NORMAL,
    *,
    base_fee: int = DEFAULT_BASE_FEE,
    per_km_rate: int = DEFAULT_PER_KM_RATE,
) -> EarningsBreakdown:
    if not math.isfinite(distance_km) or distance_km < 0:
        raise ValidationFailedError("distance_km must be a finite, non-negative number")

    distance_fee = _floor(Decimal(str(distance_km)) * Decimal(per_km_rate))
    total = _floor((Decimal(base_fee) + Decimal(distance_fee)) * priority_multiplier(priority))
    return EarningsBreakdown(base_fee=base_fee, distance_fee=distance_fee, total_earning=total)


def estimate_duration_min(
    distance_km: float,
    *,
    minutes_per_km: int = 3,
    min_duration_min: int = 30,
) -> int:
    return max(min_duration_min, math.ceil(distance_km * minutes_per_km))


def estimate_schedule(
    distance_km: float,
    now: datetime,
    *,
    pickup_lead_min: int = 15,
    minutes_per_km: int = 3,
    min_duration_min: int = 30,
) -> DeliverySchedule:
    duration = estimate_duration_min(
        distance_km, minutes_per_km=minutes_per_km, min_duration_min=min_duration_min
    )
    pickup_at = now + timedelta(minutes=pickup_lead_min)
    return DeliverySchedule(
        duration_min=duration,
        estimated_pickup_time=pickup_at,
        estimated_delivery_time=pickup_at + timedelta(minutes=duration),
    )


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))
