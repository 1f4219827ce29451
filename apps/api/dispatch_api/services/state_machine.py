"""Lifecycle of one delivery assignment.

Every function here is pure: it takes an immutable ``AssignmentState``
snapshot and returns a ``Transition`` describing the field changes and the
side effects the orchestrator must run. Nothing is persisted here.
"""

import enum
import hmac
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dispatch_api.errors import (
    AlreadyTerminalError,
    InvalidConfirmationCodeError,
    InvalidTransitionError,
    ValidationFailedError,
)
from dispatch_api.models.assignment import (
    TERMINAL_STATUSES,
    AssignmentStatus,
    CancelledBy,
    DriverAssignment,
)
from dispatch_api.models.order import OrderStatus
from dispatch_api.services.pricing import haversine_km

ASSIGNMENT_STATE_TRANSITIONS: dict[AssignmentStatus, set[AssignmentStatus]] = {
    AssignmentStatus.AVAILABLE: {AssignmentStatus.ASSIGNED, AssignmentStatus.CANCELLED},
    AssignmentStatus.ASSIGNED: {AssignmentStatus.PICKED_UP, AssignmentStatus.CANCELLED},
    AssignmentStatus.PICKED_UP: {AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED},
    AssignmentStatus.DELIVERED: set(),
    AssignmentStatus.CANCELLED: set(),
}

_STATUS_LABELS = {
    AssignmentStatus.AVAILABLE: "available",
    AssignmentStatus.ASSIGNED: "assigned",
    AssignmentStatus.PICKED_UP: "picked up",
    AssignmentStatus.DELIVERED: "delivered",
    AssignmentStatus.CANCELLED: "cancelled",
}


class EffectKind(str, enum.Enum):
    RESERVE_DRIVER = "reserve_driver"
    RELEASE_DRIVER = "release_driver"
    CREDIT_DRIVER = "credit_driver"
    SET_ORDER_STATUS = "set_order_status"
    ACTIVATE_SUBSCRIPTION = "activate_subscription"
    NOTIFY = "notify"
    INVALIDATE_ORDER_CACHE = "invalidate_order_cache"
    PUBLISH_STATUS = "publish_status"


# Committed in the same transaction as the status change
STORE_EFFECTS = frozenset(
    {
        EffectKind.RESERVE_DRIVER,
        EffectKind.RELEASE_DRIVER,
        EffectKind.CREDIT_DRIVER,
        EffectKind.SET_ORDER_STATUS,
        EffectKind.ACTIVATE_SUBSCRIPTION,
    }
)


class Recipient(str, enum.Enum):
    DRIVER = "driver"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class SideEffect:
    kind: EffectKind
    recipient: Recipient | None = None
    driver_id: uuid.UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_store_effect(self) -> bool:
        return self.kind in STORE_EFFECTS


@dataclass(frozen=True)
class AssignmentState:
    id: uuid.UUID
    order_id: uuid.UUID
    status: AssignmentStatus
    driver_id: uuid.UUID | None
    confirmation_code: str
    pickup_lat: float
    pickup_lng: float
    pickup_chef_name: str
    total_distance_km: float
    total_earning: int
    is_first_delivery: bool = False
    subscription_id: uuid.UUID | None = None
    estimated_delivery_time: datetime | None = None

    @classmethod
    def from_record(cls, assignment: DriverAssignment) -> "AssignmentState":
        return cls(
            id=assignment.id,
            order_id=assignment.order_id,
            status=AssignmentStatus(assignment.status),
            driver_id=assignment.driver_id,
            confirmation_code=assignment.confirmation_code,
            pickup_lat=assignment.pickup_lat,
            pickup_lng=assignment.pickup_lng,
            pickup_chef_name=assignment.pickup_chef_name,
            total_distance_km=assignment.total_distance_km,
            total_earning=assignment.total_earning,
            is_first_delivery=assignment.is_first_delivery,
            subscription_id=assignment.subscription_id,
            estimated_delivery_time=assignment.estimated_delivery_time,
        )


@dataclass(frozen=True)
class Transition:
    assignment_id: uuid.UUID
    order_id: uuid.UUID
    from_status: AssignmentStatus
    to_status: AssignmentStatus
    changes: dict[str, Any]
    effects: tuple[SideEffect, ...]
    message: str
    expected_driver_id: uuid.UUID | None = None

    @property
    def store_effects(self) -> tuple[SideEffect, ...]:
        return tuple(effect for effect in self.effects if effect.is_store_effect)

    @property
    def best_effort_effects(self) -> tuple[SideEffect, ...]:
        return tuple(effect for effect in self.effects if not effect.is_store_effect)


@dataclass(frozen=True)
class PickupConfirmation:
    confirmed: bool = False
    lat: float | None = None
    lng: float | None = None
    notes: str = ""
    photo_url: str | None = None


def ensure_valid_transition(current: AssignmentStatus, next_status: AssignmentStatus) -> None:
    if current in TERMINAL_STATUSES:
        raise AlreadyTerminalError(f"Assignment already {_STATUS_LABELS[current]}")

    if next_status not in ASSIGNMENT_STATE_TRANSITIONS[current]:
        if next_status == current:
            raise InvalidTransitionError(f"Assignment already {_STATUS_LABELS[current]}")
        raise InvalidTransitionError(
            f"Invalid state transition: {current.value} -> {next_status.value}"
        )


def _publish(status: AssignmentStatus) -> SideEffect:
    return SideEffect(EffectKind.PUBLISH_STATUS, data={"status": status.value})


def assign(
    state: AssignmentState,
    driver_id: uuid.UUID,
    *,
    now: datetime,
    notify_driver: bool = True,
) -> Transition:
    ensure_valid_transition(state.status, AssignmentStatus.ASSIGNED)

    effects = [
        SideEffect(EffectKind.RESERVE_DRIVER, driver_id=driver_id),
        SideEffect(EffectKind.SET_ORDER_STATUS, data={"status": OrderStatus.READY}),
    ]
    if notify_driver:
        effects.append(
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.DRIVER,
                driver_id=driver_id,
                data={
                    "kind": "new_assignment",
                    "title": "New Delivery Assignment",
                    "message": (
                        "You have a new delivery assignment. "
                        f"Pickup from {state.pickup_chef_name}"
                    ),
                },
            )
        )
    effects.extend(
        [
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.CUSTOMER,
                data={
                    "kind": "driver_assigned",
                    "title": "Driver Assigned",
                    "message": "A driver has been assigned to your order.",
                },
            ),
            SideEffect(EffectKind.INVALIDATE_ORDER_CACHE),
            _publish(AssignmentStatus.ASSIGNED),
        ]
    )
    return Transition(
        assignment_id=state.id,
        order_id=state.order_id,
        from_status=state.status,
        to_status=AssignmentStatus.ASSIGNED,
        changes={"driver_id": driver_id, "accepted_at": now},
        effects=tuple(effects),
        message="Assignment accepted",
    )


def confirm_pickup(
    state: AssignmentState,
    confirmation: PickupConfirmation,
    *,
    now: datetime,
    proximity_m: float,
) -> Transition:
    ensure_valid_transition(state.status, AssignmentStatus.PICKED_UP)

    if not confirmation.confirmed:
        if confirmation.lat is None or confirmation.lng is None:
            raise ValidationFailedError(
                "Pickup requires the driver location or an explicit confirmation"
            )
        distance_m = (
            haversine_km(state.pickup_lat, state.pickup_lng, confirmation.lat, confirmation.lng)
            * 1000
        )
        if distance_m > proximity_m:
            raise ValidationFailedError(
                f"Driver is {distance_m:.0f} m from the pickup location "
                f"(limit {proximity_m:.0f} m)"
            )

    return Transition(
        assignment_id=state.id,
        order_id=state.order_id,
        from_status=state.status,
        to_status=AssignmentStatus.PICKED_UP,
        changes={
            "picked_up_at": now,
            "pickup_notes": confirmation.notes,
            "pickup_photo_url": confirmation.photo_url,
        },
        effects=(
            SideEffect(EffectKind.SET_ORDER_STATUS, data={"status": OrderStatus.OUT_FOR_DELIVERY}),
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.CUSTOMER,
                data={
                    "kind": "order_out_for_delivery",
                    "title": "Order Out for Delivery!",
                    "message": (
                        "Your meal is on the way! Your delivery confirmation code is: "
                        f"{state.confirmation_code}. Please have this code ready for the driver."
                    ),
                    "confirmation_code": state.confirmation_code,
                    "estimated_delivery_time": (
                        state.estimated_delivery_time.isoformat()
                        if state.estimated_delivery_time
                        else None
                    ),
                },
            ),
            SideEffect(EffectKind.INVALIDATE_ORDER_CACHE),
            _publish(AssignmentStatus.PICKED_UP),
        ),
        message="Pickup confirmed",
    )


def codes_match(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(
        expected.strip().upper().encode(), supplied.strip().upper().encode()
    )


def confirm_delivery(
    state: AssignmentState,
    confirmation_code: str,
    *,
    now: datetime,
    notes: str = "",
    photo_url: str | None = None,
) -> Transition:
    ensure_valid_transition(state.status, AssignmentStatus.DELIVERED)

    if not confirmation_code or not codes_match(state.confirmation_code, confirmation_code):
        raise InvalidConfirmationCodeError()

    effects = [
        SideEffect(EffectKind.RELEASE_DRIVER, driver_id=state.driver_id),
        SideEffect(
            EffectKind.CREDIT_DRIVER,
            driver_id=state.driver_id,
            data={"earning": state.total_earning, "distance_km": state.total_distance_km},
        ),
        SideEffect(EffectKind.SET_ORDER_STATUS, data={"status": OrderStatus.DELIVERED}),
    ]
    if state.is_first_delivery and state.subscription_id is not None:
        effects.append(
            SideEffect(
                EffectKind.ACTIVATE_SUBSCRIPTION,
                data={"subscription_id": state.subscription_id},
            )
        )
    effects.extend(
        [
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.CUSTOMER,
                data={
                    "kind": "order_delivered",
                    "title": "Order delivered successfully!",
                    "message": "Your order has been delivered. We hope you enjoy your meal!",
                },
            ),
            SideEffect(EffectKind.INVALIDATE_ORDER_CACHE),
            _publish(AssignmentStatus.DELIVERED),
        ]
    )
    return Transition(
        assignment_id=state.id,
        order_id=state.order_id,
        from_status=state.status,
        to_status=AssignmentStatus.DELIVERED,
        changes={
            "delivered_at": now,
            "delivery_method": "code",
            "delivery_notes": notes,
            "delivery_photo_url": photo_url,
        },
        effects=tuple(effects),
        message="Delivery confirmed",
    )


def cancel(
    state: AssignmentState,
    *,
    cancelled_by: CancelledBy,
    now: datetime,
    reason: str = "",
    compensation_amount: int = 0,
) -> Transition:
    ensure_valid_transition(state.status, AssignmentStatus.CANCELLED)
    if compensation_amount < 0:
        raise ValidationFailedError("compensation_amount must be >= 0")

    effects: list[SideEffect] = []
    if state.driver_id is not None:
        effects.append(SideEffect(EffectKind.RELEASE_DRIVER, driver_id=state.driver_id))
    effects.append(SideEffect(EffectKind.SET_ORDER_STATUS, data={"status": OrderStatus.CANCELLED}))
    if state.driver_id is not None and cancelled_by != CancelledBy.DRIVER:
        effects.append(
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.DRIVER,
                driver_id=state.driver_id,
                data={
                    "kind": "assignment_cancelled",
                    "title": "Delivery Cancelled",
                    "message": f"The delivery from {state.pickup_chef_name} was cancelled.",
                },
            )
        )
    if cancelled_by != CancelledBy.CUSTOMER:
        effects.append(
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.CUSTOMER,
                data={
                    "kind": "delivery_cancelled",
                    "title": "Delivery Cancelled",
                    "message": "The delivery for your order was cancelled.",
                    "reason": reason,
                },
            )
        )
    effects.extend(
        [SideEffect(EffectKind.INVALIDATE_ORDER_CACHE), _publish(AssignmentStatus.CANCELLED)]
    )

    return Transition(
        assignment_id=state.id,
        order_id=state.order_id,
        from_status=state.status,
        to_status=AssignmentStatus.CANCELLED,
        changes={
            "cancelled_at": now,
            "cancelled_by": cancelled_by,
            "cancellation_reason": reason,
            "compensation_amount": compensation_amount,
        },
        effects=tuple(effects),
        message=f"Assignment cancelled by {cancelled_by.value}",
    )


def reassign(state: AssignmentState, new_driver_id: uuid.UUID, *, now: datetime) -> Transition:
    if state.status in TERMINAL_STATUSES:
        raise AlreadyTerminalError(f"Assignment already {_STATUS_LABELS[state.status]}")
    if state.status != AssignmentStatus.ASSIGNED:
        raise InvalidTransitionError(
            f"Only assigned deliveries can be reassigned (currently {state.status.value})"
        )
    if state.driver_id == new_driver_id:
        raise ValidationFailedError("Assignment is already held by this driver")

    return Transition(
        assignment_id=state.id,
        order_id=state.order_id,
        from_status=state.status,
        to_status=AssignmentStatus.ASSIGNED,
        changes={"driver_id": new_driver_id, "reassigned_at": now},
        effects=(
            SideEffect(EffectKind.RELEASE_DRIVER, driver_id=state.driver_id),
            SideEffect(EffectKind.RESERVE_DRIVER, driver_id=new_driver_id),
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.DRIVER,
                driver_id=new_driver_id,
                data={
                    "kind": "new_assignment",
                    "title": "New Delivery Assignment",
                    "message": (
                        "You have a new delivery assignment. "
                        f"Pickup from {state.pickup_chef_name}"
                    ),
                },
            ),
            SideEffect(
                EffectKind.NOTIFY,
                recipient=Recipient.DRIVER,
                driver_id=state.driver_id,
                data={
                    "kind": "assignment_reassigned",
                    "title": "Delivery Reassigned",
                    "message": "A delivery you were holding has been reassigned.",
                },
            ),
            SideEffect(EffectKind.INVALIDATE_ORDER_CACHE),
            _publish(AssignmentStatus.ASSIGNED),
        ),
        message="Assignment reassigned",
        expected_driver_id=state.driver_id,
    )
