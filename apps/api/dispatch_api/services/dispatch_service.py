"""Dispatch orchestration: turns orders into assignments and drives them home.

``DispatchOrchestrator`` is the only writer of assignment status. Each call
runs one database transaction: the state machine computes a ``Transition``,
the assignment row is updated with compare-and-set, and the store effects
(driver reservation, order status, driver stats, subscription activation)
commit together with it. Notifications, cache invalidation and real-time
pushes run after the commit and never fail the call.
"""

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dispatch_api.config import Settings, settings
from dispatch_api.errors import (
    AssignmentAlreadyExistsError,
    ConflictError,
    DriverUnavailableError,
    InvalidTransitionError,
    NotAssignedDriverError,
    ValidationFailedError,
)
from dispatch_api.integrations.cache_client import CacheInvalidator, order_cache_keys
from dispatch_api.integrations.notification_client import NotificationSink
from dispatch_api.models.assignment import (
    AssignmentPriority,
    AssignmentStatus,
    CancelledBy,
    DriverAssignment,
)
from dispatch_api.models.driver import DriverAccountStatus
from dispatch_api.models.order import UNFULFILLABLE_ORDER_STATUSES, Order, OrderStatus
from dispatch_api.observability import log_event, log_failure, metrics_store, observe_timing
from dispatch_api.services import state_machine
from dispatch_api.services.assignments_service import (
    append_event,
    apply_transition,
    get_active_assignment_for_driver,
    get_assignment,
    get_assignment_for_order,
    list_available_assignments,
)
from dispatch_api.services.code_generator import code_in_use, issue_confirmation_code
from dispatch_api.services.connection_registry import ConnectionRegistry
from dispatch_api.services.drivers_service import (
    credit_driver,
    find_nearby,
    get_driver,
    release_driver,
    reserve_driver,
)
from dispatch_api.services.geo_index import DriverGeoIndex
from dispatch_api.services.orders_service import (
    activate_subscription,
    get_chef,
    get_order,
    set_order_status,
)
from dispatch_api.services.pricing import (
    calculate_earnings,
    delivery_distance_km,
    estimate_schedule,
)
from dispatch_api.services.state_machine import (
    AssignmentState,
    EffectKind,
    PickupConfirmation,
    Recipient,
    SideEffect,
    Transition,
)

STATUS_EVENT = "assignment:status"
OFFER_EVENT = "assignment:available"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    role: str
    user_id: str | None = None


SYSTEM_ACTOR = Actor(role="SYSTEM")


@dataclass(frozen=True)
class CreateAssignmentOptions:
    driver_id: uuid.UUID | None = None
    priority: AssignmentPriority | None = None
    special_instructions: str = ""
    is_first_delivery: bool = False
    delivery_day: int | None = None
    auto_assign: bool = False


@dataclass(frozen=True)
class StatusUpdate:
    driver_id: uuid.UUID | None = None
    confirmation_code: str | None = None
    confirmed: bool = False
    lat: float | None = None
    lng: float | None = None
    notes: str = ""
    photo_url: str | None = None
    reason: str = ""
    compensation_amount: int = 0


@dataclass(frozen=True)
class AutoAssignResult:
    status: Literal["assigned", "searching"]
    assignment: DriverAssignment
    driver_id: uuid.UUID | None = None
    distance_km: float | None = None
    candidates: int = 0


@dataclass
class DispatchRunResult:
    assigned: list[AutoAssignResult] = field(default_factory=list)
    searching_count: int = 0
    conflict_count: int = 0

    @property
    def assigned_count(self) -> int:
        return len(self.assigned)


_CANCELLED_BY_ROLE = {
    "ADMIN": CancelledBy.ADMIN,
    "SYSTEM": CancelledBy.ADMIN,
    "CHEF": CancelledBy.CHEF,
    "CUSTOMER": CancelledBy.CUSTOMER,
    "DRIVER": CancelledBy.DRIVER,
}


def cancelled_by_for_role(role: str) -> CancelledBy:
    try:
        return _CANCELLED_BY_ROLE[role.upper()]
    except KeyError as err:
        raise ValidationFailedError(f"Role {role} cannot cancel deliveries") from err


class DispatchOrchestrator:
    def __init__(
        self,
        db: Session,
        index: DriverGeoIndex,
        notifier: NotificationSink,
        cache: CacheInvalidator,
        registry: ConnectionRegistry,
        config: Settings = settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.db = db
        self.index = index
        self.notifier = notifier
        self.cache = cache
        self.registry = registry
        self.config = config
        self.clock = clock

    # -- creation -----------------------------------------------------------

    def create_assignment(
        self,
        order_id: uuid.UUID,
        options: CreateAssignmentOptions | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DriverAssignment:
        options = options or CreateAssignmentOptions()

        if get_assignment_for_order(self.db, order_id) is not None:
            raise AssignmentAlreadyExistsError()

        order = get_order(self.db, order_id)
        if order.status in UNFULFILLABLE_ORDER_STATUSES:
            raise ValidationFailedError(f"Order is already {order.status.value.lower()}")
        chef = get_chef(self.db, order.chef_id)
        if chef.lat is None or chef.lng is None:
            raise ValidationFailedError("Chef has no pickup coordinates")
        if options.driver_id is not None:
            get_driver(self.db, options.driver_id)

        now = self.clock()
        priority = self._priority_for(order, options)
        distance_km = delivery_distance_km(
            chef.lat,
            chef.lng,
            order.delivery_lat,
            order.delivery_lng,
            min_distance_km=self.config.min_distance_km,
        )
        earnings = calculate_earnings(
            distance_km,
            priority,
            base_fee=self.config.base_fee,
            per_km_rate=self.config.per_km_rate,
        )
        schedule = estimate_schedule(
            distance_km,
            now,
            pickup_lead_min=self.config.pickup_lead_min,
            minutes_per_km=self.config.minutes_per_km,
            min_duration_min=self.config.min_duration_min,
        )
        code = issue_confirmation_code(
            self.db,
            length=self.config.confirmation_code_length,
            max_attempts=self.config.code_max_attempts,
        )

        assignment = DriverAssignment(
            order_id=order.id,
            confirmation_code=code,
            pickup_address=chef.pickup_address,
            pickup_lat=chef.lat,
            pickup_lng=chef.lng,
            pickup_chef_id=chef.id,
            pickup_chef_name=chef.full_name,
            pickup_chef_phone=chef.phone,
            pickup_instructions=chef.pickup_instructions or "",
            delivery_address=order.delivery_address,
            delivery_lat=order.delivery_lat,
            delivery_lng=order.delivery_lng,
            delivery_area=order.delivery_area or "",
            delivery_instructions=order.delivery_notes or "",
            status=AssignmentStatus.AVAILABLE,
            priority=priority,
            assigned_at=now,
            estimated_pickup_time=schedule.estimated_pickup_time,
            estimated_delivery_time=schedule.estimated_delivery_time,
            total_distance_km=distance_km,
            estimated_duration_min=schedule.duration_min,
            base_fee=earnings.base_fee,
            distance_fee=earnings.distance_fee,
            total_earning=earnings.total_earning,
            special_instructions=options.special_instructions or order.special_requests or "",
            is_first_delivery=options.is_first_delivery,
            subscription_id=order.subscription_id,
            meal_plan_id=order.meal_plan_id,
            delivery_day=options.delivery_day,
            driver_track=[],
        )

        transition: Transition | None = None
        with self._transaction():
            self._insert_assignment(assignment)

            append_event(
                self.db,
                assignment.id,
                from_status=None,
                to_status=AssignmentStatus.AVAILABLE,
                actor_role=actor.role,
                actor_id=actor.user_id,
                message="Assignment created",
                payload={"priority": priority.value, "total_earning": earnings.total_earning},
            )
            set_order_status(self.db, order.id, OrderStatus.READY, now=now)

            if options.driver_id is not None:
                self._ensure_driver_free(options.driver_id)
                transition = state_machine.assign(
                    AssignmentState.from_record(assignment), options.driver_id, now=now
                )
                self._write(transition, actor, now)

        assignment_id = assignment.id
        metrics_store.increment("assignments_created_total")
        log_event(
            f"assignment_created priority={priority.value} total_earning={earnings.total_earning}",
            assignment_id=assignment_id,
            order_id=order_id,
            driver_id=options.driver_id,
        )

        assignment = get_assignment(self.db, assignment_id)
        if transition is not None:
            self._run_side_effects(transition, assignment)
            return assignment

        self._invalidate_order_cache(assignment.order_id)
        if options.auto_assign:
            return self._auto_assign_created(assignment_id, actor)
        self._offer_to_nearby_drivers(assignment)
        return assignment

    def _insert_assignment(self, assignment: DriverAssignment) -> None:
        """Flush a new assignment, drawing a fresh code once if a concurrent creator took it."""
        for attempt in (1, 2):
            self.db.add(assignment)
            try:
                self.db.flush()
                return
            except IntegrityError as err:
                self.db.rollback()
                if get_assignment_for_order(self.db, assignment.order_id) is not None:
                    raise AssignmentAlreadyExistsError() from err
                if attempt == 2 or not code_in_use(self.db, assignment.confirmation_code):
                    raise ConflictError(message="Assignment could not be stored") from err

            metrics_store.increment("confirmation_code_collisions_total")
            log_event("confirmation_code_clash_on_insert", order_id=assignment.order_id)
            assignment.confirmation_code = issue_confirmation_code(
                self.db,
                length=self.config.confirmation_code_length,
                max_attempts=self.config.code_max_attempts,
            )

    def _auto_assign_created(self, assignment_id: uuid.UUID, actor: Actor) -> DriverAssignment:
        try:
            return self.auto_assign(assignment_id, actor=actor).assignment
        except ConflictError as err:
            # Already committed; left to the dispatch sweep
            metrics_store.increment("auto_assign_searching_total")
            log_event(f"auto_assign_deferred reason={err.code}", assignment_id=assignment_id)
        assignment = get_assignment(self.db, assignment_id)
        if assignment.status == AssignmentStatus.AVAILABLE:
            self._offer_to_nearby_drivers(assignment)
        return assignment

    def _priority_for(self, order: Order, options: CreateAssignmentOptions) -> AssignmentPriority:
        if options.priority is not None:
            return AssignmentPriority(options.priority)
        if order.is_urgent:
            return AssignmentPriority.URGENT
        if order.is_priority or options.is_first_delivery:
            return AssignmentPriority.HIGH
        return AssignmentPriority.NORMAL

    # -- matching -----------------------------------------------------------

    def auto_assign(
        self, assignment_id: uuid.UUID, actor: Actor = SYSTEM_ACTOR
    ) -> AutoAssignResult:
        assignment = get_assignment(self.db, assignment_id)
        state = AssignmentState.from_record(assignment)
        state_machine.ensure_valid_transition(state.status, AssignmentStatus.ASSIGNED)

        candidates = find_nearby(
            self.db,
            self.index,
            state.pickup_lat,
            state.pickup_lng,
            self.config.auto_assign_radius_km,
        )
        if not candidates:
            metrics_store.increment("auto_assign_searching_total")
            log_event("auto_assign_searching", assignment_id=assignment_id)
            return AutoAssignResult(status="searching", assignment=assignment)

        for candidate in candidates:
            transition = state_machine.assign(state, candidate.driver.id, now=self.clock())
            try:
                updated = self._execute(transition, actor)
            except DriverUnavailableError:
                log_event(
                    "auto_assign_driver_taken",
                    assignment_id=assignment_id,
                    driver_id=candidate.driver.id,
                )
                continue

            metrics_store.increment("auto_assign_assigned_total")
            return AutoAssignResult(
                status="assigned",
                assignment=updated,
                driver_id=candidate.driver.id,
                distance_km=round(candidate.distance_km, 3),
                candidates=len(candidates),
            )

        metrics_store.increment("auto_assign_searching_total")
        log_event("auto_assign_searching", assignment_id=assignment_id)
        return AutoAssignResult(
            status="searching",
            assignment=get_assignment(self.db, assignment_id),
            candidates=len(candidates),
        )

    def run_dispatch(self, max_assignments: int = 10) -> DispatchRunResult:
        """Retry auto-assignment for unclaimed deliveries, most urgent first."""
        result = DispatchRunResult()
        with observe_timing("dispatch_run_seconds"):
            pending_ids = [
                assignment.id
                for assignment in list_available_assignments(self.db, limit=max_assignments)
            ]
            for assignment_id in pending_ids:
                try:
                    outcome = self.auto_assign(assignment_id)
                except ConflictError as err:
                    result.conflict_count += 1
                    log_event(
                        f"dispatch_run_skipped reason={err.code}", assignment_id=assignment_id
                    )
                    continue
                if outcome.status == "assigned":
                    result.assigned.append(outcome)
                else:
                    result.searching_count += 1

        metrics_store.increment("dispatch_runs_total")
        log_event(
            f"dispatch_run assigned={result.assigned_count} searching={result.searching_count}"
        )
        return result

    # -- driver and admin actions -------------------------------------------

    def accept(
        self, assignment_id: uuid.UUID, driver_id: uuid.UUID, actor: Actor | None = None
    ) -> DriverAssignment:
        actor = actor or Actor(role="DRIVER", user_id=str(driver_id))
        state = self._state(assignment_id)
        state_machine.ensure_valid_transition(state.status, AssignmentStatus.ASSIGNED)
        self._ensure_driver_free(driver_id)

        transition = state_machine.assign(state, driver_id, now=self.clock(), notify_driver=False)
        return self._execute(transition, actor)

    def assign_driver(
        self, assignment_id: uuid.UUID, driver_id: uuid.UUID, actor: Actor = SYSTEM_ACTOR
    ) -> DriverAssignment:
        """Force-assign an available delivery to a chosen driver."""
        state = self._state(assignment_id)
        state_machine.ensure_valid_transition(state.status, AssignmentStatus.ASSIGNED)
        self._ensure_driver_free(driver_id)

        transition = state_machine.assign(state, driver_id, now=self.clock())
        return self._execute(transition, actor)

    def confirm_pickup(
        self,
        assignment_id: uuid.UUID,
        confirmation: PickupConfirmation,
        *,
        driver_id: uuid.UUID | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DriverAssignment:
        state = self._state(assignment_id)
        state_machine.ensure_valid_transition(state.status, AssignmentStatus.PICKED_UP)
        self._ensure_holder(state, driver_id)
        transition = state_machine.confirm_pickup(
            state,
            confirmation,
            now=self.clock(),
            proximity_m=self.config.pickup_proximity_m,
        )
        return self._execute(transition, actor)

    def confirm_delivery(
        self,
        assignment_id: uuid.UUID,
        confirmation_code: str,
        *,
        driver_id: uuid.UUID | None = None,
        notes: str = "",
        photo_url: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DriverAssignment:
        state = self._state(assignment_id)
        state_machine.ensure_valid_transition(state.status, AssignmentStatus.DELIVERED)
        self._ensure_holder(state, driver_id)
        transition = state_machine.confirm_delivery(
            state,
            confirmation_code,
            now=self.clock(),
            notes=notes,
            photo_url=photo_url,
        )
        return self._execute(transition, actor)

    def cancel(
        self,
        assignment_id: uuid.UUID,
        *,
        cancelled_by: CancelledBy,
        reason: str = "",
        compensation_amount: int = 0,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DriverAssignment:
        state = self._state(assignment_id)
        transition = state_machine.cancel(
            state,
            cancelled_by=cancelled_by,
            now=self.clock(),
            reason=reason,
            compensation_amount=compensation_amount,
        )
        return self._execute(transition, actor)

    def reassign(
        self, assignment_id: uuid.UUID, new_driver_id: uuid.UUID, actor: Actor = SYSTEM_ACTOR
    ) -> DriverAssignment:
        state = self._state(assignment_id)
        get_driver(self.db, new_driver_id)
        transition = state_machine.reassign(state, new_driver_id, now=self.clock())
        return self._execute(transition, actor)

    def update_status(
        self,
        assignment_id: uuid.UUID,
        new_status: AssignmentStatus,
        update: StatusUpdate,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DriverAssignment:
        """Route a generic status change to the matching lifecycle operation."""
        new_status = AssignmentStatus(new_status)
        acting_driver_id = uuid.UUID(actor.user_id) if actor.role == "DRIVER" else None

        if new_status == AssignmentStatus.ASSIGNED:
            if acting_driver_id is not None:
                return self.accept(assignment_id, acting_driver_id, actor)
            if update.driver_id is None:
                raise ValidationFailedError("driver_id is required to assign a delivery")
            current = self._state(assignment_id)
            if current.status == AssignmentStatus.ASSIGNED:
                return self.reassign(assignment_id, update.driver_id, actor)
            return self.assign_driver(assignment_id, update.driver_id, actor)

        if new_status == AssignmentStatus.PICKED_UP:
            confirmation = PickupConfirmation(
                confirmed=update.confirmed,
                lat=update.lat,
                lng=update.lng,
                notes=update.notes,
                photo_url=update.photo_url,
            )
            return self.confirm_pickup(
                assignment_id, confirmation, driver_id=acting_driver_id, actor=actor
            )

        if new_status == AssignmentStatus.DELIVERED:
            return self.confirm_delivery(
                assignment_id,
                update.confirmation_code or "",
                driver_id=acting_driver_id,
                notes=update.notes,
                photo_url=update.photo_url,
                actor=actor,
            )

        if new_status == AssignmentStatus.CANCELLED:
            if acting_driver_id is not None:
                self._ensure_holder(self._state(assignment_id), acting_driver_id)
            return self.cancel(
                assignment_id,
                cancelled_by=cancelled_by_for_role(actor.role),
                reason=update.reason,
                compensation_amount=update.compensation_amount,
                actor=actor,
            )

        raise InvalidTransitionError(f"Cannot move an assignment back to {new_status.value}")

    # -- internals ----------------------------------------------------------

    def _state(self, assignment_id: uuid.UUID) -> AssignmentState:
        return AssignmentState.from_record(get_assignment(self.db, assignment_id))

    def _ensure_holder(self, state: AssignmentState, driver_id: uuid.UUID | None) -> None:
        if driver_id is not None and state.driver_id != driver_id:
            raise NotAssignedDriverError()

    def _ensure_driver_free(self, driver_id: uuid.UUID) -> None:
        driver = get_driver(self.db, driver_id)
        if driver.account_status != DriverAccountStatus.APPROVED:
            raise DriverUnavailableError("Driver account is not approved")
        if get_active_assignment_for_driver(self.db, driver_id) is not None:
            raise DriverUnavailableError()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _execute(self, transition: Transition, actor: Actor) -> DriverAssignment:
        with self._transaction():
            self._write(transition, actor, self.clock())

        log_event(
            f"assignment_transition {transition.from_status.value}->{transition.to_status.value}",
            assignment_id=transition.assignment_id,
            order_id=transition.order_id,
            driver_id=transition.changes.get("driver_id"),
        )
        metrics_store.increment(f"assignment_{transition.to_status.value}_total")

        assignment = get_assignment(self.db, transition.assignment_id)
        self._run_side_effects(transition, assignment)
        return assignment

    def _write(self, transition: Transition, actor: Actor, now: datetime) -> None:
        apply_transition(self.db, transition, actor_role=actor.role, actor_id=actor.user_id)
        for effect in transition.store_effects:
            self._apply_store_effect(transition, effect, now)

    def _apply_store_effect(
        self, transition: Transition, effect: SideEffect, now: datetime
    ) -> None:
        if effect.kind == EffectKind.RESERVE_DRIVER:
            reserve_driver(self.db, effect.driver_id, for_assignment_id=transition.assignment_id)
        elif effect.kind == EffectKind.RELEASE_DRIVER:
            if effect.driver_id is not None:
                release_driver(self.db, effect.driver_id)
        elif effect.kind == EffectKind.CREDIT_DRIVER:
            if effect.driver_id is not None:
                credit_driver(
                    self.db,
                    effect.driver_id,
                    earning=effect.data["earning"],
                    distance_km=effect.data["distance_km"],
                )
        elif effect.kind == EffectKind.SET_ORDER_STATUS:
            set_order_status(self.db, transition.order_id, effect.data["status"], now=now)
        elif effect.kind == EffectKind.ACTIVATE_SUBSCRIPTION:
            subscription_id = effect.data["subscription_id"]
            if activate_subscription(self.db, subscription_id, now=now):
                log_event(
                    f"subscription_activated subscription_id={subscription_id}",
                    assignment_id=transition.assignment_id,
                    order_id=transition.order_id,
                )

    # -- best-effort effects ------------------------------------------------

    def _run_side_effects(self, transition: Transition, assignment: DriverAssignment) -> None:
        order = self.db.get(Order, transition.order_id)
        customer_id = order.customer_id if order is not None else None

        for effect in transition.best_effort_effects:
            if effect.kind == EffectKind.NOTIFY:
                self._notify(effect, assignment, customer_id)
            elif effect.kind == EffectKind.INVALIDATE_ORDER_CACHE:
                self._invalidate_order_cache(transition.order_id, customer_id)
            elif effect.kind == EffectKind.PUBLISH_STATUS:
                targets = [assignment.driver_id, transition.expected_driver_id, customer_id]
                payload = {
                    "assignment_id": str(assignment.id),
                    "order_id": str(assignment.order_id),
                    "status": effect.data["status"],
                    "driver_id": str(assignment.driver_id) if assignment.driver_id else None,
                }
                for target in dict.fromkeys(str(target) for target in targets if target):
                    self._best_effort(
                        "publish_status",
                        lambda: self.registry.send(target, STATUS_EVENT, payload),
                        assignment,
                    )

    def _notify(
        self, effect: SideEffect, assignment: DriverAssignment, customer_id: str | None
    ) -> None:
        if effect.recipient == Recipient.CUSTOMER:
            target = customer_id
        else:
            target = str(effect.driver_id) if effect.driver_id else None
        if target is None:
            return

        data = dict(effect.data)
        kind = data.pop("kind")
        data.update({"assignment_id": str(assignment.id), "order_id": str(assignment.order_id)})
        delivered = self._best_effort(
            f"notify:{kind}",
            lambda: self.notifier.notify(target, kind, data),
            assignment,
        )
        if delivered is False:
            metrics_store.increment("notifications_undelivered_total")

    def _invalidate_order_cache(self, order_id: uuid.UUID, customer_id: str | None = None) -> None:
        if customer_id is None:
            order = self.db.get(Order, order_id)
            if order is None:
                return
            customer_id = order.customer_id
        for key in order_cache_keys(order_id, customer_id):
            self._best_effort(
                "invalidate_cache",
                lambda: self.cache.invalidate(key),
                order_id=order_id,
            )

    def _offer_to_nearby_drivers(self, assignment: DriverAssignment) -> None:
        nearby = self._best_effort(
            "find_nearby_drivers",
            lambda: find_nearby(
                self.db,
                self.index,
                assignment.pickup_lat,
                assignment.pickup_lng,
                self.config.nearby_notify_radius_km,
            ),
            assignment,
        )
        payload = {
            "assignment_id": str(assignment.id),
            "order_id": str(assignment.order_id),
            "pickup_address": assignment.pickup_address,
            "delivery_area": assignment.delivery_area,
            "total_earning": assignment.total_earning,
            "priority": AssignmentPriority(assignment.priority).value,
        }
        for candidate in nearby or []:
            target = str(candidate.driver.id)
            self._best_effort(
                "notify:new_delivery_available",
                lambda: self.notifier.notify(
                    target,
                    "new_delivery_available",
                    {
                        **payload,
                        "title": "New Delivery Available",
                        "message": f"Pickup from {assignment.pickup_chef_name}",
                        "distance_km": round(candidate.distance_km, 1),
                    },
                ),
                assignment,
            )
            self._best_effort(
                "publish_offer",
                lambda: self.registry.send(target, OFFER_EVENT, payload),
                assignment,
            )

    def _best_effort(
        self,
        label: str,
        action: Callable[[], object],
        assignment: DriverAssignment | None = None,
        *,
        order_id: uuid.UUID | None = None,
    ) -> object | None:
        try:
            return action()
        except Exception:
            metrics_store.increment("side_effect_failures_total")
            log_failure(
                f"side_effect_failed effect={label}",
                assignment_id=assignment.id if assignment is not None else None,
                order_id=assignment.order_id if assignment is not None else order_id,
                driver_id=assignment.driver_id if assignment is not None else None,
            )
            return None
