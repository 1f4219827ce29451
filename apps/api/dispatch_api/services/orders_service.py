import secrets
import string
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from dispatch_api.errors import ChefNotFoundError, OrderNotFoundError
from dispatch_api.models.chef import Chef
from dispatch_api.models.order import Order, OrderStatus
from dispatch_api.models.subscription import Subscription, SubscriptionStatus

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def _generate_order_number(length: int = 8) -> str:
    return "ORD-" + "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(length))


def _generate_unique_order_number(db: Session) -> str:
    while True:
        order_number = _generate_order_number()
        exists = db.scalar(select(Order.id).where(Order.order_number == order_number))
        if not exists:
            return order_number


def get_order(db: Session, order_id: uuid.UUID) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise OrderNotFoundError()
    return order


def get_chef(db: Session, chef_id: uuid.UUID | None) -> Chef:
    chef = db.get(Chef, chef_id) if chef_id is not None else None
    if not chef:
        raise ChefNotFoundError()
    return chef


def set_order_status(
    db: Session,
    order_id: uuid.UUID,
    next_status: OrderStatus,
    *,
    now: datetime,
) -> None:
    values: dict = {"status": next_status, "updated_at": now}
    if next_status == OrderStatus.DELIVERED:
        values["delivered_at"] = now
    db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def activate_subscription(db: Session, subscription_id: uuid.UUID, *, now: datetime) -> bool:
    """Move a pending subscription to active. Returns False when nothing changed."""
    result = db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.status == SubscriptionStatus.PENDING,
        )
        .values(status=SubscriptionStatus.ACTIVE, activated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def create_chef(
    db: Session,
    *,
    full_name: str,
    phone: str,
    lat: float | None,
    lng: float | None,
    street_address: str | None = None,
    city: str | None = None,
    state: str | None = None,
    pickup_instructions: str = "",
) -> Chef:
    chef = Chef(
        full_name=full_name,
        phone=phone,
        lat=lat,
        lng=lng,
        street_address=street_address,
        city=city,
        state=state,
        pickup_instructions=pickup_instructions,
    )
    db.add(chef)
    db.commit()
    db.refresh(chef)
    return chef


def create_subscription(
    db: Session, *, customer_id: str, meal_plan_id: str | None = None
) -> Subscription:
    subscription = Subscription(customer_id=customer_id, meal_plan_id=meal_plan_id)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def create_order(
    db: Session,
    *,
    customer_id: str,
    chef_id: uuid.UUID | None,
    delivery_address: str,
    delivery_lat: float,
    delivery_lng: float,
    delivery_area: str | None = None,
    delivery_notes: str = "",
    special_requests: str = "",
    subscription_id: uuid.UUID | None = None,
    meal_plan_id: str | None = None,
    is_urgent: bool = False,
    is_priority: bool = False,
    status: OrderStatus = OrderStatus.CONFIRMED,
) -> Order:
    order = Order(
        order_number=_generate_unique_order_number(db),
        customer_id=customer_id,
        chef_id=chef_id,
        delivery_address=delivery_address,
        delivery_lat=delivery_lat,
        delivery_lng=delivery_lng,
        delivery_area=delivery_area,
        delivery_notes=delivery_notes,
        special_requests=special_requests,
        subscription_id=subscription_id,
        meal_plan_id=meal_plan_id,
        is_urgent=is_urgent,
        is_priority=is_priority,
        status=status,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order
