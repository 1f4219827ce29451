from datetime import date, datetime, timedelta, timezone

from dispatch_api.models.assignment import CancelledBy
from dispatch_api.services.assignments_service import (
    driver_daily_stats,
    list_driver_history,
    list_offers_near,
)
from dispatch_api.services.dispatch_service import DispatchOrchestrator
from dispatch_api.services.state_machine import PickupConfirmation

CHEF_LAT, CHEF_LNG = 6.4281, 3.4219
DAY = date(2026, 10, 18)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _deliver(orchestrator, assignment, driver) -> None:
    orchestrator.accept(assignment.id, driver.id)
    orchestrator.confirm_pickup(assignment.id, PickupConfirmation(confirmed=True))
    orchestrator.confirm_delivery(assignment.id, assignment.confirmation_code)


def _driver_with_closed_deliveries(
    db_session, geo_index, notifier, cache, registry, make_order, make_driver
):
    clock = _Clock(datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc))
    orchestrator = DispatchOrchestrator(
        db=db_session,
        index=geo_index,
        notifier=notifier,
        cache=cache,
        registry=registry,
        clock=clock,
    )
    driver = make_driver(geo_index)

    delivered = orchestrator.create_assignment(make_order().id)
    _deliver(orchestrator, delivered, driver)

    clock.now += timedelta(hours=3)
    cancelled = orchestrator.create_assignment(make_order(customer_id="customer-2").id)
    orchestrator.accept(cancelled.id, driver.id)
    orchestrator.cancel(cancelled.id, cancelled_by=CancelledBy.ADMIN)

    clock.now += timedelta(days=1)
    next_day = orchestrator.create_assignment(make_order(customer_id="customer-3").id)
    _deliver(orchestrator, next_day, driver)

    active = orchestrator.create_assignment(make_order(customer_id="customer-4").id)
    orchestrator.accept(active.id, driver.id)
    return driver, [next_day.id, cancelled.id, delivered.id]


def test_offers_near_skip_far_pickups_without_a_row_cap(orchestrator, make_chef, make_order):
    far_chef = make_chef(lat=9.0579, lng=7.4951)
    for number in range(510):
        orchestrator.create_assignment(
            make_order(chef=far_chef, customer_id=f"far-{number}").id
        )
    near = orchestrator.create_assignment(make_order(customer_id="near").id)

    offers = list_offers_near(orchestrator.db, CHEF_LAT + 0.01, CHEF_LNG, radius_km=5)

    assert [offer.id for offer in offers] == [near.id]


def test_offers_near_wrap_across_the_antimeridian(
    db_session, orchestrator, make_chef, make_order
):
    east_chef = make_chef(lat=0.0, lng=179.995)
    west_chef = make_chef(lat=0.0, lng=-179.995)
    east = orchestrator.create_assignment(make_order(chef=east_chef).id)
    west = orchestrator.create_assignment(make_order(chef=west_chef, customer_id="customer-2").id)

    offers = list_offers_near(db_session, 0.0, 179.999, radius_km=5)

    assert [offer.id for offer in offers] == [east.id, west.id]


def test_offers_without_a_position_list_every_available_assignment(
    db_session, orchestrator, make_order
):
    first = orchestrator.create_assignment(make_order().id)
    second = orchestrator.create_assignment(make_order(customer_id="customer-2").id)

    offers = list_offers_near(db_session, None, None, radius_km=5)

    assert {offer.id for offer in offers} == {first.id, second.id}


def test_driver_history_lists_closed_deliveries_newest_first(
    db_session, geo_index, notifier, cache, registry, make_order, make_driver
):
    driver, closed_ids = _driver_with_closed_deliveries(
        db_session, geo_index, notifier, cache, registry, make_order, make_driver
    )

    items, total = list_driver_history(db_session, driver.id)
    assert [item.id for item in items] == closed_ids
    assert total == 3

    second_page, total = list_driver_history(db_session, driver.id, page=2, page_size=2)
    assert [item.id for item in second_page] == closed_ids[2:]
    assert total == 3


def test_driver_daily_stats_count_only_completed_toward_pay(
    db_session, geo_index, notifier, cache, registry, make_order, make_driver
):
    driver, _ = _driver_with_closed_deliveries(
        db_session, geo_index, notifier, cache, registry, make_order, make_driver
    )

    stats = driver_daily_stats(db_session, driver.id, DAY)
    assert stats.total_deliveries == 2
    assert stats.completed_deliveries == 1
    assert stats.earnings == 1670
    assert stats.distance_km == 11.7

    assert driver_daily_stats(db_session, driver.id, DAY + timedelta(days=1)).total_deliveries == 1
    assert driver_daily_stats(db_session, driver.id, DAY - timedelta(days=1)).total_deliveries == 0
