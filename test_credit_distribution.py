"""
Tests for service item status changes and credit point distribution
"""

import asyncio
from datetime import datetime, timezone

import pytest

from app.exceptions import DistributionError, InvalidOperationError, NotFoundError
from app.models.service_models import ServiceItem, ServiceStatus, TechnicianAssignment
from app.services.credit_distribution_service import CreditDistributionService
from incentive_calculations.credit_points import plan_credit_assignment


def run(coro):
    return asyncio.run(coro)


def test_completion_splits_points_evenly(store):
    service = CreditDistributionService(store)

    result = run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    assert result.newly_completed
    assert result.credits_assigned
    assert result.distribution_error is None
    technicians = result.order.get_item("item-1").technicians
    assert technicians["tech-1"].credit_points == 5.0
    assert technicians["tech-2"].credit_points == 5.0
    assert all(t.credits_assigned for t in technicians.values())
    assert store.staff["tech-1"].total_credit_points == 5.0
    assert store.staff["tech-2"].total_credit_points == 5.0


def test_ledger_updates_held_capability_only(store):
    service = CreditDistributionService(store)

    run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    capability = store.staff["tech-1"].get_capability("oil-change")
    assert capability.total_credits_earned == 5.0
    assert capability.completed_services == 1
    assert store.staff["tech-2"].service_capabilities == []


def test_resending_completed_is_a_no_op(store):
    service = CreditDistributionService(store)
    first = run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    second = run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    assert not second.newly_completed
    item = second.order.get_item("item-1")
    assert item.completion_time == first.order.get_item("item-1").completion_time
    assert store.staff["tech-1"].total_credit_points == 5.0


def test_repeated_distribution_is_idempotent(store):
    service = CreditDistributionService(store)
    run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    assert run(service.assign_credit_points("order-1", "item-1")) is True
    assert run(service.assign_credit_points("order-1", "item-1")) is True

    assert store.staff["tech-1"].total_credit_points == 5.0
    assert store.staff["tech-2"].total_credit_points == 5.0


def test_concurrent_distribution_credits_once(store):
    service = CreditDistributionService(store)

    async def complete_then_race():
        # Mark completed without distributing, then trigger twice at once
        await store.update_service_order(
            "order-1", lambda order: setattr(order.get_item("item-1"), "status", ServiceStatus.COMPLETED)
        )
        return await asyncio.gather(
            service.assign_credit_points("order-1", "item-1"),
            service.assign_credit_points("order-1", "item-1"),
        )

    assert run(complete_then_race()) == [True, True]
    assert store.staff["tech-1"].total_credit_points == 5.0
    assert store.staff["tech-2"].total_credit_points == 5.0


def test_missing_service_type_applies_nothing(store):
    del store.service_types["oil-change"]
    service = CreditDistributionService(store)

    result = run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    assert result.distribution_error is not None
    item = store.service_orders["order-1"].get_item("item-1")
    assert item.status == ServiceStatus.COMPLETED
    assert not any(t.credits_assigned for t in item.technicians.values())
    assert store.staff["tech-1"].total_credit_points == 0

    with pytest.raises(DistributionError):
        run(service.assign_credit_points("order-1", "item-1"))


def test_distribution_can_be_retried_after_failure(store, service_types):
    del store.service_types["oil-change"]
    service = CreditDistributionService(store)
    run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    store.service_types["oil-change"] = service_types[0]
    assert run(service.assign_credit_points("order-1", "item-1")) is True
    assert store.staff["tech-1"].total_credit_points == 5.0


def test_not_completed_item_is_not_credited(store):
    service = CreditDistributionService(store)

    assert run(service.assign_credit_points("order-1", "item-1")) is False
    assert store.staff["tech-1"].total_credit_points == 0


def test_terminal_status_cannot_change(store):
    service = CreditDistributionService(store)
    run(service.update_service_item_status("order-1", "item-1", ServiceStatus.CANCELLED))

    with pytest.raises(InvalidOperationError):
        run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))


def test_order_status_follows_items(store):
    service = CreditDistributionService(store)

    result = run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    assert result.order.status == ServiceStatus.COMPLETED
    assert result.order.completion_date is not None


def test_unknown_order_or_item(store):
    service = CreditDistributionService(store)

    with pytest.raises(NotFoundError):
        run(service.update_service_item_status("nope", "item-1", ServiceStatus.COMPLETED))
    with pytest.raises(NotFoundError):
        run(service.assign_credit_points("order-1", "nope"))


def test_add_and_remove_technician(store):
    service = CreditDistributionService(store)

    with pytest.raises(InvalidOperationError):
        run(service.add_technician("order-1", "item-1", "tech-1"))
    with pytest.raises(NotFoundError):
        run(service.add_technician("order-1", "item-1", "ghost"))

    order = run(service.remove_technician("order-1", "item-1", "tech-2"))
    assert list(order.get_item("item-1").technicians) == ["tech-1"]

    order = run(service.add_technician("order-1", "item-1", "tech-2"))
    assert list(order.get_item("item-1").technicians) == ["tech-1", "tech-2"]


def test_cannot_remove_credited_technician(store):
    service = CreditDistributionService(store)
    run(service.update_service_item_status("order-1", "item-1", ServiceStatus.COMPLETED))

    with pytest.raises(InvalidOperationError):
        run(service.remove_technician("order-1", "item-1", "tech-1"))


def test_plan_with_no_technicians_is_a_no_op(service_types):
    item = ServiceItem(id="solo", service_type="oil-change", status=ServiceStatus.COMPLETED)
    assert plan_credit_assignment(item, service_types[0]) is None


def test_plan_credits_only_uncredited_technicians(service_types):
    item = ServiceItem(
        id="partial",
        service_type="oil-change",
        status=ServiceStatus.COMPLETED,
        technicians={
            "a": TechnicianAssignment(technician="a", credit_points=5, credits_assigned=True),
            "b": TechnicianAssignment(technician="b"),
        },
    )

    assignment = plan_credit_assignment(item, service_types[0])

    assert assignment.credited == {"b": 5.0}


def test_uneven_split_still_sums_to_service_points(service_types):
    item = ServiceItem(
        id="trio",
        service_type="oil-change",
        status=ServiceStatus.COMPLETED,
        technicians={tech_id: TechnicianAssignment(technician=tech_id) for tech_id in ("a", "b", "c")},
    )

    assignment = plan_credit_assignment(item, service_types[0])

    assert assignment.points_per_technician == pytest.approx(10 / 3)
    assert sum(assignment.credited.values()) == pytest.approx(10)


MARCH = (datetime(2024, 3, 1, tzinfo=timezone.utc), datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc))


def test_technician_credit_report(store):
    report = run(CreditDistributionService(store).technician_credit_report(*MARCH))

    assert report == [
        {"technician": "tech-1", "name": "Asha Rao", "total_credits": 20.0, "service_count": 3},
        {"technician": "tech-2", "name": "Ben Ortiz", "total_credits": 20.0, "service_count": 3},
    ]


def test_technician_credit_report_filters_by_technician(store):
    service = CreditDistributionService(store)

    report = run(service.technician_credit_report(*MARCH, technician_id="tech-2"))
    assert [row["technician"] for row in report] == ["tech-2"]

    april = (datetime(2024, 4, 1, tzinfo=timezone.utc), datetime(2024, 4, 30, tzinfo=timezone.utc))
    assert run(service.technician_credit_report(*april)) == []
