"""
Shared fixtures: a small workshop with one staff category, two technicians,
a policy, a monthly target and a service order
"""

from datetime import datetime, timezone

import pytest

from app.memory_store import InMemoryIncentiveStore
from app.models.incentive_models import (
    BonusThreshold,
    IncentivePolicy,
    MonthlyTarget,
    ServiceCapability,
    ServiceTypeMultiplier,
    ServiceTypeTarget,
    Staff,
    StaffCategory,
)
from app.models.service_models import ServiceItem, ServiceOrder, ServiceStatus, ServiceType, TechnicianAssignment

MARCH_2024 = datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)


def completed_item(item_id, service_type, credits_by_technician, completion_time=MARCH_2024):
    return ServiceItem(
        id=item_id,
        service_type=service_type,
        status=ServiceStatus.COMPLETED,
        completion_time=completion_time,
        technicians={
            tech_id: TechnicianAssignment(technician=tech_id, credit_points=points, credits_assigned=True)
            for tech_id, points in credits_by_technician.items()
        },
    )


@pytest.fixture
def category():
    return StaffCategory(id="senior", name="Senior Technician", base_salary=1000, base_incentive_rate=2)


@pytest.fixture
def technicians():
    return [
        Staff(id="tech-1", first_name="Asha", last_name="Rao", primary_category="senior", experience=36,
              service_capabilities=[ServiceCapability(service_type="oil-change", skill_level=3)]),
        Staff(id="tech-2", first_name="Ben", last_name="Ortiz", primary_category="senior", experience=12),
    ]


@pytest.fixture
def service_types():
    return [
        ServiceType(id="oil-change", name="Oil Change", credit_points=10),
        ServiceType(id="brake-repair", name="Brake Repair", credit_points=20),
    ]


@pytest.fixture
def policy():
    return IncentivePolicy(
        id="policy-1",
        name="Standard",
        formula_definition="totalCreditPoints * baseIncentiveRate",
        applicable_categories=["senior"],
        service_type_multipliers=[ServiceTypeMultiplier(service_type="oil-change", multiplier=2)],
        effective_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def target():
    return MonthlyTarget(
        month=3,
        year=2024,
        category="senior",
        target_credit_points=40,
        target_completed_services=4,
        bonus_thresholds=[
            BonusThreshold(achievement=10, bonus_amount=50),
            BonusThreshold(achievement=50, bonus_amount=200),
            BonusThreshold(achievement=90, bonus_amount=500),
        ],
        service_type_targets=[ServiceTypeTarget(service_type="oil-change", target_count=1, bonus_per_excess=25)],
    )


@pytest.fixture
def open_order():
    """Order with one in-progress oil change assigned to both technicians"""
    return ServiceOrder(
        id="order-1",
        service_items=[
            ServiceItem(
                id="item-1",
                service_type="oil-change",
                status=ServiceStatus.IN_PROGRESS,
                technicians={
                    "tech-1": TechnicianAssignment(technician="tech-1"),
                    "tech-2": TechnicianAssignment(technician="tech-2"),
                },
            )
        ],
    )


@pytest.fixture
def history_order():
    """Completed March work: tech-1 earned 5 + 5 + 10 on oil changes and a brake repair"""
    return ServiceOrder(
        id="order-history",
        service_items=[
            completed_item("h-1", "oil-change", {"tech-1": 5, "tech-2": 5}),
            completed_item("h-2", "oil-change", {"tech-1": 5, "tech-2": 5}),
            completed_item("h-3", "brake-repair", {"tech-1": 10, "tech-2": 10}),
        ],
    )


@pytest.fixture
def store(category, technicians, service_types, policy, target, open_order, history_order):
    return InMemoryIncentiveStore(
        staff=technicians,
        categories=[category],
        policies=[policy],
        targets=[target],
        service_types=service_types,
        service_orders=[open_order, history_order],
    )
