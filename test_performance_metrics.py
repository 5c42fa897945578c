"""
Tests for performance metrics aggregation
"""

from datetime import datetime, timezone

from app.models.service_models import ServiceItem, ServiceOrder, ServiceStatus, TechnicianAssignment
from app.services.incentive_service import month_period
from conftest import completed_item
from incentive_calculations.performance_metrics import (
    achievement_percentage,
    calculate_performance_metrics,
    summarize_technician_credits,
)

START, END = month_period(3, 2024)


def test_totals_and_breakdown_in_first_seen_order(history_order, target):
    metrics = calculate_performance_metrics("tech-1", [history_order], target, START, END)

    assert metrics.total_credit_points == 20
    assert metrics.completed_services == 3
    assert metrics.target_achievement_percentage == 50
    assert [(b.service_type, b.count, b.credit_points) for b in metrics.service_type_breakdown] == [
        ("oil-change", 2, 10.0),
        ("brake-repair", 1, 10.0),
    ]


def test_only_completed_items_in_period_assigned_to_staff_count(target):
    order = ServiceOrder(
        id="o",
        service_items=[
            completed_item("in-period", "oil-change", {"tech-1": 5}),
            completed_item("other-tech", "oil-change", {"tech-2": 5}),
            completed_item("april", "oil-change", {"tech-1": 5},
                           completion_time=datetime(2024, 4, 1, tzinfo=timezone.utc)),
            ServiceItem(id="open", service_type="oil-change", status=ServiceStatus.IN_PROGRESS,
                        technicians={"tech-1": TechnicianAssignment(technician="tech-1", credit_points=5)}),
        ],
    )

    metrics = calculate_performance_metrics("tech-1", [order], target, START, END)

    assert metrics.completed_services == 1
    assert metrics.total_credit_points == 5


def test_period_bounds_are_inclusive(target):
    order = ServiceOrder(
        id="o",
        service_items=[
            completed_item("first", "oil-change", {"tech-1": 1}, completion_time=START),
            completed_item("last-day", "oil-change", {"tech-1": 1},
                           completion_time=datetime(2024, 3, 31, 23, 59, tzinfo=timezone.utc)),
        ],
    )

    metrics = calculate_performance_metrics("tech-1", [order], target, START, END)

    assert metrics.completed_services == 2


def test_naive_completion_times_are_treated_as_utc(target):
    order = ServiceOrder(
        id="o",
        service_items=[completed_item("naive", "oil-change", {"tech-1": 3},
                                      completion_time=datetime(2024, 3, 10, 12, 0))],
    )

    metrics = calculate_performance_metrics("tech-1", [order], target, START, END)

    assert metrics.total_credit_points == 3


def test_no_work_gives_empty_metrics(target):
    metrics = calculate_performance_metrics("tech-1", [], target, START, END)

    assert metrics.total_credit_points == 0
    assert metrics.completed_services == 0
    assert metrics.target_achievement_percentage == 0
    assert metrics.service_type_breakdown == []


def test_zero_target_gives_zero_percentage():
    assert achievement_percentage(50, 0) == 0.0
    assert achievement_percentage(0, 0) == 0.0
    assert achievement_percentage(30, 60) == 50.0


def test_technician_credit_summary(history_order):
    summary = summarize_technician_credits([history_order], START, END)

    assert list(summary["technician"]) == ["tech-1", "tech-2"]
    assert list(summary["total_credits"]) == [20.0, 20.0]
    assert list(summary["service_count"]) == [3, 3]


def test_technician_credit_summary_empty():
    summary = summarize_technician_credits([], START, END)

    assert summary.empty
    assert list(summary.columns) == ["technician", "total_credits", "service_count"]
