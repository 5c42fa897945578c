"""
Performance Metrics Module
Aggregates a staff member's completed service items in a period into credit
totals, counts and a per-service-type breakdown
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

import pandas as pd

from app.models.incentive_models import MonthlyTarget, PerformanceMetrics, ServiceTypeBreakdown
from app.models.service_models import ServiceOrder, ServiceStatus, ensure_utc

logger = logging.getLogger(__name__)

WORK_COLUMNS = ["service_order", "service_item", "service_type", "technician", "credit_points", "completion_time"]


def completed_work_frame(service_orders: Iterable[ServiceOrder], start: datetime, end: datetime,
                         technician_id: Optional[str] = None) -> pd.DataFrame:
    """
    Flatten completed service items into one row per technician assignment

    Args:
        service_orders: Orders to scan
        start: Inclusive period start
        end: Inclusive period end
        technician_id: Restrict rows to this technician when given

    Returns:
        DataFrame with WORK_COLUMNS, in order/item/assignment order
    """
    start, end = ensure_utc(start), ensure_utc(end)
    rows = []
    for order in service_orders:
        for item in order.service_items:
            if item.status != ServiceStatus.COMPLETED or item.completion_time is None:
                continue
            if not (start <= ensure_utc(item.completion_time) <= end):
                continue

            for tech_id, assignment in item.technicians.items():
                if technician_id is not None and tech_id != technician_id:
                    continue
                rows.append({
                    "service_order": order.id,
                    "service_item": item.id,
                    "service_type": item.service_type,
                    "technician": tech_id,
                    "credit_points": float(assignment.credit_points or 0),
                    "completion_time": item.completion_time,
                })

    return pd.DataFrame(rows, columns=WORK_COLUMNS)


def achievement_percentage(achieved: float, target_credit_points: float) -> float:
    """Percentage of the credit point target reached; 0 when the target is not positive"""
    if not target_credit_points or target_credit_points <= 0:
        return 0.0
    return (achieved / target_credit_points) * 100


def calculate_performance_metrics(staff_id: str, service_orders: Iterable[ServiceOrder],
                                  target: Optional[MonthlyTarget], start: datetime,
                                  end: datetime) -> PerformanceMetrics:
    """
    Calculate a staff member's performance metrics for a period

    Args:
        staff_id: Technician whose work is counted
        service_orders: Candidate orders (may contain other technicians' work)
        target: Monthly target used for the achievement percentage
        start: Inclusive period start
        end: Inclusive period end

    Returns:
        PerformanceMetrics with totals and a breakdown in first-seen service type order
    """
    work_df = completed_work_frame(service_orders, start, end, technician_id=staff_id)

    if work_df.empty:
        logger.info(f"No completed work for staff {staff_id} between {start.date()} and {end.date()}")
        return PerformanceMetrics()

    total_credit_points = float(work_df["credit_points"].sum())
    completed_services = int(len(work_df))

    breakdown_df = (
        work_df.groupby("service_type", sort=False)
        .agg(count=("service_item", "size"), credit_points=("credit_points", "sum"))
        .reset_index()
    )
    breakdown = [
        ServiceTypeBreakdown(
            service_type=row["service_type"],
            count=int(row["count"]),
            credit_points=float(row["credit_points"]),
        )
        for row in breakdown_df.to_dict("records")
    ]

    target_credit_points = target.target_credit_points if target else 0
    metrics = PerformanceMetrics(
        total_credit_points=total_credit_points,
        completed_services=completed_services,
        target_achievement_percentage=achievement_percentage(total_credit_points, target_credit_points),
        service_type_breakdown=breakdown,
    )

    logger.info(f"Staff {staff_id}: {completed_services} completed items, "
                f"{total_credit_points:.2f} credit points, "
                f"{metrics.target_achievement_percentage:.1f}% of target")
    return metrics


def summarize_technician_credits(service_orders: Iterable[ServiceOrder], start: datetime,
                                 end: datetime) -> pd.DataFrame:
    """Per-technician credit report over completed items: total credits and service count"""
    work_df = completed_work_frame(service_orders, start, end)

    if work_df.empty:
        return pd.DataFrame(columns=["technician", "total_credits", "service_count"])

    return (
        work_df.groupby("technician", sort=False)
        .agg(total_credits=("credit_points", "sum"), service_count=("service_item", "size"))
        .reset_index()
    )
