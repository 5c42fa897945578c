"""
Credit distribution service
Handles service item status changes and splits credit points across the
technicians of completed items
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.exceptions import DistributionError, InvalidOperationError, NotFoundError
from app.models.service_models import ServiceItem, ServiceOrder, ServiceStatus, ensure_utc, utc_now
from app.store import IncentiveStore
from incentive_calculations.credit_points import plan_credit_assignment
from incentive_calculations.performance_metrics import summarize_technician_credits

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (ServiceStatus.COMPLETED, ServiceStatus.CANCELLED)


@dataclass
class StatusUpdateResult:
    order: ServiceOrder
    item_id: str
    status: ServiceStatus
    newly_completed: bool = False
    credits_assigned: bool = False
    distribution_error: Optional[str] = None


def _require_item(order: ServiceOrder, item_id: str) -> ServiceItem:
    item = order.get_item(item_id)
    if item is None:
        raise NotFoundError("Service item", item_id)
    return item


class CreditDistributionService:
    """Service for service item lifecycle and credit point distribution"""

    def __init__(self, store: IncentiveStore):
        self.store = store

    async def assign_credit_points(self, order_id: str, item_id: str) -> bool:
        """
        Distribute a completed item's credit points to its technicians

        Returns:
            True when every technician of the item is credited afterwards,
            False when the item is not completed

        Raises:
            NotFoundError: order or item missing
            DistributionError: the item's service type is missing; nothing is applied
        """
        order = await self.store.get_service_order(order_id)
        if order is None:
            raise NotFoundError("Service order", order_id)
        item = _require_item(order, item_id)

        if item.status != ServiceStatus.COMPLETED:
            return False
        if item.credits_fully_assigned:
            return True

        service_type = await self.store.get_service_type(item.service_type)
        if service_type is None:
            raise DistributionError(
                f"Service type {item.service_type} not found for item {item_id} of order {order_id}"
            )

        assignment = await self.store.apply_credit_assignment(
            order_id, item_id, lambda locked_item: plan_credit_assignment(locked_item, service_type)
        )
        if assignment is not None:
            logger.info(f"Credited {assignment.points_per_technician:.2f} points to "
                        f"{len(assignment.credited)} technician(s) for item {item_id} of order {order_id}")
        return True

    async def update_service_item_status(self, order_id: str, item_id: str, status: ServiceStatus,
                                         at: Optional[datetime] = None) -> StatusUpdateResult:
        """
        Change an item's status and distribute credits when it becomes completed

        Only the first transition into completed stamps completion_time and
        triggers distribution. Completed and cancelled are terminal: re-sending
        the same status is a no-op, anything else raises InvalidOperationError.
        A distribution failure leaves the new status saved and is reported on
        the result; assign_credit_points retries it.
        """
        status = ServiceStatus(status)
        at = ensure_utc(at) if at is not None else utc_now()

        def change_status(order: ServiceOrder) -> bool:
            item = _require_item(order, item_id)
            if item.status in TERMINAL_STATUSES and item.status != status:
                raise InvalidOperationError(
                    f"Service item {item_id} is {item.status.value} and cannot move to {status.value}"
                )

            newly_completed = status == ServiceStatus.COMPLETED and item.completion_time is None
            if status == ServiceStatus.IN_PROGRESS and item.start_time is None:
                item.start_time = at
            if newly_completed:
                item.completion_time = at
            item.status = status
            return newly_completed

        order, newly_completed = await self.store.update_service_order(order_id, change_status)
        result = StatusUpdateResult(order=order, item_id=item_id, status=status,
                                    newly_completed=newly_completed)

        if newly_completed:
            try:
                result.credits_assigned = await self.assign_credit_points(order_id, item_id)
            except DistributionError as e:
                logger.error(f"Credit distribution failed for item {item_id} of order {order_id}: {e}")
                result.distribution_error = str(e)
            result.order = await self.store.get_service_order(order_id) or order

        return result

    async def add_technician(self, order_id: str, item_id: str, technician_id: str) -> ServiceOrder:
        """Assign a technician to a service item"""
        if await self.store.get_staff(technician_id) is None:
            raise NotFoundError("Staff member", technician_id)

        def assign(order: ServiceOrder):
            item = _require_item(order, item_id)
            if item.is_assigned(technician_id):
                raise InvalidOperationError(f"Technician {technician_id} is already assigned to item {item_id}")
            if item.status in TERMINAL_STATUSES:
                raise InvalidOperationError(f"Cannot assign technicians to a {item.status.value} item")
            item.assign_technician(technician_id)

        order, _ = await self.store.update_service_order(order_id, assign)
        return order

    async def remove_technician(self, order_id: str, item_id: str, technician_id: str) -> ServiceOrder:
        """Remove a technician from a service item that has not been credited yet"""

        def unassign(order: ServiceOrder):
            item = _require_item(order, item_id)
            assignment = item.technicians.get(technician_id)
            if assignment is None:
                raise NotFoundError("Technician assignment", technician_id,
                                    f"Technician {technician_id} is not assigned to item {item_id}")
            if item.status == ServiceStatus.COMPLETED and assignment.credits_assigned:
                raise InvalidOperationError(
                    "Cannot remove technician from completed service with assigned credits"
                )
            del item.technicians[technician_id]

        order, _ = await self.store.update_service_order(order_id, unassign)
        return order

    async def technician_credit_report(self, start: datetime, end: datetime,
                                       technician_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Credits earned per technician on items completed in [start, end]

        Rows carry technician, name, total_credits and service_count, in
        first-seen order; name is empty for technicians without a staff record.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        orders = await self.store.find_completed_service_orders(technician_id, start, end)
        report_df = summarize_technician_credits(orders, start, end)
        if technician_id is not None:
            report_df = report_df[report_df["technician"] == technician_id]

        rows = []
        for row in report_df.to_dict("records"):
            staff = await self.store.get_staff(row["technician"])
            rows.append({
                "technician": row["technician"],
                "name": staff.full_name if staff else "",
                "total_credits": float(row["total_credits"]),
                "service_count": int(row["service_count"]),
            })
        return rows
