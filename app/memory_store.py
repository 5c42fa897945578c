"""
In-process entity store.

Keeps models in dictionaries and guards the atomic operations (order updates
and credit assignment per order, salary record inserts per key) with asyncio locks.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.exceptions import NotFoundError, PersistenceConflict
from app.models.incentive_models import (
    IncentivePolicy,
    MonthlySalaryRecord,
    MonthlyTarget,
    Staff,
    StaffCategory,
    StaffStatus,
)
from app.models.service_models import ServiceOrder, ServiceStatus, ServiceType, ensure_utc, utc_now
from app.store import CreditPlanner, IncentiveStore, OrderMutator
from incentive_calculations.credit_points import CreditAssignment, apply_credit_assignment

logger = logging.getLogger(__name__)


def _copy(model):
    return model.model_copy(deep=True) if model is not None else None


class InMemoryIncentiveStore(IncentiveStore):

    def __init__(self, staff: Iterable[Staff] = (), categories: Iterable[StaffCategory] = (),
                 policies: Iterable[IncentivePolicy] = (), targets: Iterable[MonthlyTarget] = (),
                 service_types: Iterable[ServiceType] = (), service_orders: Iterable[ServiceOrder] = ()):
        self.staff: Dict[str, Staff] = {s.id: _copy(s) for s in staff}
        self.categories: Dict[str, StaffCategory] = {c.id: _copy(c) for c in categories}
        self.policies: Dict[str, IncentivePolicy] = {p.id: _copy(p) for p in policies}
        self.targets: Dict[Tuple[int, int, str], MonthlyTarget] = {}
        self.service_types: Dict[str, ServiceType] = {t.id: _copy(t) for t in service_types}
        self.service_orders: Dict[str, ServiceOrder] = {o.id: _copy(o) for o in service_orders}
        self.salary_records: Dict[Tuple[str, int, int], MonthlySalaryRecord] = {}

        for target in targets:
            target = _copy(target)
            target.id = target.id or uuid.uuid4().hex
            self.targets[target.key] = target

        self._order_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._salary_lock = asyncio.Lock()
        self._target_lock = asyncio.Lock()

    # ---------- Staff & categories ----------

    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        return _copy(self.staff.get(staff_id))

    async def list_active_staff_by_category(self, category_id: str) -> List[Staff]:
        return [
            _copy(s) for s in self.staff.values()
            if s.primary_category == category_id and s.status == StaffStatus.ACTIVE
        ]

    async def get_staff_category(self, category_id: str) -> Optional[StaffCategory]:
        return _copy(self.categories.get(category_id))

    # ---------- Policies & targets ----------

    async def get_incentive_policy(self, policy_id: str) -> Optional[IncentivePolicy]:
        return _copy(self.policies.get(policy_id))

    async def get_monthly_target(self, month: int, year: int, category_id: str) -> Optional[MonthlyTarget]:
        return _copy(self.targets.get((month, year, category_id)))

    async def upsert_monthly_target(self, target: MonthlyTarget) -> MonthlyTarget:
        async with self._target_lock:
            existing = self.targets.get(target.key)
            stored = _copy(target)
            if existing is not None:
                stored.id = existing.id
                stored.created_by = existing.created_by
            else:
                stored.id = stored.id or uuid.uuid4().hex
            self.targets[target.key] = stored
            return _copy(stored)

    # ---------- Services ----------

    async def get_service_type(self, service_type_id: str) -> Optional[ServiceType]:
        return _copy(self.service_types.get(service_type_id))

    async def get_service_order(self, order_id: str) -> Optional[ServiceOrder]:
        return _copy(self.service_orders.get(order_id))

    async def update_service_order(self, order_id: str, mutator: OrderMutator) -> Tuple[ServiceOrder, Any]:
        async with self._order_locks[order_id]:
            stored_order = self.service_orders.get(order_id)
            if stored_order is None:
                raise NotFoundError("Service order", order_id)

            order = _copy(stored_order)
            result = mutator(order)
            order.refresh_totals()
            self.service_orders[order_id] = order
            return _copy(order), result

    async def find_completed_service_orders(self, technician_id: Optional[str], start: datetime,
                                            end: datetime) -> List[ServiceOrder]:
        start, end = ensure_utc(start), ensure_utc(end)
        matches = []
        for order in self.service_orders.values():
            for item in order.service_items:
                if ((technician_id is None or item.is_assigned(technician_id))
                        and item.status == ServiceStatus.COMPLETED
                        and item.completion_time is not None
                        and start <= ensure_utc(item.completion_time) <= end):
                    matches.append(_copy(order))
                    break
        return matches

    async def apply_credit_assignment(self, order_id: str, item_id: str,
                                      planner: CreditPlanner) -> Optional[CreditAssignment]:
        async with self._order_locks[order_id]:
            stored_order = self.service_orders.get(order_id)
            if stored_order is None:
                raise NotFoundError("Service order", order_id)

            order = _copy(stored_order)
            item = order.get_item(item_id)
            if item is None:
                raise NotFoundError("Service item", item_id)

            assignment = planner(item)
            if assignment is None or not assignment.applied:
                return None

            # Yield while holding the lock, like a database round trip would
            await asyncio.sleep(0)

            apply_credit_assignment(item, assignment)
            updated_staff = {}
            for tech_id, points in assignment.credited.items():
                staff = updated_staff.get(tech_id) or _copy(self.staff.get(tech_id))
                if staff is None:
                    logger.warning(f"Technician {tech_id} not found; item {item_id} credited without ledger update")
                    continue
                staff.add_service_credits(assignment.service_type, points)
                updated_staff[tech_id] = staff

            # Commit: item flags and ledgers together
            self.service_orders[order_id] = order
            self.staff.update(updated_staff)
            return assignment

    # ---------- Salary records ----------

    async def get_salary_record(self, staff_id: str, month: int, year: int) -> Optional[MonthlySalaryRecord]:
        return _copy(self.salary_records.get((staff_id, month, year)))

    async def insert_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        async with self._salary_lock:
            if record.key in self.salary_records:
                raise PersistenceConflict(f"Salary record already exists for {record.key}")
            stored = _copy(record)
            stored.id = stored.id or uuid.uuid4().hex
            now = utc_now()
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            self.salary_records[record.key] = stored
            return _copy(stored)

    async def update_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        async with self._salary_lock:
            existing = self.salary_records.get(record.key)
            if existing is None:
                raise NotFoundError("Monthly salary record", record.key)
            stored = _copy(record)
            stored.id = existing.id
            stored.created_at = existing.created_at
            stored.updated_at = utc_now()
            self.salary_records[record.key] = stored
            return _copy(stored)
