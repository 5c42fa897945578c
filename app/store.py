"""
Entity store interface used by the incentive services
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from app.models.incentive_models import (
    IncentivePolicy,
    MonthlySalaryRecord,
    MonthlyTarget,
    Staff,
    StaffCategory,
)
from app.models.service_models import ServiceItem, ServiceOrder, ServiceType
from incentive_calculations.credit_points import CreditAssignment

CreditPlanner = Callable[[ServiceItem], Optional[CreditAssignment]]
OrderMutator = Callable[[ServiceOrder], Any]


class IncentiveStore(ABC):
    """
    Persistence boundary of the engine.

    Reads return copies; mutating a returned model never changes stored state
    until it is written back.
    """

    # ---------- Staff & categories ----------

    @abstractmethod
    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        ...

    @abstractmethod
    async def list_active_staff_by_category(self, category_id: str) -> List[Staff]:
        ...

    @abstractmethod
    async def get_staff_category(self, category_id: str) -> Optional[StaffCategory]:
        ...

    # ---------- Policies & targets ----------

    @abstractmethod
    async def get_incentive_policy(self, policy_id: str) -> Optional[IncentivePolicy]:
        ...

    @abstractmethod
    async def get_monthly_target(self, month: int, year: int, category_id: str) -> Optional[MonthlyTarget]:
        ...

    @abstractmethod
    async def upsert_monthly_target(self, target: MonthlyTarget) -> MonthlyTarget:
        """Insert, or replace the target already stored for (month, year, category)"""

    # ---------- Services ----------

    @abstractmethod
    async def get_service_type(self, service_type_id: str) -> Optional[ServiceType]:
        ...

    @abstractmethod
    async def get_service_order(self, order_id: str) -> Optional[ServiceOrder]:
        ...

    @abstractmethod
    async def update_service_order(self, order_id: str, mutator: OrderMutator) -> Tuple[ServiceOrder, Any]:
        """
        Read, mutate and write one order as a single unit.

        `mutator` receives the freshly read order and may raise to abort without
        writing. Totals and derived status are refreshed before the write.
        Returns the saved order and the mutator's return value.
        """

    @abstractmethod
    async def find_completed_service_orders(self, technician_id: Optional[str], start: datetime,
                                            end: datetime) -> List[ServiceOrder]:
        """
        Orders with at least one completed item in [start, end] assigned to the
        technician, or to any technician when technician_id is None
        """

    @abstractmethod
    async def apply_credit_assignment(self, order_id: str, item_id: str,
                                      planner: CreditPlanner) -> Optional[CreditAssignment]:
        """
        Atomically plan and apply credit points for one service item.

        The item is read and locked, `planner` decides the assignment, and the
        item flags plus every credited technician's ledger are written as one
        unit. Returns None when the planner had nothing to do.
        """

    # ---------- Salary records ----------

    @abstractmethod
    async def get_salary_record(self, staff_id: str, month: int, year: int) -> Optional[MonthlySalaryRecord]:
        ...

    @abstractmethod
    async def insert_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        """Insert a new record; raises PersistenceConflict if (staff, month, year) exists"""

    @abstractmethod
    async def update_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        """Replace the record stored for (staff, month, year)"""

    async def health_check(self) -> bool:
        return True
