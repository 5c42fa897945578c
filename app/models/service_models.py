"""
Pydantic models for service orders, service items and technician assignments
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ServiceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceTypeCategory(str, Enum):
    ROUTINE_MAINTENANCE = "routine_maintenance"
    REPAIR = "repair"
    INSPECTION = "inspection"
    BODY_WORK = "body_work"
    WASHING = "washing"
    OTHER = "other"


class ServiceType(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[ServiceTypeCategory] = None
    credit_points: float = Field(0.0, ge=0, description="Total points for one completed instance, split across technicians")
    estimated_time: Optional[float] = Field(None, ge=0, description="Estimated time in hours")
    base_price: Optional[float] = Field(None, ge=0)
    required_skill_level: int = Field(1, ge=1, le=5)
    is_active: bool = True


class TechnicianAssignment(BaseModel):
    technician: str
    credit_points: float = 0.0
    credits_assigned: bool = False


class Part(BaseModel):
    name: str
    quantity: int = Field(..., ge=1)
    unit_cost: float = Field(..., ge=0)
    total_cost: float = Field(0.0, ge=0)


class ServiceItem(BaseModel):
    id: str
    service_type: str
    description: str = ""
    # Keyed by technician id, kept in assignment order
    technicians: Dict[str, TechnicianAssignment] = Field(default_factory=dict)
    labor_hours: float = Field(0.0, ge=0)
    labor_cost: float = Field(0.0, ge=0)
    parts: List[Part] = Field(default_factory=list)
    status: ServiceStatus = ServiceStatus.PENDING
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None

    def assign_technician(self, technician_id: str) -> TechnicianAssignment:
        assignment = TechnicianAssignment(technician=technician_id)
        self.technicians[technician_id] = assignment
        return assignment

    def is_assigned(self, technician_id: str) -> bool:
        return technician_id in self.technicians

    @property
    def credits_fully_assigned(self) -> bool:
        """True when every assigned technician has been credited (vacuously true with none)"""
        return all(t.credits_assigned for t in self.technicians.values())

    @property
    def parts_cost(self) -> float:
        return sum(part.total_cost for part in self.parts)


class ServiceOrder(BaseModel):
    id: str
    vehicle: Optional[str] = None
    branch: Optional[str] = None
    service_items: List[ServiceItem] = Field(default_factory=list)
    status: ServiceStatus = ServiceStatus.PENDING
    start_date: datetime = Field(default_factory=utc_now)
    estimated_completion_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    mileage_at_service: Optional[float] = None
    total_cost: float = 0.0

    def get_item(self, item_id: str) -> Optional[ServiceItem]:
        for item in self.service_items:
            if item.id == item_id:
                return item
        return None

    def derive_status(self) -> ServiceStatus:
        """Order status follows its items: all completed, all cancelled, then in progress, then pending"""
        statuses = [item.status for item in self.service_items]
        if not statuses:
            return self.status

        if all(s == ServiceStatus.COMPLETED for s in statuses):
            return ServiceStatus.COMPLETED
        if all(s == ServiceStatus.CANCELLED for s in statuses):
            return ServiceStatus.CANCELLED
        if ServiceStatus.IN_PROGRESS in statuses:
            return ServiceStatus.IN_PROGRESS
        if ServiceStatus.PENDING in statuses:
            return ServiceStatus.PENDING
        return self.status

    def refresh_totals(self, now: Optional[datetime] = None) -> "ServiceOrder":
        """Recompute part totals, the order cost and the derived status before saving"""
        total = 0.0
        for item in self.service_items:
            for part in item.parts:
                part.total_cost = part.quantity * part.unit_cost
            total += item.parts_cost + item.labor_cost
        self.total_cost = total

        self.status = self.derive_status()
        if self.status == ServiceStatus.COMPLETED and self.completion_date is None:
            self.completion_date = now or utc_now()
        return self
