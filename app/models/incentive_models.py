"""
Pydantic models for staff, categories, targets, policies and monthly salary records
"""

import calendar
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from app.models.service_models import ensure_utc, utc_now


# ---------- Staff ----------

class StaffStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ServiceCapability(BaseModel):
    service_type: str
    skill_level: int = Field(1, ge=1, le=5)
    certified: bool = False
    total_credits_earned: float = 0.0
    completed_services: int = 0


class Staff(BaseModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    status: StaffStatus = StaffStatus.ACTIVE
    primary_category: Optional[str] = None
    experience: int = Field(0, ge=0, description="Experience in months")
    service_capabilities: List[ServiceCapability] = Field(default_factory=list)
    total_credit_points: float = 0.0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def get_capability(self, service_type_id: str) -> Optional[ServiceCapability]:
        for capability in self.service_capabilities:
            if capability.service_type == service_type_id:
                return capability
        return None

    def add_service_credits(self, service_type_id: str, credits_earned: float):
        """Add earned points to the lifetime total and to the matching capability, if held"""
        capability = self.get_capability(service_type_id)
        if capability is not None:
            capability.total_credits_earned += credits_earned
            capability.completed_services += 1
        self.total_credit_points += credits_earned


# ---------- Staff category ----------

class CapabilityRequirement(BaseModel):
    service_type: str
    minimum_skill_level: int = Field(1, ge=1, le=5)
    certification_required: bool = False


class StaffCategory(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    base_salary: float = Field(..., ge=0)
    base_incentive_rate: float = 0.0
    minimum_experience: int = Field(0, ge=0, description="Minimum experience in months")
    service_capability_requirements: List[CapabilityRequirement] = Field(default_factory=list)
    active: bool = True

    def check_eligibility(self, staff: Staff) -> Tuple[bool, Optional[str]]:
        """Check whether a staff member meets this category's requirements"""
        if staff.experience < self.minimum_experience:
            return False, f"Insufficient experience. Required: {self.minimum_experience} months."

        for requirement in self.service_capability_requirements:
            capability = staff.get_capability(requirement.service_type)
            if capability is None:
                return False, "Missing service capability for required service type."
            if capability.skill_level < requirement.minimum_skill_level:
                return False, (f"Insufficient skill level for service type. "
                               f"Required: {requirement.minimum_skill_level}.")
            if requirement.certification_required and not capability.certified:
                return False, "Certification required for service type."

        return True, None


# ---------- Monthly target ----------

class BonusThreshold(BaseModel):
    achievement: float = Field(..., description="Percentage of the credit point target")
    bonus_amount: float


class ServiceTypeTarget(BaseModel):
    service_type: str
    target_count: int = Field(0, ge=0)
    bonus_per_excess: float = 0.0


class MonthlyTarget(BaseModel):
    id: Optional[str] = None
    month: int = Field(..., ge=1, le=12)
    year: int
    category: str
    target_credit_points: float = Field(..., ge=0)
    target_completed_services: int = Field(..., ge=0)
    bonus_thresholds: List[BonusThreshold] = Field(default_factory=list)
    service_type_targets: List[ServiceTypeTarget] = Field(default_factory=list)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @property
    def key(self) -> Tuple[int, int, str]:
        return self.month, self.year, self.category

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]


# ---------- Incentive policy ----------

class PolicyVariable(BaseModel):
    name: str
    description: Optional[str] = None
    default_value: float = 0.0


class ServiceTypeMultiplier(BaseModel):
    service_type: str
    multiplier: float = 1.0


class PolicyThreshold(BaseModel):
    metric_name: str
    threshold: float
    bonus_amount: float


class IncentivePolicy(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    formula_definition: str
    variables: List[PolicyVariable] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    service_type_multipliers: List[ServiceTypeMultiplier] = Field(default_factory=list)
    thresholds: List[PolicyThreshold] = Field(default_factory=list)
    active: bool = True
    effective_from: datetime = Field(default_factory=utc_now)
    effective_to: Optional[datetime] = None

    def is_applicable_to(self, category_id: str) -> bool:
        return any(str(category) == str(category_id) for category in self.applicable_categories)

    def variable_defaults(self) -> Dict[str, float]:
        return {variable.name: variable.default_value for variable in self.variables}

    def is_effective(self, start: datetime, end: Optional[datetime] = None) -> bool:
        """Active and in force at some point of [start, end]"""
        end = end or start
        if not self.active:
            return False
        if ensure_utc(self.effective_from) > ensure_utc(end):
            return False
        if self.effective_to is not None and ensure_utc(self.effective_to) < ensure_utc(start):
            return False
        return True


# ---------- Monthly salary record ----------

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    PAID = "paid"


class ServiceTypeBreakdown(BaseModel):
    service_type: str
    count: int = 0
    credit_points: float = 0.0


class PerformanceMetrics(BaseModel):
    total_credit_points: float = 0.0
    completed_services: int = 0
    target_achievement_percentage: float = 0.0
    service_type_breakdown: List[ServiceTypeBreakdown] = Field(default_factory=list)


class IncentiveBreakdown(BaseModel):
    base_incentive: float = 0.0
    target_bonus: float = 0.0
    service_type_bonus: float = 0.0
    special_bonus: float = 0.0
    special_bonus_reason: str = ""
    deductions: float = 0.0
    deduction_reason: str = ""

    @property
    def total(self) -> float:
        return (self.base_incentive + self.target_bonus + self.service_type_bonus
                + self.special_bonus - self.deductions)


class CalculationDetails(BaseModel):
    formula: str = ""
    variable_values: Dict[str, Any] = Field(default_factory=dict)


class MonthlySalaryRecord(BaseModel):
    id: Optional[str] = None
    staff: str
    month: int = Field(..., ge=1, le=12)
    year: int
    staff_category: str
    base_salary: float = Field(..., ge=0)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    incentive_breakdown: IncentiveBreakdown = Field(default_factory=IncentiveBreakdown)
    total_incentive: float = 0.0
    gross_salary: float = 0.0
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    incentive_policy: str
    calculation_details: CalculationDetails = Field(default_factory=CalculationDetails)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, int, int]:
        return self.staff, self.month, self.year

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]

    def recalculate_totals(self) -> "MonthlySalaryRecord":
        """Recompute total incentive and gross salary from the breakdown"""
        self.total_incentive = self.incentive_breakdown.total
        self.gross_salary = self.base_salary + self.total_incentive
        return self


# Fields a recalculation replaces on an existing record; payment and audit fields are kept
RECALCULATED_FIELDS = (
    "staff_category",
    "base_salary",
    "performance_metrics",
    "incentive_breakdown",
    "incentive_policy",
    "calculation_details",
)


# ---------- Calculation options & batch report ----------

class IncentiveOptions(BaseModel):
    variables: Dict[str, float] = Field(default_factory=dict, description="Extra or overriding formula variables")
    special_bonus: float = 0.0
    special_bonus_reason: str = ""
    deductions: float = 0.0
    deduction_reason: str = ""


class BatchFailure(BaseModel):
    staff_id: str
    error: str
    error_type: str = "Exception"


class BatchReport(BaseModel):
    category: str
    month: int
    year: int
    successful: List[MonthlySalaryRecord] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list, description="Staff not dispatched because the run was cancelled")
    cancelled: bool = False

    @property
    def total_staff(self) -> int:
        return len(self.successful) + len(self.failed) + len(self.skipped)

    def summary(self) -> Dict[str, Any]:
        return {
            "total_staff": self.total_staff,
            "successful": len(self.successful),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "cancelled": self.cancelled,
            "total_incentive": sum(r.total_incentive for r in self.successful),
            "total_gross_salary": sum(r.gross_salary for r in self.successful),
        }
