"""
Request and response models for the incentive API
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.incentive_models import BatchFailure, IncentiveOptions, MonthlySalaryRecord
from app.models.service_models import ServiceOrder, ServiceStatus


class StaffIncentiveRequest(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int
    category_id: str
    policy_id: str
    actor_id: Optional[str] = Field(None, description="Required when save is true")
    save: bool = False
    options: IncentiveOptions = Field(default_factory=IncentiveOptions)


class StaffIncentiveResponse(BaseModel):
    success: bool
    message: str
    saved: bool = False
    record: Optional[MonthlySalaryRecord] = None
    execution_time_seconds: Optional[float] = None


class CategoryIncentiveRequest(BaseModel):
    category_id: str
    month: int = Field(..., ge=1, le=12)
    year: int
    policy_id: str
    actor_id: str
    max_concurrency: Optional[int] = Field(None, ge=1)


class CategoryIncentiveResponse(BaseModel):
    success: bool
    message: str
    successful: List[MonthlySalaryRecord] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)
    execution_time_seconds: Optional[float] = None


class ItemStatusRequest(BaseModel):
    status: ServiceStatus
    at: Optional[datetime] = None


class ItemStatusResponse(BaseModel):
    success: bool
    message: str
    order: ServiceOrder
    newly_completed: bool = False
    credits_assigned: bool = False
    distribution_error: Optional[str] = None


class TechnicianRequest(BaseModel):
    technician_id: str


class FormulaValidationResponse(BaseModel):
    valid: bool
    variables: List[str] = Field(default_factory=list)
    unknown_variables: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class TechnicianCredits(BaseModel):
    technician: str
    name: str = ""
    total_credits: float = 0.0
    service_count: int = 0


class TechnicianCreditsResponse(BaseModel):
    start: datetime
    end: datetime
    technicians: List[TechnicianCredits] = Field(default_factory=list)


class EligibilityResponse(BaseModel):
    staff_id: str
    category_id: str
    eligible: bool
    reason: Optional[str] = None
