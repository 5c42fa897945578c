"""
Credit Points Module
Splits a service type's fixed credit points evenly across the technicians
assigned to a completed service item
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from app.models.service_models import ServiceItem, ServiceStatus, ServiceType


@dataclass
class CreditAssignment:
    """Outcome of crediting one service item"""
    service_item: str
    service_type: str
    points_per_technician: float = 0.0
    # technician id -> points credited by this assignment
    credited: Dict[str, float] = field(default_factory=dict)

    @property
    def applied(self) -> bool:
        return bool(self.credited)


def plan_credit_assignment(item: ServiceItem, service_type: ServiceType) -> Optional[CreditAssignment]:
    """
    Work out which technicians to credit and with how many points

    Returns None when there is nothing to do: the item is not completed, or
    every assigned technician already has credits assigned.
    """
    if item.status != ServiceStatus.COMPLETED:
        return None
    if item.credits_fully_assigned:
        return None

    points_per_technician = service_type.credit_points / len(item.technicians)
    assignment = CreditAssignment(
        service_item=item.id,
        service_type=service_type.id,
        points_per_technician=points_per_technician,
    )
    for tech_id, tech in item.technicians.items():
        if not tech.credits_assigned:
            assignment.credited[tech_id] = points_per_technician
    return assignment


def apply_credit_assignment(item: ServiceItem, assignment: CreditAssignment) -> ServiceItem:
    """Mark the planned technicians as credited on the item"""
    for tech_id, points in assignment.credited.items():
        tech = item.technicians[tech_id]
        tech.credit_points = points
        tech.credits_assigned = True
    return item
