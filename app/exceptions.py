"""
Incentive engine errors
"""

from incentive_calculations.formula_evaluator import FormulaError


class IncentiveEngineError(Exception):
    """Base class for incentive engine failures"""


class NotFoundError(IncentiveEngineError):
    """A staff member, category, policy, target, order or service type is missing"""

    def __init__(self, entity: str, identifier, message: str = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} not found: {identifier}")


class PolicyNotApplicableError(IncentiveEngineError):
    def __init__(self, policy_id: str, category_id: str):
        self.policy_id = policy_id
        self.category_id = category_id
        super().__init__(f"Incentive policy {policy_id} is not applicable to staff category {category_id}")


class DistributionError(IncentiveEngineError):
    """Credit points could not be distributed for a service item; nothing was applied"""


class PersistenceConflict(IncentiveEngineError):
    """A concurrent writer created the same unique key first"""


class InvalidOperationError(IncentiveEngineError):
    """The requested change is not allowed in the entity's current state"""


__all__ = [
    "IncentiveEngineError",
    "NotFoundError",
    "PolicyNotApplicableError",
    "FormulaError",
    "DistributionError",
    "PersistenceConflict",
    "InvalidOperationError",
]
