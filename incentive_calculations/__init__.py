"""
Incentive Calculations Module

Synchronous, deterministic calculation steps of the incentive engine.
Each calculation type is organized in a separate file.
"""

from .formula_evaluator import FormulaError, calculate_base_incentive, evaluate_formula, extract_variables
from .performance_metrics import calculate_performance_metrics, summarize_technician_credits
from .target_bonus import resolve_target_bonus
from .service_type_bonus import calculate_service_type_bonus
from .credit_points import CreditAssignment, apply_credit_assignment, plan_credit_assignment

__all__ = [
    'FormulaError',
    'calculate_base_incentive',
    'evaluate_formula',
    'extract_variables',
    'calculate_performance_metrics',
    'summarize_technician_credits',
    'resolve_target_bonus',
    'calculate_service_type_bonus',
    'CreditAssignment',
    'apply_credit_assignment',
    'plan_credit_assignment',
]
