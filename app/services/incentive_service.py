"""
Incentive calculation service
Composes performance metrics, formula evaluation and bonus resolution into
monthly salary records, for one staff member or a whole staff category
"""

import asyncio
import calendar
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from app.config import settings
from app.exceptions import NotFoundError, PersistenceConflict, PolicyNotApplicableError
from app.models.incentive_models import (
    RECALCULATED_FIELDS,
    BatchFailure,
    BatchReport,
    CalculationDetails,
    IncentiveBreakdown,
    IncentiveOptions,
    IncentivePolicy,
    MonthlySalaryRecord,
    MonthlyTarget,
    Staff,
)
from app.store import IncentiveStore
from incentive_calculations.formula_evaluator import calculate_base_incentive, extract_variables
from incentive_calculations.performance_metrics import calculate_performance_metrics
from incentive_calculations.service_type_bonus import calculate_service_type_bonus
from incentive_calculations.target_bonus import resolve_target_bonus

logger = logging.getLogger(__name__)

# Scope names every formula can use
FORMULA_VARIABLES = (
    "baseSalary",
    "baseIncentiveRate",
    "totalCreditPoints",
    "completedServices",
    "targetAchievementPercentage",
    "targetCreditPoints",
    "targetCompletedServices",
)


def validate_policy_formula(policy: IncentivePolicy) -> List[str]:
    """
    Names the policy formula references that neither the engine nor the
    policy's declared variables supply. Raises FormulaError if it does not parse.
    """
    available = set(FORMULA_VARIABLES) | set(policy.variable_defaults())
    return [name for name in extract_variables(policy.formula_definition) if name not in available]


def month_period(month: int, year: int) -> Tuple[datetime, datetime]:
    """First and last instant (inclusive, UTC) of a calendar month"""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year, month, last_day, tzinfo=timezone.utc) + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


class IncentiveCalculationService:
    """Service for calculating and saving staff incentives"""

    def __init__(self, store: IncentiveStore, max_concurrency: Optional[int] = None,
                 upsert_max_retries: Optional[int] = None):
        self.store = store
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_CALCULATIONS
        self.upsert_max_retries = (upsert_max_retries if upsert_max_retries is not None
                                   else settings.UPSERT_MAX_RETRIES)

    async def compute_staff_incentive(self, staff_id: str, month: int, year: int, category_id: str,
                                      policy_id: str,
                                      options: Optional[IncentiveOptions] = None) -> MonthlySalaryRecord:
        """
        Calculate a staff member's incentive for a month (not persisted)

        Args:
            staff_id: Staff member to calculate for
            month: Month (1-12)
            year: Year
            category_id: Staff category providing base salary and rate
            policy_id: Incentive policy providing the formula and multipliers
            options: Extra formula variables, special bonus and deductions

        Returns:
            A fully assembled MonthlySalaryRecord

        Raises:
            NotFoundError: staff, category, policy or monthly target missing
            PolicyNotApplicableError: the policy does not list the category
        """
        options = options or IncentiveOptions()
        start, end = month_period(month, year)

        staff = await self.store.get_staff(staff_id)
        if staff is None:
            raise NotFoundError("Staff member", staff_id)

        category = await self.store.get_staff_category(category_id)
        if category is None:
            raise NotFoundError("Staff category", category_id)

        policy = await self.store.get_incentive_policy(policy_id)
        if policy is None:
            raise NotFoundError("Incentive policy", policy_id)

        if not policy.is_applicable_to(category_id):
            raise PolicyNotApplicableError(policy_id, category_id)

        if not policy.is_effective(start, end):
            logger.warning(f"Incentive policy {policy_id} is inactive or not in force during "
                           f"{month}/{year}; calculating anyway")

        target = await self.store.get_monthly_target(month, year, category_id)
        if target is None:
            raise NotFoundError("Monthly target", (month, year, category_id),
                                f"No monthly target found for {month}/{year} for staff category {category_id}")

        service_orders = await self.store.find_completed_service_orders(staff_id, start, end)
        metrics = calculate_performance_metrics(staff_id, service_orders, target, start, end)

        variables: Dict[str, float] = {
            "baseSalary": category.base_salary,
            "baseIncentiveRate": category.base_incentive_rate,
            "totalCreditPoints": metrics.total_credit_points,
            "completedServices": metrics.completed_services,
            "targetAchievementPercentage": metrics.target_achievement_percentage,
            "targetCreditPoints": target.target_credit_points,
            "targetCompletedServices": target.target_completed_services,
        }
        variables.update(options.variables)

        base_incentive = calculate_base_incentive(
            policy.formula_definition, variables, policy.variable_defaults()
        )
        _, target_bonus = resolve_target_bonus(metrics.total_credit_points, target)
        service_type_bonus = calculate_service_type_bonus(
            metrics.service_type_breakdown,
            target.service_type_targets,
            policy.service_type_multipliers,
        )

        record = MonthlySalaryRecord(
            staff=staff_id,
            month=month,
            year=year,
            staff_category=category_id,
            base_salary=category.base_salary,
            performance_metrics=metrics,
            incentive_breakdown=IncentiveBreakdown(
                base_incentive=base_incentive,
                target_bonus=target_bonus,
                service_type_bonus=service_type_bonus,
                special_bonus=options.special_bonus,
                special_bonus_reason=options.special_bonus_reason,
                deductions=options.deductions,
                deduction_reason=options.deduction_reason,
            ),
            incentive_policy=policy_id,
            calculation_details=CalculationDetails(
                formula=policy.formula_definition,
                variable_values=variables,
            ),
        )
        return record.recalculate_totals()

    async def save_incentive_record(self, record: MonthlySalaryRecord, actor_id: str) -> MonthlySalaryRecord:
        """
        Upsert a salary record by (staff, month, year)

        An existing record takes the recalculated fields and the new updated_by;
        otherwise a new record is inserted with created_by = updated_by = actor_id.
        Totals are recomputed before every write.
        """
        for attempt in range(self.upsert_max_retries + 1):
            existing = await self.store.get_salary_record(record.staff, record.month, record.year)

            if existing is not None:
                merged = existing.model_copy(
                    update={field: getattr(record, field) for field in RECALCULATED_FIELDS}, deep=True
                )
                merged.updated_by = actor_id
                merged.recalculate_totals()
                return await self.store.update_salary_record(merged)

            new_record = record.model_copy(deep=True)
            new_record.created_by = actor_id
            new_record.updated_by = actor_id
            new_record.recalculate_totals()
            try:
                return await self.store.insert_salary_record(new_record)
            except PersistenceConflict:
                logger.warning(f"Concurrent insert for salary record {record.key}; "
                               f"retrying as update (attempt {attempt + 1})")

        raise PersistenceConflict(f"Could not save salary record {record.key} after "
                                  f"{self.upsert_max_retries + 1} attempts")

    async def calculate_and_save(self, staff_id: str, month: int, year: int, category_id: str,
                                 policy_id: str, actor_id: str,
                                 options: Optional[IncentiveOptions] = None) -> MonthlySalaryRecord:
        record = await self.compute_staff_incentive(staff_id, month, year, category_id, policy_id, options)
        return await self.save_incentive_record(record, actor_id)

    async def compute_category_incentives(self, category_id: str, month: int, year: int, policy_id: str,
                                          actor_id: str, max_concurrency: Optional[int] = None,
                                          cancel_event: Optional[asyncio.Event] = None) -> BatchReport:
        """
        Calculate and save incentives for every active staff member of a category

        Each staff member is processed independently with at most
        `max_concurrency` in flight. A failure is recorded in the report and the
        run continues. When `cancel_event` is set, in-flight calculations finish
        and staff not yet started are reported as skipped.

        Returns:
            BatchReport with successful records, failures and skipped staff,
            each in staff list order
        """
        start_time = time.time()
        staff_list: List[Staff] = await self.store.list_active_staff_by_category(category_id)
        limit = max(1, max_concurrency or self.max_concurrency)
        semaphore = asyncio.Semaphore(limit)

        logger.info(f"🚀 Calculating incentives for {len(staff_list)} staff in category {category_id} "
                    f"for {month}/{year} with {limit} parallel workers")

        async def process_single_staff(staff: Staff):
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return "skipped", staff.id, None
                try:
                    saved = await self.calculate_and_save(
                        staff.id, month, year, category_id, policy_id, actor_id
                    )
                    return "successful", staff.id, saved
                except Exception as e:
                    logger.error(f"Error calculating incentive for staff {staff.id}: {e}")
                    return "failed", staff.id, BatchFailure(
                        staff_id=staff.id, error=str(e), error_type=type(e).__name__
                    )

        tasks = [process_single_staff(staff) for staff in staff_list]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        report = BatchReport(category=category_id, month=month, year=year)
        for staff, result in zip(staff_list, results):
            if isinstance(result, BaseException):
                # Only reachable if the task itself was torn down
                report.failed.append(BatchFailure(
                    staff_id=staff.id, error=str(result), error_type=type(result).__name__
                ))
                continue

            outcome, staff_id, payload = result
            if outcome == "successful":
                report.successful.append(payload)
            elif outcome == "failed":
                report.failed.append(payload)
            else:
                report.skipped.append(staff_id)

        report.cancelled = bool(cancel_event is not None and cancel_event.is_set())

        execution_time = time.time() - start_time
        logger.info(f"🎯 Category {category_id} {month}/{year} completed in {execution_time:.2f}s: "
                    f"{len(report.successful)} saved, {len(report.failed)} failed, "
                    f"{len(report.skipped)} skipped")
        return report

    async def upsert_monthly_target(self, target: MonthlyTarget, actor_id: str) -> MonthlyTarget:
        """Create or update the target for (month, year, category)"""
        target = target.model_copy(deep=True)
        existing = await self.store.get_monthly_target(target.month, target.year, target.category)
        if existing is None:
            target.created_by = actor_id
        target.updated_by = actor_id
        return await self.store.upsert_monthly_target(target)

    async def check_staff_eligibility(self, staff_id: str, category_id: str) -> Tuple[bool, Optional[str]]:
        """Check a staff member against a category's experience and capability requirements"""
        staff = await self.store.get_staff(staff_id)
        if staff is None:
            raise NotFoundError("Staff member", staff_id)
        category = await self.store.get_staff_category(category_id)
        if category is None:
            raise NotFoundError("Staff category", category_id)
        return category.check_eligibility(staff)
