"""
Incentive calculation API endpoints
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_incentive_service, to_http_exception
from app.models.api_models import (
    CategoryIncentiveRequest,
    CategoryIncentiveResponse,
    EligibilityResponse,
    FormulaValidationResponse,
    StaffIncentiveRequest,
    StaffIncentiveResponse,
)
from app.models.incentive_models import IncentivePolicy, MonthlyTarget
from app.services.incentive_service import IncentiveCalculationService, validate_policy_formula
from incentive_calculations.formula_evaluator import FormulaError, extract_variables

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/calculate/{staff_id}", response_model=StaffIncentiveResponse)
async def calculate_staff_incentive(staff_id: str, request: StaffIncentiveRequest,
                                    service: IncentiveCalculationService = Depends(get_incentive_service)):
    """
    Calculate one staff member's monthly incentive, optionally saving the record
    """
    start_time = time.time()
    if request.save and not request.actor_id:
        raise HTTPException(status_code=400, detail="actor_id is required to save an incentive record")

    try:
        logger.info(f"Calculating incentive for staff {staff_id} for {request.month}/{request.year}")
        record = await service.compute_staff_incentive(
            staff_id, request.month, request.year, request.category_id, request.policy_id, request.options
        )
        if request.save:
            record = await service.save_incentive_record(record, request.actor_id)

        return StaffIncentiveResponse(
            success=True,
            message="Incentive saved successfully" if request.save else "Incentive calculated successfully",
            saved=request.save,
            record=record,
            execution_time_seconds=time.time() - start_time,
        )

    except Exception as e:
        logger.error(f"Error calculating incentive for staff {staff_id}: {str(e)}")
        raise to_http_exception(e)


@router.post("/calculate-category", response_model=CategoryIncentiveResponse)
async def calculate_category_incentives(request: CategoryIncentiveRequest,
                                        service: IncentiveCalculationService = Depends(get_incentive_service)):
    """
    Calculate and save incentives for every active staff member of a category
    """
    start_time = time.time()
    try:
        report = await service.compute_category_incentives(
            request.category_id, request.month, request.year, request.policy_id, request.actor_id,
            max_concurrency=request.max_concurrency,
        )
    except Exception as e:
        logger.error(f"Error running incentive batch for category {request.category_id}: {str(e)}")
        raise to_http_exception(e)

    return CategoryIncentiveResponse(
        success=not report.failed,
        message=(f"Calculated incentives for {len(report.successful)} of "
                 f"{report.total_staff} staff members"),
        successful=report.successful,
        failed=report.failed,
        skipped=report.skipped,
        summary=report.summary(),
        execution_time_seconds=time.time() - start_time,
    )


@router.put("/targets", response_model=MonthlyTarget)
async def upsert_monthly_target(target: MonthlyTarget, actor_id: str,
                                service: IncentiveCalculationService = Depends(get_incentive_service)):
    """
    Create or replace the monthly target for (month, year, category)
    """
    try:
        return await service.upsert_monthly_target(target, actor_id)
    except Exception as e:
        logger.error(f"Error saving monthly target {target.key}: {str(e)}")
        raise to_http_exception(e)


@router.post("/policies/validate", response_model=FormulaValidationResponse)
async def validate_policy(policy: IncentivePolicy):
    """
    Check that a policy formula parses and only uses variables the engine or the policy supplies
    """
    try:
        unknown = validate_policy_formula(policy)
    except FormulaError as e:
        return FormulaValidationResponse(valid=False, error=str(e))

    return FormulaValidationResponse(
        valid=not unknown,
        variables=extract_variables(policy.formula_definition),
        unknown_variables=unknown,
        error=f"Unknown variables: {', '.join(unknown)}" if unknown else None,
    )


@router.get("/eligibility/{staff_id}", response_model=EligibilityResponse)
async def check_eligibility(staff_id: str, category_id: str,
                            service: IncentiveCalculationService = Depends(get_incentive_service)):
    """
    Check whether a staff member meets a category's experience and capability requirements
    """
    try:
        eligible, reason = await service.check_staff_eligibility(staff_id, category_id)
    except Exception as e:
        logger.error(f"Error checking eligibility of staff {staff_id} for category {category_id}: {str(e)}")
        raise to_http_exception(e)

    return EligibilityResponse(staff_id=staff_id, category_id=category_id, eligible=eligible, reason=reason)
