"""
Service item lifecycle endpoints
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from app.dependencies import get_credit_service, to_http_exception
from app.models.api_models import (
    ItemStatusRequest,
    ItemStatusResponse,
    TechnicianCredits,
    TechnicianCreditsResponse,
    TechnicianRequest,
)
from app.models.service_models import ServiceOrder
from app.services.credit_distribution_service import CreditDistributionService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/technician-credits", response_model=TechnicianCreditsResponse)
async def technician_credits(start: datetime, end: datetime, technician: Optional[str] = None,
                             service: CreditDistributionService = Depends(get_credit_service)):
    """
    Credit points earned per technician on items completed in [start, end]
    """
    try:
        rows = await service.technician_credit_report(start, end, technician)
    except Exception as e:
        logger.error(f"Error building technician credit report: {str(e)}")
        raise to_http_exception(e)

    return TechnicianCreditsResponse(
        start=start,
        end=end,
        technicians=[TechnicianCredits(**row) for row in rows],
    )


@router.put("/{order_id}/items/{item_id}/status", response_model=ItemStatusResponse)
async def update_item_status(order_id: str, item_id: str, request: ItemStatusRequest,
                             service: CreditDistributionService = Depends(get_credit_service)):
    """
    Update a service item's status; completing it distributes credit points
    """
    try:
        result = await service.update_service_item_status(order_id, item_id, request.status, request.at)
    except Exception as e:
        logger.error(f"Error updating status of item {item_id} in order {order_id}: {str(e)}")
        raise to_http_exception(e)

    if result.distribution_error:
        message = f"Status updated; credit distribution failed: {result.distribution_error}"
    else:
        message = f"Service item status updated to {result.status.value}"

    return ItemStatusResponse(
        success=result.distribution_error is None,
        message=message,
        order=result.order,
        newly_completed=result.newly_completed,
        credits_assigned=result.credits_assigned,
        distribution_error=result.distribution_error,
    )


@router.post("/{order_id}/items/{item_id}/credits", response_model=ItemStatusResponse)
async def retry_credit_distribution(order_id: str, item_id: str,
                                    service: CreditDistributionService = Depends(get_credit_service)):
    """
    Distribute credit points for a completed item (retry after a failed distribution)
    """
    try:
        assigned = await service.assign_credit_points(order_id, item_id)
        order = await service.store.get_service_order(order_id)
    except Exception as e:
        logger.error(f"Error distributing credits for item {item_id} in order {order_id}: {str(e)}")
        raise to_http_exception(e)

    return ItemStatusResponse(
        success=assigned,
        message="Credit points assigned" if assigned else "Service item is not completed",
        order=order,
        credits_assigned=assigned,
    )


@router.post("/{order_id}/items/{item_id}/technicians", response_model=ServiceOrder)
async def add_technician(order_id: str, item_id: str, request: TechnicianRequest,
                         service: CreditDistributionService = Depends(get_credit_service)):
    try:
        return await service.add_technician(order_id, item_id, request.technician_id)
    except Exception as e:
        logger.error(f"Error assigning technician {request.technician_id} to item {item_id}: {str(e)}")
        raise to_http_exception(e)


@router.delete("/{order_id}/items/{item_id}/technicians/{technician_id}", response_model=ServiceOrder)
async def remove_technician(order_id: str, item_id: str, technician_id: str,
                            service: CreditDistributionService = Depends(get_credit_service)):
    try:
        return await service.remove_technician(order_id, item_id, technician_id)
    except Exception as e:
        logger.error(f"Error removing technician {technician_id} from item {item_id}: {str(e)}")
        raise to_http_exception(e)
