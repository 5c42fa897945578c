"""
FastAPI dependencies shared by the routers
"""

from fastapi import Depends, HTTPException

from app.database import PostgresIncentiveStore, database_manager
from app.exceptions import (
    DistributionError,
    IncentiveEngineError,
    InvalidOperationError,
    NotFoundError,
    PolicyNotApplicableError,
)
from app.services.credit_distribution_service import CreditDistributionService
from app.services.incentive_service import IncentiveCalculationService
from app.store import IncentiveStore


def get_store() -> IncentiveStore:
    """Entity store backed by the global database pool; overridden in tests"""
    return PostgresIncentiveStore(database_manager)


def get_incentive_service(store: IncentiveStore = Depends(get_store)) -> IncentiveCalculationService:
    return IncentiveCalculationService(store)


def get_credit_service(store: IncentiveStore = Depends(get_store)) -> CreditDistributionService:
    return CreditDistributionService(store)


def to_http_exception(error: Exception) -> HTTPException:
    """Map engine errors onto HTTP status codes"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (PolicyNotApplicableError, InvalidOperationError, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, DistributionError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, IncentiveEngineError):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=500, detail=f"Internal server error: {str(error)}")
