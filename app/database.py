"""
Database connection and management
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional, Tuple

import asyncpg

from app import queries
from app.config import settings
from app.exceptions import NotFoundError, PersistenceConflict
from app.models.incentive_models import (
    IncentivePolicy,
    MonthlySalaryRecord,
    MonthlyTarget,
    Staff,
    StaffCategory,
)
from app.models.service_models import ServiceOrder, ServiceType
from app.store import CreditPlanner, IncentiveStore, OrderMutator
from incentive_calculations.credit_points import CreditAssignment, apply_credit_assignment

logger = logging.getLogger(__name__)

class DatabaseManager:
    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Create database connection pool"""
        if not settings.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not configured")

        try:
            logger.info("Connecting to database...")

            self.pool = await asyncpg.create_pool(
                settings.DATABASE_URL,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                command_timeout=settings.DB_COMMAND_TIMEOUT,
            )
            logger.info("Database pool created successfully")

            async with self.pool.acquire() as connection:
                result = await connection.fetchval("SELECT 1")
                if result != 1:
                    raise RuntimeError("Database connection test failed")
                await connection.execute(queries.CREATE_TABLES)
                logger.info("Database connection test successful, schema ready")

        except Exception as e:
            logger.error(f"Failed to create database pool: {e}")
            raise

    async def disconnect(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")
        return self.pool

    async def fetch(self, query: str, *params) -> List[asyncpg.Record]:
        async with self._require_pool().acquire() as connection:
            return await connection.fetch(query, *params)

    async def fetchrow(self, query: str, *params) -> Optional[asyncpg.Record]:
        async with self._require_pool().acquire() as connection:
            return await connection.fetchrow(query, *params)

    async def execute(self, query: str, *params) -> str:
        async with self._require_pool().acquire() as connection:
            return await connection.execute(query, *params)

    def transaction_connection(self):
        """Acquire a pooled connection; use with `async with`"""
        return self._require_pool().acquire()

    async def health_check(self) -> bool:
        """Check database connection health"""
        try:
            if not self.pool:
                return False

            async with self.pool.acquire() as connection:
                await connection.fetchval("SELECT 1")
                return True

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


def _load(model_cls, data: Any):
    if data is None:
        return None
    if isinstance(data, str):
        return model_cls.model_validate_json(data)
    return model_cls.model_validate(data)


def _load_salary_record(row: Optional[asyncpg.Record]) -> Optional[MonthlySalaryRecord]:
    if row is None:
        return None
    record = _load(MonthlySalaryRecord, row["data"])
    record.id = row["id"]
    record.created_at = row["created_at"]
    record.updated_at = row["updated_at"]
    return record


def _dump(model) -> str:
    return model.model_dump_json()


class PostgresIncentiveStore(IncentiveStore):
    """IncentiveStore backed by PostgreSQL through an asyncpg pool"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # ---------- Staff & categories ----------

    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        row = await self.db.fetchrow(queries.SELECT_STAFF, staff_id)
        return _load(Staff, row["data"]) if row else None

    async def list_active_staff_by_category(self, category_id: str) -> List[Staff]:
        rows = await self.db.fetch(queries.SELECT_ACTIVE_STAFF_BY_CATEGORY, category_id)
        return [_load(Staff, row["data"]) for row in rows]

    async def get_staff_category(self, category_id: str) -> Optional[StaffCategory]:
        row = await self.db.fetchrow(queries.SELECT_STAFF_CATEGORY, category_id)
        return _load(StaffCategory, row["data"]) if row else None

    # ---------- Policies & targets ----------

    async def get_incentive_policy(self, policy_id: str) -> Optional[IncentivePolicy]:
        row = await self.db.fetchrow(queries.SELECT_INCENTIVE_POLICY, policy_id)
        return _load(IncentivePolicy, row["data"]) if row else None

    async def get_monthly_target(self, month: int, year: int, category_id: str) -> Optional[MonthlyTarget]:
        row = await self.db.fetchrow(queries.SELECT_MONTHLY_TARGET, month, year, category_id)
        return _load(MonthlyTarget, row["data"]) if row else None

    async def upsert_monthly_target(self, target: MonthlyTarget) -> MonthlyTarget:
        target = target.model_copy()
        target.id = target.id or uuid.uuid4().hex
        row = await self.db.fetchrow(
            queries.UPSERT_MONTHLY_TARGET,
            target.id, target.month, target.year, target.category, _dump(target),
        )
        return _load(MonthlyTarget, row["data"])

    # ---------- Services ----------

    async def get_service_type(self, service_type_id: str) -> Optional[ServiceType]:
        row = await self.db.fetchrow(queries.SELECT_SERVICE_TYPE, service_type_id)
        return _load(ServiceType, row["data"]) if row else None

    async def get_service_order(self, order_id: str) -> Optional[ServiceOrder]:
        row = await self.db.fetchrow(queries.SELECT_SERVICE_ORDER, order_id)
        return _load(ServiceOrder, row["data"]) if row else None

    async def update_service_order(self, order_id: str, mutator: OrderMutator) -> Tuple[ServiceOrder, Any]:
        async with self.db.transaction_connection() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(queries.SELECT_SERVICE_ORDER_FOR_UPDATE, order_id)
                if row is None:
                    raise NotFoundError("Service order", order_id)

                order = _load(ServiceOrder, row["data"])
                result = mutator(order)
                order.refresh_totals()
                await connection.execute(queries.UPSERT_SERVICE_ORDER, order.id, _dump(order))
                return order, result

    async def find_completed_service_orders(self, technician_id: Optional[str], start: datetime,
                                            end: datetime) -> List[ServiceOrder]:
        rows = await self.db.fetch(
            queries.SELECT_COMPLETED_SERVICE_ORDERS, technician_id, start, end
        )
        return [_load(ServiceOrder, row["data"]) for row in rows]

    async def apply_credit_assignment(self, order_id: str, item_id: str,
                                      planner: CreditPlanner) -> Optional[CreditAssignment]:
        async with self.db.transaction_connection() as connection:
            async with connection.transaction():
                # Row lock serializes concurrent completions of the same order
                row = await connection.fetchrow(queries.SELECT_SERVICE_ORDER_FOR_UPDATE, order_id)
                if row is None:
                    raise NotFoundError("Service order", order_id)

                order = _load(ServiceOrder, row["data"])
                item = order.get_item(item_id)
                if item is None:
                    raise NotFoundError("Service item", item_id)

                assignment = planner(item)
                if assignment is None or not assignment.applied:
                    return None

                apply_credit_assignment(item, assignment)
                await connection.execute(queries.UPSERT_SERVICE_ORDER, order.id, _dump(order))

                # Staff rows are locked in id order so concurrent completions cannot deadlock
                for tech_id, points in sorted(assignment.credited.items()):
                    staff_row = await connection.fetchrow(queries.SELECT_STAFF_FOR_UPDATE, tech_id)
                    if staff_row is None:
                        logger.warning(f"Technician {tech_id} not found; item {item_id} credited without ledger update")
                        continue
                    staff = _load(Staff, staff_row["data"])
                    staff.add_service_credits(assignment.service_type, points)
                    await connection.execute(queries.UPDATE_STAFF, tech_id, _dump(staff))

                return assignment

    # ---------- Salary records ----------

    async def get_salary_record(self, staff_id: str, month: int, year: int) -> Optional[MonthlySalaryRecord]:
        row = await self.db.fetchrow(queries.SELECT_SALARY_RECORD, staff_id, month, year)
        return _load_salary_record(row)

    async def insert_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        record = record.model_copy()
        record.id = record.id or uuid.uuid4().hex
        try:
            row = await self.db.fetchrow(
                queries.INSERT_SALARY_RECORD,
                record.id, record.staff, record.month, record.year, _dump(record),
            )
        except asyncpg.UniqueViolationError as e:
            raise PersistenceConflict(f"Salary record already exists for {record.key}") from e
        return _load_salary_record(row)

    async def update_salary_record(self, record: MonthlySalaryRecord) -> MonthlySalaryRecord:
        row = await self.db.fetchrow(
            queries.UPDATE_SALARY_RECORD,
            record.staff, record.month, record.year, _dump(record),
        )
        if row is None:
            raise NotFoundError("Monthly salary record", record.key)
        return _load_salary_record(row)

    async def health_check(self) -> bool:
        return await self.db.health_check()


# Global database manager instance
database_manager = DatabaseManager()
