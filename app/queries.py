"""
SQL used by the PostgreSQL incentive store.

Entities are stored as JSONB documents next to the columns that carry their
unique keys, so uniqueness is enforced by the database.
"""

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS staff_categories (
    id TEXT PRIMARY KEY,
    data JSONB NOT NULL
);

CREATE TABLE IF NOT EXISTS staff (
    id TEXT PRIMARY KEY,
    primary_category TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_staff_category_status ON staff (primary_category, status);

CREATE TABLE IF NOT EXISTS service_types (
    id TEXT PRIMARY KEY,
    data JSONB NOT NULL
);

CREATE TABLE IF NOT EXISTS incentive_policies (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    data JSONB NOT NULL
);

CREATE TABLE IF NOT EXISTS monthly_targets (
    id TEXT PRIMARY KEY,
    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    year INTEGER NOT NULL,
    category TEXT NOT NULL,
    data JSONB NOT NULL,
    UNIQUE (month, year, category)
);

CREATE TABLE IF NOT EXISTS service_orders (
    id TEXT PRIMARY KEY,
    data JSONB NOT NULL
);

CREATE TABLE IF NOT EXISTS monthly_salary_records (
    id TEXT PRIMARY KEY,
    staff TEXT NOT NULL,
    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    year INTEGER NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (staff, month, year)
);
CREATE INDEX IF NOT EXISTS idx_salary_records_period ON monthly_salary_records (month, year);
"""

SELECT_STAFF = "SELECT data FROM staff WHERE id = $1"

SELECT_STAFF_FOR_UPDATE = "SELECT data FROM staff WHERE id = $1 FOR UPDATE"

SELECT_ACTIVE_STAFF_BY_CATEGORY = """
SELECT data FROM staff
WHERE primary_category = $1 AND status = 'active'
ORDER BY id
"""

UPDATE_STAFF = "UPDATE staff SET data = $2::jsonb WHERE id = $1"

SELECT_STAFF_CATEGORY = "SELECT data FROM staff_categories WHERE id = $1"

SELECT_INCENTIVE_POLICY = "SELECT data FROM incentive_policies WHERE id = $1"

SELECT_MONTHLY_TARGET = """
SELECT data FROM monthly_targets
WHERE month = $1 AND year = $2 AND category = $3
"""

UPSERT_MONTHLY_TARGET = """
INSERT INTO monthly_targets (id, month, year, category, data)
VALUES ($1, $2, $3, $4, $5::jsonb)
ON CONFLICT (month, year, category) DO UPDATE
SET data = jsonb_set(
        jsonb_set(EXCLUDED.data, '{id}', to_jsonb(monthly_targets.id)),
        '{created_by}', COALESCE(monthly_targets.data->'created_by', 'null'::jsonb)
    )
RETURNING data
"""

SELECT_SERVICE_TYPE = "SELECT data FROM service_types WHERE id = $1"

SELECT_SERVICE_ORDER = "SELECT data FROM service_orders WHERE id = $1"

SELECT_SERVICE_ORDER_FOR_UPDATE = "SELECT data FROM service_orders WHERE id = $1 FOR UPDATE"

UPSERT_SERVICE_ORDER = """
INSERT INTO service_orders (id, data)
VALUES ($1, $2::jsonb)
ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data
"""

SELECT_COMPLETED_SERVICE_ORDERS = """
SELECT data FROM service_orders
WHERE EXISTS (
    SELECT 1
    FROM jsonb_array_elements(data->'service_items') AS item
    WHERE ($1::text IS NULL OR item->'technicians' ? $1)
      AND item->>'status' = 'completed'
      AND (item->>'completion_time')::timestamptz BETWEEN $2 AND $3
)
ORDER BY id
"""

SELECT_SALARY_RECORD = """
SELECT data, id, created_at, updated_at FROM monthly_salary_records
WHERE staff = $1 AND month = $2 AND year = $3
"""

INSERT_SALARY_RECORD = """
INSERT INTO monthly_salary_records (id, staff, month, year, data)
VALUES ($1, $2, $3, $4, $5::jsonb)
RETURNING data, id, created_at, updated_at
"""

UPDATE_SALARY_RECORD = """
UPDATE monthly_salary_records
SET data = $4::jsonb, updated_at = now()
WHERE staff = $1 AND month = $2 AND year = $3
RETURNING data, id, created_at, updated_at
"""
