from __future__ import annotations

KV_TABLE_NAME = "kv"
DECISIONS_TABLE_NAME = "decisions"

KV_DDL = f"""
CREATE TABLE IF NOT EXISTS {KV_TABLE_NAME} (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    expires_at_ms BIGINT
);
"""

DECISIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS {DECISIONS_TABLE_NAME} (
    decision_seq BIGINT NOT NULL,

    evaluated_at_ms BIGINT NOT NULL,
    total_duration_ms DOUBLE NOT NULL,
    experiences_evaluated INTEGER NOT NULL,

    shown BOOLEAN NOT NULL,
    experience_id TEXT,

    url TEXT,
    reasons_json TEXT NOT NULL,
    trace_json TEXT NOT NULL,
    context_json TEXT NOT NULL
);
"""

DECISIONS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_decisions_experience_id ON {DECISIONS_TABLE_NAME}(experience_id);",
    f"CREATE INDEX IF NOT EXISTS idx_decisions_evaluated_at ON {DECISIONS_TABLE_NAME}(evaluated_at_ms);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call on every open.
    """
    conn.execute(KV_DDL)
    conn.execute(DECISIONS_DDL)
    for ddl in DECISIONS_INDEXES:
        conn.execute(ddl)
