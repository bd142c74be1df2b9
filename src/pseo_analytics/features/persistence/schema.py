from __future__ import annotations

EVENTS_TABLE_NAME = "events"

EVENTS_COLUMNS: tuple[str, ...] = (
    "run_id",
    "event_id",
    "ts_utc",
    "sim_time_s",
    "visitor_id",
    "session_id",
    "channel",
    "event_type",
    "page_path",
    "industry_slug",
    "stage_slug",
    "page_type",
    "variant",
    "category",
    "value_num",
    "payload_json",
)

EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {EVENTS_TABLE_NAME} (
    run_id TEXT NOT NULL,
    event_id TEXT NOT NULL,

    ts_utc TIMESTAMP NOT NULL,
    sim_time_s DOUBLE NOT NULL,

    visitor_id TEXT,
    session_id TEXT,

    -- "collector" (beacon/POST) or "tag" (tag manager)
    channel TEXT NOT NULL,
    event_type TEXT NOT NULL,

    page_path TEXT,
    industry_slug TEXT,
    stage_slug TEXT,
    page_type TEXT,
    variant TEXT,
    category TEXT,

    value_num DOUBLE,
    payload_json TEXT
);
"""

# Optional but helpful for query speed
EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_events_run_id ON {EVENTS_TABLE_NAME}(run_id);",
    f"CREATE INDEX IF NOT EXISTS idx_events_event_type ON {EVENTS_TABLE_NAME}(event_type);",
    f"CREATE INDEX IF NOT EXISTS idx_events_variant ON {EVENTS_TABLE_NAME}(variant);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call per run.
    """
    conn.execute(EVENTS_DDL)
    for ddl in EVENTS_INDEXES:
        conn.execute(ddl)
