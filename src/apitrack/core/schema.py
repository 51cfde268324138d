"""
Database schema for apitrack.

Table names and DDL live here as Python constants so the CLI, the worker and
the test fixtures create exactly the same tables.

Tags:
    schema, ddl, sqlite, persistence
"""

# =============================================================================
# TABLE NAMES
# =============================================================================

TABLES = {
    "schedules": "schedules",
    "collections": "collections",
    "tests": "tests",
    "runs": "runs",
    "results": "results",
}


# =============================================================================
# DDL STATEMENTS
# =============================================================================

DDL = {
    # =========================================================================
    # COLLECTIONS / TESTS
    #
    # Tests keep an explicit position so display order survives edits.
    # =========================================================================
    "collections": """
        CREATE TABLE IF NOT EXISTS collections (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            owner_id TEXT NOT NULL,
            description TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (owner_id, name)
        )
    """,
    "tests": """
        CREATE TABLE IF NOT EXISTS tests (
            id TEXT PRIMARY KEY,
            collection_id TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            method TEXT NOT NULL,
            url TEXT NOT NULL,
            headers TEXT,                   -- JSON object
            body TEXT,
            expected_status INTEGER,
            position INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (collection_id, name)
        )
    """,
    "tests_idx_collection": """
        CREATE INDEX IF NOT EXISTS idx_tests_collection
        ON tests(collection_id, position)
    """,
    # =========================================================================
    # SCHEDULES
    #
    # Recurrence is stored flat; only the columns for `kind` are non-null.
    # `version` increments on every edit so a worker can detect changes made
    # by another process.
    # =========================================================================
    "schedules": """
        CREATE TABLE IF NOT EXISTS schedules (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            owner_id TEXT NOT NULL,
            collection_id TEXT NOT NULL,
            kind TEXT NOT NULL,             -- minute, hour, day, week
            minute_interval INTEGER,
            hour_interval INTEGER,
            time_of_day TEXT,               -- HH:MM
            weekday TEXT,                   -- monday..sunday, weekday, everyday
            active INTEGER NOT NULL DEFAULT 1,
            last_run TEXT,                  -- last completed scheduled run
            last_attempt TEXT,              -- last dispatch, any outcome
            notify_enabled INTEGER NOT NULL DEFAULT 0,
            notify_recipient TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            UNIQUE (owner_id, name)
        )
    """,
    "schedules_idx_active": """
        CREATE INDEX IF NOT EXISTS idx_schedules_active
        ON schedules(active)
    """,
    # =========================================================================
    # RUNS / RESULTS
    #
    # A run is inserted as 'running' with zero counts and flipped to
    # 'completed' by a single UPDATE carrying the aggregate counts.
    # =========================================================================
    "runs": """
        CREATE TABLE IF NOT EXISTS runs (
            id TEXT PRIMARY KEY,
            collection_id TEXT NOT NULL,
            owner_id TEXT NOT NULL,
            schedule_id TEXT,
            status TEXT NOT NULL,           -- running, completed, failed
            started_at TEXT NOT NULL,
            completed_at TEXT,
            total_tests INTEGER NOT NULL DEFAULT 0,
            success_count INTEGER NOT NULL DEFAULT 0,
            failure_count INTEGER NOT NULL DEFAULT 0,
            total_duration_ms REAL NOT NULL DEFAULT 0
        )
    """,
    "runs_idx_collection": """
        CREATE INDEX IF NOT EXISTS idx_runs_collection
        ON runs(collection_id, started_at)
    """,
    "runs_idx_status": """
        CREATE INDEX IF NOT EXISTS idx_runs_status
        ON runs(status, started_at)
    """,
    "results": """
        CREATE TABLE IF NOT EXISTS results (
            id TEXT PRIMARY KEY,
            run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
            test_id TEXT NOT NULL,
            test_name TEXT NOT NULL,
            status_code INTEGER NOT NULL,   -- 0 = request never completed
            duration_ms REAL NOT NULL,
            error TEXT,
            response_body TEXT,
            success INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )
    """,
    "results_idx_run": """
        CREATE INDEX IF NOT EXISTS idx_results_run
        ON results(run_id)
    """,
}


def create_tables(conn) -> None:
    """
    Create all apitrack tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in DDL.items():
        conn.execute(ddl)
    conn.commit()
