"""SQL table definitions."""

SCHEMA_VERSION = 1

TABLES = [
    # ── Devices ─────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS devices (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id     TEXT NOT NULL UNIQUE,
        name            TEXT NOT NULL,
        device_type     TEXT,
        room            TEXT,
        is_active       INTEGER NOT NULL DEFAULT 1,
        created_at      TEXT NOT NULL
    )
    """,

    # ── Rules ───────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS rules (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id               INTEGER NOT NULL,
        name                    TEXT NOT NULL,
        max_hours               INTEGER NOT NULL CHECK (max_hours BETWEEN 1 AND 24),
        min_continuous_hours    INTEGER NOT NULL DEFAULT 1 CHECK (min_continuous_hours >= 1),
        time_window_start       INTEGER CHECK (time_window_start BETWEEN 0 AND 23),
        time_window_end         INTEGER CHECK (time_window_end BETWEEN 0 AND 23),
        days_of_week            INTEGER NOT NULL DEFAULT 127 CHECK (days_of_week BETWEEN 0 AND 127),
        is_enabled              INTEGER NOT NULL DEFAULT 1,
        created_at              TEXT NOT NULL,
        updated_at              TEXT NOT NULL,
        deleted_at              TEXT,
        FOREIGN KEY (device_id) REFERENCES devices(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rules_device ON rules(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_rules_enabled ON rules(is_enabled, deleted_at)",

    # ── Scheduled Actions ───────────────────────────────────
    # ends_at is the exclusive local end instant; for start_hour 23 it is
    # 00:00 of the following day.
    """
    CREATE TABLE IF NOT EXISTS scheduled_actions (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        rule_id         INTEGER NOT NULL,
        scheduled_date  TEXT NOT NULL,
        start_hour      INTEGER NOT NULL CHECK (start_hour BETWEEN 0 AND 23),
        end_hour        INTEGER NOT NULL CHECK (end_hour BETWEEN 0 AND 23),
        starts_at       TEXT NOT NULL,
        ends_at         TEXT NOT NULL,
        price_per_kwh   REAL,
        status          TEXT NOT NULL DEFAULT 'pending',
        executed_at     TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL,
        UNIQUE (rule_id, scheduled_date, start_hour),
        FOREIGN KEY (rule_id) REFERENCES rules(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_actions_date ON scheduled_actions(scheduled_date)",
    "CREATE INDEX IF NOT EXISTS idx_actions_status ON scheduled_actions(status)",
    "CREATE INDEX IF NOT EXISTS idx_actions_rule_date ON scheduled_actions(rule_id, scheduled_date)",

    # ── Schema version tracking ─────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,
]
