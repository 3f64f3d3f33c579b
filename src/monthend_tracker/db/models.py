"""SQL table definitions for devices, usage records and the active set."""

SCHEMA_VERSION = 1

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,

    # ── Devices ─────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS device (
        id          TEXT PRIMARY KEY,
        alias       TEXT NOT NULL,
        ip_address  TEXT NOT NULL,
        created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
    )
    """,

    # ── Usage records ───────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS usage (
        id                          TEXT PRIMARY KEY,
        device_id                   TEXT NOT NULL REFERENCES device(id),
        consumption                 REAL NOT NULL DEFAULT 0,
        is_tracking_previous_month  INTEGER NOT NULL DEFAULT 0,
        previous_month_accumulated  REAL,
        updated_at                  TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_usage_device ON usage(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_usage_tracking ON usage(is_tracking_previous_month)",

    # ── Active devices ──────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS active_device (
        device_id       TEXT PRIMARY KEY REFERENCES device(id),
        usage_record_id TEXT NOT NULL REFERENCES usage(id),
        activated_at    TEXT NOT NULL
    )
    """,
]
