"""
Schema bootstrap for the alerting tables.

Idempotent ``CREATE ... IF NOT EXISTS`` statements for development and
tests. ``users`` and ``brands`` belong to other services; minimal versions
are created here only so foreign keys resolve on a fresh database.
"""

import logging

from brand_alerts.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    role TEXT NOT NULL DEFAULT 'analyst',
    phone TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS brands (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS alert_thresholds (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL REFERENCES brands(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    metric_type TEXT NOT NULL,
    threshold_value DOUBLE PRECISION NOT NULL,
    comparison_operator TEXT NOT NULL
        CHECK (comparison_operator IN ('>', '<', '>=', '<=', '=')),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    notification_channels TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_alert_thresholds_brand_active
    ON alert_thresholds(brand_id) WHERE is_active;

CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL REFERENCES brands(id) ON DELETE CASCADE,
    alert_threshold_id TEXT REFERENCES alert_thresholds(id) ON DELETE SET NULL,
    severity TEXT NOT NULL
        CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    metric_type TEXT NOT NULL,
    current_value DOUBLE PRECISION,
    threshold_value DOUBLE PRECISION,
    is_acknowledged BOOLEAN NOT NULL DEFAULT FALSE,
    acknowledged_by TEXT REFERENCES users(id) ON DELETE SET NULL,
    acknowledged_at TIMESTAMPTZ,
    resolved_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_alerts_brand_created
    ON alerts(brand_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alerts_similarity
    ON alerts(brand_id, metric_type, created_at) WHERE resolved_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_alerts_resolved_at
    ON alerts(resolved_at) WHERE resolved_at IS NOT NULL;

CREATE TABLE IF NOT EXISTS notification_preferences (
    user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    email_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    sms_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    webhook_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    in_app_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    quiet_hours_start TIME,
    quiet_hours_end TIME,
    frequency_limit INTEGER NOT NULL DEFAULT 10 CHECK (frequency_limit >= 0),
    email_address TEXT,
    phone_number TEXT,
    webhook_url TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS notification_deliveries (
    id TEXT PRIMARY KEY,
    alert_id TEXT NOT NULL REFERENCES alerts(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    channel TEXT NOT NULL,
    status TEXT NOT NULL
        CHECK (status IN ('sent', 'delivered', 'failed', 'bounced')),
    recipient TEXT NOT NULL,
    subject TEXT,
    content TEXT NOT NULL,
    error_message TEXT,
    payload JSONB,
    sent_at TIMESTAMPTZ,
    delivered_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_notification_deliveries_user_created
    ON notification_deliveries(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notification_deliveries_alert_id
    ON notification_deliveries(alert_id);

CREATE TABLE IF NOT EXISTS in_app_notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    alert_id TEXT REFERENCES alerts(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    severity TEXT NOT NULL
        CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    is_read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_in_app_notifications_user_unread
    ON in_app_notifications(user_id, created_at DESC) WHERE NOT is_read;
"""


async def create_tables(database: Database) -> None:
    """Create all alerting tables and indexes if they don't exist."""
    await database.execute(SCHEMA_SQL)
    logger.info("Alerting schema ensured")
