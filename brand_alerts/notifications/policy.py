"""Stateless preference policy checks.

Each check returns the failure message that ends up in the delivery row,
or None when the notification may proceed. The router applies them in
order: channel switch, quiet hours, frequency cap.
"""

from datetime import time

from brand_alerts.notifications.schemas import NotificationPreference

QUIET_HOURS_MESSAGE = "Notification blocked due to quiet hours"
FREQUENCY_LIMIT_MESSAGE = "Notification frequency limit exceeded"


def disabled_message(channel: str) -> str:
    return f"Notifications disabled for channel: {channel}"


def in_quiet_hours(now: time, start: time | None, end: time | None) -> bool:
    """Whether ``now`` falls in the half-open window ``[start, end)``.

    A window whose start is later than its end wraps past midnight
    (22:00-07:00 covers 23:30 and 06:59 but not 07:00). Equal bounds
    describe an empty window.
    """
    if start is None or end is None or start == end:
        return False
    if start < end:
        return start <= now < end
    return now >= start or now < end


def check_channel(preference: NotificationPreference, channel: str) -> str | None:
    if not preference.is_channel_enabled(channel):
        return disabled_message(channel)
    return None


def check_quiet_hours(preference: NotificationPreference, now: time) -> str | None:
    # Applies to every severity; critical alerts are not exempt.
    if in_quiet_hours(now, preference.quiet_hours_start, preference.quiet_hours_end):
        return QUIET_HOURS_MESSAGE
    return None


def check_frequency(preference: NotificationPreference, recent_count: int) -> str | None:
    """A limit of 0 disables the cap."""
    limit = preference.frequency_limit
    if limit > 0 and recent_count >= limit:
        return FREQUENCY_LIMIT_MESSAGE
    return None
