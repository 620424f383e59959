# =============================================================================
# core/classifier.py - Sign-in recency classification
# =============================================================================

from datetime import datetime, timedelta, timezone
from typing import Optional

from core.errors import ValidationError

MIN_THRESHOLD_DAYS = 1
MAX_THRESHOLD_DAYS = 90

# Graph reports accounts that never signed in with this placeholder
_NEVER_SIGNED_IN = datetime(1, 1, 1, tzinfo=timezone.utc)


def classify(last_sign_in_at: Optional[datetime], account_enabled: bool,
             threshold_days: int, now: datetime) -> bool:
    """Return True if the account signed in strictly within the last threshold_days"""
    if not account_enabled:
        return False
    if last_sign_in_at is None:
        return False
    return last_sign_in_at > now - timedelta(days=threshold_days)


def clamp_threshold(value) -> int:
    """Clamp a threshold to the supported 1-90 day range"""
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Threshold must be a whole number of days, got {value!r}")

    if days < MIN_THRESHOLD_DAYS:
        return MIN_THRESHOLD_DAYS
    if days > MAX_THRESHOLD_DAYS:
        return MAX_THRESHOLD_DAYS
    return days


def parse_graph_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Graph ISO-8601 timestamp into an aware UTC datetime.

    Args:
        value: Timestamp such as ``2024-05-01T08:15:30Z`` or
            ``2024-05-01T08:15:30.1234567Z``

    Returns:
        The parsed datetime, or None for empty values and the
        never-signed-in placeholder
    """
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 string, got {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    # Graph may send 7 fractional digits; fromisoformat accepts at most 6
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)

    if parsed == _NEVER_SIGNED_IN:
        return None
    return parsed
