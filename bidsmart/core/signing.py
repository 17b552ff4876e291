"""HMAC-SHA256 signatures shared with the extraction service."""

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional


def canonical_message(correlation_id: str, timestamp: str) -> str:
    """Build the string both sides sign: ``"{correlation_id}:{timestamp}"``."""
    return f"{correlation_id}:{timestamp}"


def sign(correlation_id: str, timestamp: str, secret: str) -> str:
    """Return the base64-encoded HMAC-SHA256 of the canonical message."""
    digest = hmac.new(
        secret.encode("utf-8"),
        canonical_message(correlation_id, timestamp).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(correlation_id: str, timestamp: str, signature: str, secret: str) -> bool:
    """Compare a supplied signature against the expected one in constant time."""
    expected = sign(correlation_id, timestamp, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Returns:
        Aware datetime, or None if the value is not ISO-8601
    """
    try:
        # fromisoformat before 3.11 rejects the Z suffix
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_fresh(
    timestamp: str,
    max_age_seconds: int,
    clock_skew_seconds: int = 0,
    now: Optional[datetime] = None,
) -> bool:
    """Check that a timestamp lies inside the accepted window.

    Args:
        timestamp: ISO-8601 timestamp carried by the callback
        max_age_seconds: Oldest accepted age
        clock_skew_seconds: How far in the future a timestamp may be
        now: Reference time, defaults to the current UTC time

    Returns:
        True when ``now - timestamp`` is within the window
    """
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return False
    now = now or datetime.now(timezone.utc)
    age = now - parsed
    return -timedelta(seconds=clock_skew_seconds) <= age <= timedelta(seconds=max_age_seconds)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp in the format used on the wire."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
