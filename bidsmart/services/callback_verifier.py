"""Authenticates inbound extraction callbacks before anything else runs."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from bidsmart.core.config import settings
from bidsmart.core.exceptions import (
    CallbackAuthenticationError,
    CallbackValidationError,
    ConfigurationError,
)
from bidsmart.core.signing import is_fresh, verify_signature
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

REQUIRED_FIELDS = ("request_id", "signature", "timestamp")


@dataclass(frozen=True)
class VerifiedCallback:
    request_id: str
    timestamp: str
    body: dict


class CallbackVerifier:
    """Checks required fields, the HMAC signature and timestamp freshness.

    Bad signatures and stale timestamps raise the same error with the same
    message, and are logged without the reason.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        max_age_seconds: Optional[int] = None,
        clock_skew_seconds: Optional[int] = None,
    ):
        self.secret = secret if secret is not None else settings.callback_secret
        self.max_age_seconds = (
            max_age_seconds if max_age_seconds is not None
            else settings.extraction.callback_max_age_seconds
        )
        self.clock_skew_seconds = (
            clock_skew_seconds if clock_skew_seconds is not None
            else settings.extraction.callback_clock_skew_seconds
        )

    @staticmethod
    def check_required_fields(body: Any) -> None:
        """Reject bodies without the correlation id, signature, timestamp or a result.

        A failed envelope may carry a top-level ``error`` instead of results.

        Raises:
            CallbackValidationError: If anything required is missing
        """
        if not isinstance(body, dict):
            raise CallbackValidationError("Callback body must be a JSON object")

        missing = [name for name in REQUIRED_FIELDS if not isinstance(body.get(name), str) or not body.get(name)]
        if missing:
            raise CallbackValidationError(f"Missing required fields: {', '.join(missing)}")

        has_result = bool(body.get("results")) or isinstance(body.get("result"), dict)
        has_batch_error = body.get("status") == "failed" and isinstance(body.get("error"), dict)
        if not (has_result or has_batch_error):
            raise CallbackValidationError("Missing required fields: result or results")

    def verify(self, body: Any, now: Optional[datetime] = None) -> VerifiedCallback:
        """Authenticate a raw callback body.

        Args:
            body: Decoded JSON body
            now: Reference time for the freshness check

        Returns:
            The verified correlation id, timestamp and body

        Raises:
            CallbackValidationError: Required fields missing
            CallbackAuthenticationError: Signature mismatch or stale timestamp
            ConfigurationError: No shared secret configured
        """
        self.check_required_fields(body)

        if not self.secret:
            LOGGER.error("Callback secret is not configured")
            raise ConfigurationError("Callback secret is not configured")

        request_id = body["request_id"]
        timestamp = body["timestamp"]

        authentic = verify_signature(request_id, timestamp, body["signature"], self.secret)
        fresh = authentic and is_fresh(timestamp, self.max_age_seconds, self.clock_skew_seconds, now)
        if not fresh:
            LOGGER.warning("Rejected unauthenticated callback")
            raise CallbackAuthenticationError()

        return VerifiedCallback(request_id=request_id, timestamp=timestamp, body=body)
