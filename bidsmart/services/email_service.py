"""Completion email delivery through the Resend HTTP API."""

import html

import httpx

from bidsmart.core.config import settings
from bidsmart.core.exceptions import ConfigurationError, NotificationError
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

COMPLETION_SUBJECT = "Your Heat Pump Bid Analysis is Ready"


class EmailService:
    """Sends transactional email. One call, one attempt, no retries."""

    def __init__(self):
        self.api_key = settings.email.api_key
        self.api_url = settings.email.api_url
        self.from_address = settings.email.from_address
        self.app_url = settings.email.app_url.rstrip("/")

    def build_completion_body(self, project_name: str, project_id: str) -> str:
        link = f"{self.app_url}/projects/{project_id}"
        name = html.escape(project_name)
        return (
            f"<h1>Your bid analysis is ready</h1>"
            f"<p>We finished analyzing the bids for <strong>{name}</strong>. "
            f"Your side-by-side comparison is waiting for you.</p>"
            f'<p><a href="{link}">View your comparison</a></p>'
        )

    async def send_completion_email(self, to_email: str, project_name: str, project_id: str) -> str:
        """Send the analysis-complete email.

        Args:
            to_email: Recipient address
            project_name: Shown in the body
            project_id: Used to build the link back to the app

        Returns:
            Provider message id

        Raises:
            ConfigurationError: If no API key is configured
            NotificationError: If the provider rejects the message or is unreachable
        """
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")

        payload = {
            "from": self.from_address,
            "to": [to_email],
            "subject": COMPLETION_SUBJECT,
            "html": self.build_completion_body(project_name, project_id),
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                    timeout=settings.http_timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Email request failed: {str(e)}", extra={"project_id": project_id})
            raise NotificationError(f"Email request failed: {str(e)}", original_error=e)

        if not 200 <= response.status_code < 300:
            LOGGER.error(
                "Email provider rejected the message",
                extra={"project_id": project_id, "status_code": response.status_code}
            )
            raise NotificationError(f"Email provider returned {response.status_code}")

        message_id = response.json().get("id", "")
        LOGGER.info("Completion email sent", extra={"project_id": project_id, "message_id": message_id})
        return message_id
