"""HTTP client for the external AI extraction service."""

from typing import Any, Dict, Optional

import httpx

from bidsmart.core.config import settings
from bidsmart.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionClient:
    """Starts workflow runs on the extraction service.

    The service is a black box: it receives signed document URLs and posts
    its results back to our callback endpoint later.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        workflow_id: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.extraction.api_endpoint
        self.api_key = api_key if api_key is not None else settings.extraction.api_key
        self.workflow_id = workflow_id if workflow_id is not None else settings.extraction.workflow_id
        self.timeout = timeout or settings.http_timeout

    async def start_run(self, inputs: Dict[str, Any]) -> Optional[str]:
        """Submit one workflow run.

        Args:
            inputs: Mapping of workflow field id to value

        Returns:
            The run id reported by the service, if any

        Raises:
            ConfigurationError: If the endpoint or API key is missing
            APITimeoutError: If the service does not answer in time
            APIClientError: On transport errors or a non-2xx answer
        """
        if not self.endpoint or not self.api_key:
            raise ConfigurationError("Extraction service endpoint or API key is not configured")

        params = {"workflow_id": self.workflow_id} if self.workflow_id else None

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.endpoint,
                    params=params,
                    headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                    json={"data": inputs},
                    timeout=self.timeout,
                )
        except httpx.TimeoutException as e:
            LOGGER.error("Extraction service timed out", extra={"endpoint": self.endpoint})
            raise APITimeoutError("Extraction service timed out", original_error=e)
        except httpx.HTTPError as e:
            LOGGER.error(f"Extraction service request failed: {str(e)}", exc_info=True)
            raise APIClientError(f"Extraction service request failed: {str(e)}", original_error=e)

        if not 200 <= response.status_code < 300:
            LOGGER.error(
                "Extraction service rejected the run",
                extra={"status_code": response.status_code, "body": response.text[:500]}
            )
            raise APIClientError(f"Extraction service returned {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            return None

        if not isinstance(body, dict):
            return None
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        return data.get("workflowRunId") or data.get("workflow_run_id")
