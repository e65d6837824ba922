"""HTTP client the chat orchestrator uses to reach the completion gateway."""
import logging
from typing import Any, Dict, List, Optional

import requests

from config import GATEWAY_URL, GATEWAY_TIMEOUT

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when a completion could not be obtained from the gateway.

    ``kind`` is one of ``transport`` (network failure), ``status`` (non-success
    HTTP status) or ``malformed`` (success status without reply text).
    """

    TRANSPORT = "transport"
    STATUS = "status"
    MALFORMED = "malformed"

    def __init__(self, kind: str, message: str, status_code: Optional[int] = None):
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class GatewayClient:
    """Posts chat histories to the completion gateway."""

    def __init__(self, url: str = GATEWAY_URL, timeout: Optional[float] = GATEWAY_TIMEOUT):
        """
        Args:
            url: Full URL of the gateway chat route
            timeout: Seconds to wait for the gateway; None leaves it to the transport
        """
        self.url = url
        self.timeout = timeout

    def request_completion(
        self,
        chat_history: List[Dict[str, Any]],
        generation_config: Dict[str, Any]
    ) -> str:
        """
        Request the reply to the last entry of ``chat_history``.

        Args:
            chat_history: Ordered {"role", "parts"} entries, current prompt last
            generation_config: {"temperature", "maxOutputTokens"}

        Returns:
            The generated reply text

        Raises:
            GatewayError: On network failure, error status or malformed payload
        """
        try:
            response = requests.post(
                self.url,
                json={
                    "chatHistory": chat_history,
                    "generationConfig": generation_config,
                },
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error communicating with gateway at {self.url}: {e}")
            raise GatewayError(GatewayError.TRANSPORT, str(e)) from e

        if not response.ok:
            logger.error(
                f"Gateway error (response not OK): {response.status_code} "
                f"{response.reason} {response.text[:500]}"
            )
            raise GatewayError(
                GatewayError.STATUS,
                f"Gateway error: {response.status_code} {response.reason}",
                status_code=response.status_code
            )

        try:
            result = response.json()
        except ValueError as e:
            logger.error(f"Gateway returned a non-JSON body: {response.text[:500]}")
            raise GatewayError(GatewayError.MALFORMED, "Gateway returned a non-JSON body") from e

        ai_response_text = result.get("aiResponseText") if isinstance(result, dict) else None
        if not isinstance(ai_response_text, str) or not ai_response_text:
            logger.error(f"Unexpected response from gateway (missing aiResponseText): {result}")
            raise GatewayError(GatewayError.MALFORMED, "Gateway response is missing aiResponseText")

        return ai_response_text
