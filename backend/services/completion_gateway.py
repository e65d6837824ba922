"""
Completion gateway for the Sales Call Simulator.

Stateless translation of one chat request into one upstream model call. The
last entry of the supplied history is the current prompt and everything before
it is context; callers must honor that split.
"""
import logging
from typing import Optional

from config import GROQ_API_KEY, CHAT_MODEL
from models.api import ChatRequest
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)


class GatewayConfigurationError(Exception):
    """Raised when the upstream credential is missing from the deployment."""


class CompletionGateway:
    """Forwards a chat history to the hosted model and returns its reply text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = CHAT_MODEL,
        llm_client: Optional[LLMClient] = None
    ):
        """
        Args:
            api_key: Upstream credential (defaults to GROQ_API_KEY)
            model: Upstream model name
            llm_client: Pre-built client; created lazily from api_key otherwise
        """
        self.api_key = api_key if api_key is not None else GROQ_API_KEY
        self.model = model
        self._llm_client = llm_client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = LLMClient(api_key=self.api_key)
        return self._llm_client

    def generate(self, request: ChatRequest) -> str:
        """
        Generate the reply for the last entry of the request's history.

        Raises:
            GatewayConfigurationError: No upstream credential is configured
            LLMClientError: The upstream call failed
        """
        if not self.is_configured:
            logger.error("GROQ_API_KEY environment variable is not set.")
            raise GatewayConfigurationError("Server configuration error: API key missing.")

        *context, current = request.chatHistory
        history = [(entry.role, entry.text) for entry in context]
        generation = request.generation

        logger.info(
            f"Forwarding chat: model={self.model}, context_turns={len(history)}, "
            f"prompt_chars={len(current.text)}, temperature={generation.temperature}, "
            f"max_output_tokens={generation.maxOutputTokens}"
        )

        response = self._client().generate_chat(
            history=history,
            prompt=current.text,
            model=self.model,
            temperature=generation.temperature,
            max_tokens=generation.maxOutputTokens
        )
        return response.text
