"""Services for the Sales Call Simulator."""
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .completion_gateway import CompletionGateway, GatewayConfigurationError
from .gateway_client import GatewayClient, GatewayError
from .conversation_store import ConversationStore, ConversationStoreError, StoreRefreshError
from .chat_state import ChatState
from .chat_orchestrator import ChatOrchestrator

__all__ = ['LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError', 'CompletionGateway', 'GatewayConfigurationError', 'GatewayClient', 'GatewayError', 'ConversationStore', 'ConversationStoreError', 'StoreRefreshError', 'ChatState', 'ChatOrchestrator']
