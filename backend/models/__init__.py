"""Data models for the Sales Call Simulator."""
from .conversation import Turn, SessionIdentity, USER, ASSISTANT
from .api import ChatRequest, ChatResponse, ChatEntry, Part, GenerationConfig, ErrorResponse

__all__ = [
    "Turn",
    "SessionIdentity",
    "USER",
    "ASSISTANT",
    "ChatRequest",
    "ChatResponse",
    "ChatEntry",
    "Part",
    "GenerationConfig",
    "ErrorResponse",
]
