"""API request and response models for the completion gateway."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from config import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_TEMPERATURE


class Part(BaseModel):
    """A text fragment of a chat entry."""
    text: str


class ChatEntry(BaseModel):
    """One role-tagged entry of the outbound chat history."""
    role: Literal["user", "model"]
    parts: List[Part] = Field(..., min_length=1)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


class GenerationConfig(BaseModel):
    """Sampling parameters forwarded to the model."""
    temperature: float = Field(DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    maxOutputTokens: int = Field(DEFAULT_MAX_OUTPUT_TOKENS, gt=0)


class ChatRequest(BaseModel):
    """Request body of the chat route.

    The last entry of ``chatHistory`` is the current prompt; everything
    before it is context.
    """
    chatHistory: List[ChatEntry]
    generationConfig: Optional[GenerationConfig] = None

    @field_validator("chatHistory")
    @classmethod
    def history_not_empty(cls, value: List[ChatEntry]) -> List[ChatEntry]:
        if not value:
            raise ValueError("chatHistory must contain at least one entry")
        return value

    @property
    def generation(self) -> GenerationConfig:
        return self.generationConfig or GenerationConfig()


class ChatResponse(BaseModel):
    """Successful chat route response."""
    aiResponseText: str


class ErrorResponse(BaseModel):
    """Structured error body returned by the gateway."""
    error: str
    details: Optional[str] = None
