"""Conversation data models."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Turn roles
USER = "user"
ASSISTANT = "assistant"

# Store senders and gateway wire roles for each turn role
SENDER_BY_ROLE = {USER: "user", ASSISTANT: "ai"}
ROLE_BY_SENDER = {sender: role for role, sender in SENDER_BY_ROLE.items()}
WIRE_ROLE_BY_ROLE = {USER: "user", ASSISTANT: "model"}


@dataclass(frozen=True)
class Turn:
    """Represents a single authored message in a conversation."""
    role: str
    text: str
    turn_id: Optional[str] = None  # assigned by the store; None for local-only turns
    timestamp: Optional[datetime] = None

    @property
    def sender(self) -> str:
        return SENDER_BY_ROLE[self.role]

    @property
    def wire_role(self) -> str:
        return WIRE_ROLE_BY_ROLE[self.role]


@dataclass(frozen=True)
class SessionIdentity:
    """Opaque per-session user handle from the identity provider."""
    user_id: str
    anonymous: bool = False
