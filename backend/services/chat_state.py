"""
Chat state machine for the Sales Call Simulator.

The whole client-side chat state is one immutable ChatState value. Every change
is an event applied by ``reduce``, a pure function, so the orchestrator's
behavior can be checked one transition at a time.

Phases per submission:
    AWAITING_IDENTITY -> IDLE -> COMPOSING -> AWAITING_COMPLETION -> IDLE
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from models.conversation import Turn, SessionIdentity, USER

AWAITING_IDENTITY = "awaiting_identity"
IDLE = "idle"
COMPOSING = "composing"
AWAITING_COMPLETION = "awaiting_completion"


@dataclass(frozen=True)
class ChatState:
    """
    Attributes:
        phase: Current phase of the turn-taking loop
        turns: Rendered turns, oldest first
        pending_input: Text typed but not yet submitted
        identity: Session identity once established
        intro_visible: Whether the introductory prompt is showing
    """
    phase: str
    turns: Tuple[Turn, ...] = ()
    pending_input: str = ""
    identity: Optional[SessionIdentity] = None
    intro_visible: bool = True

    @property
    def is_loading(self) -> bool:
        return self.phase in (COMPOSING, AWAITING_COMPLETION)


# Events

@dataclass(frozen=True)
class IdentityEstablished:
    identity: SessionIdentity


@dataclass(frozen=True)
class SnapshotReceived:
    """Full ordered turn list pushed by the store."""
    turns: Tuple[Turn, ...]


@dataclass(frozen=True)
class InputChanged:
    text: str


@dataclass(frozen=True)
class TurnSubmitted:
    turn: Turn


@dataclass(frozen=True)
class CompletionRequested:
    pass


@dataclass(frozen=True)
class LocalTurnAdded:
    turn: Turn


@dataclass(frozen=True)
class CompletionFinished:
    pass


@dataclass(frozen=True)
class ViewReset:
    pass


@dataclass(frozen=True)
class ConversationStarted:
    """Intro dismissed; ``greeting`` replaces the local list when given."""
    greeting: Optional[Turn] = None


def initial_state(requires_identity: bool) -> ChatState:
    return ChatState(phase=AWAITING_IDENTITY if requires_identity else IDLE)


def can_submit(state: ChatState, text: str) -> bool:
    """Whether a submission of ``text`` would be accepted in ``state``."""
    return state.phase == IDLE and bool(text and text.strip())


def reduce(state: ChatState, event) -> ChatState:
    """Return the state that results from applying ``event`` to ``state``."""
    if isinstance(event, IdentityEstablished):
        phase = IDLE if state.phase == AWAITING_IDENTITY else state.phase
        return replace(state, identity=event.identity, phase=phase)

    if isinstance(event, SnapshotReceived):
        # The store's ordering always wins; optimistic turns are dropped
        return replace(state, turns=tuple(event.turns))

    if isinstance(event, InputChanged):
        return replace(state, pending_input=event.text)

    if isinstance(event, TurnSubmitted):
        if state.phase != IDLE or event.turn.role != USER:
            raise ValueError(f"Cannot submit a turn in phase {state.phase}")
        return replace(
            state,
            phase=COMPOSING,
            turns=state.turns + (event.turn,),
            pending_input=""
        )

    if isinstance(event, CompletionRequested):
        if state.phase != COMPOSING:
            raise ValueError(f"Cannot request a completion in phase {state.phase}")
        return replace(state, phase=AWAITING_COMPLETION)

    if isinstance(event, LocalTurnAdded):
        return replace(state, turns=state.turns + (event.turn,))

    if isinstance(event, CompletionFinished):
        if not state.is_loading:
            return state
        return replace(state, phase=IDLE)

    if isinstance(event, ViewReset):
        return replace(state, turns=(), pending_input="", intro_visible=True)

    if isinstance(event, ConversationStarted):
        turns = (event.greeting,) if event.greeting is not None else state.turns
        return replace(state, intro_visible=False, turns=turns)

    raise TypeError(f"Unknown chat event: {event!r}")
