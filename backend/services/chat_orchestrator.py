"""
Chat orchestrator for the Sales Call Simulator.

Drives the turn-taking loop: accepts user submissions, builds the outbound
chat history, calls the completion gateway and records the reply. When a
conversation store is supplied every turn is written through it and the
rendered list follows the store's pushes; without one the orchestrator keeps
turns purely local.

All state changes, including store pushes, go through one ordered inbox and
are applied by ``chat_state.reduce``.
"""
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from config import DEFAULT_TEMPERATURE, DEFAULT_MAX_OUTPUT_TOKENS
from models.conversation import Turn, USER, ASSISTANT
from services import chat_state
from services.chat_state import ChatState
from services.conversation_store import ConversationStore, ConversationStoreError
from services.gateway_client import GatewayClient, GatewayError
from services.persona import ROLE_PROMPT, GREETING, NO_RESPONSE_APOLOGY, CONNECTION_APOLOGY

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """Client-side controller for one chat session."""

    def __init__(
        self,
        gateway: Optional[GatewayClient] = None,
        store: Optional[ConversationStore] = None,
        persona_prompt: str = ROLE_PROMPT,
        generation_config: Optional[Dict[str, Any]] = None,
        on_change: Optional[Callable[[ChatState], None]] = None
    ):
        """
        Args:
            gateway: Client for the completion gateway
            store: Conversation store; None keeps the conversation local-only
            persona_prompt: Text sent as the first user entry of every request
            generation_config: {"temperature", "maxOutputTokens"} for every request
            on_change: Called with the new state after every applied event
        """
        self.gateway = gateway or GatewayClient()
        self.store = store
        self.persona_prompt = persona_prompt
        self.generation_config = generation_config or {
            "temperature": DEFAULT_TEMPERATURE,
            "maxOutputTokens": DEFAULT_MAX_OUTPUT_TOKENS,
        }
        self.on_change = on_change

        self._state = chat_state.initial_state(requires_identity=store is not None)
        self._inbox = deque()
        self._draining = False
        self._in_flight = False
        self._closed = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    # State access

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def turns(self) -> List[Turn]:
        return list(self._state.turns)

    @property
    def phase(self) -> str:
        return self._state.phase

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def identity(self):
        return self._state.identity

    # Inbox

    def _post(self, event) -> None:
        """Queue ``event`` and apply queued events in order unless already draining."""
        with self._lock:
            self._inbox.append(event)
            if self._draining:
                return
            self._draining = True

        try:
            while True:
                with self._lock:
                    if not self._inbox:
                        break
                    next_event = self._inbox.popleft()
                    self._state = chat_state.reduce(self._state, next_event)
                    new_state = self._state
                if self.on_change is not None:
                    self.on_change(new_state)
        finally:
            with self._lock:
                self._draining = False

    def _on_snapshot(self, turns: List[Turn]) -> None:
        if self._closed:
            return
        self._post(chat_state.SnapshotReceived(tuple(turns)))

    # Operations

    def connect(self) -> bool:
        """
        Establish identity and subscribe to the store's ordered turn list.

        Returns:
            True when ready to accept submissions. False leaves the
            orchestrator awaiting identity; no retry is attempted.
        """
        if self.store is None:
            return True
        if self._state.identity is not None:
            return True

        identity = self.store.establish_identity()
        if identity is None:
            logger.warning("Identity could not be established; submissions stay disabled")
            return False

        self._post(chat_state.IdentityEstablished(identity))
        self._unsubscribe = self.store.subscribe(self._on_snapshot)
        logger.info(f"Chat session ready for user {identity.user_id}")
        return True

    def update_input(self, text: str) -> None:
        """Record the text currently typed by the user."""
        self._post(chat_state.InputChanged(text))

    def submit_turn(self, text: Optional[str] = None) -> bool:
        """
        Submit a user turn and record the persona's reply.

        Args:
            text: Turn text; defaults to the pending input

        Returns:
            False when the submission was ignored (empty text, a completion
            already in flight, or identity not established), True otherwise
        """
        with self._lock:
            state = self._state
            text = state.pending_input if text is None else text
            if self._in_flight or not chat_state.can_submit(state, text):
                logger.debug(
                    f"Ignoring submission: phase={state.phase}, in_flight={self._in_flight}, "
                    f"empty={not (text and text.strip())}"
                )
                return False
            self._in_flight = True

        try:
            self._refresh()
            prior_turns = self._state.turns
            self._post(chat_state.TurnSubmitted(Turn(role=USER, text=text, timestamp=_now())))
            self._persist(USER, text, local_fallback=False)

            chat_history = self._build_chat_history(prior_turns, text)
            self._post(chat_state.CompletionRequested())
            reply = self._request_reply(chat_history)

            if self._closed:
                logger.info("Discarding reply that arrived after the session was closed")
            else:
                self._persist(ASSISTANT, reply, local_fallback=True)
        finally:
            self._post(chat_state.CompletionFinished())
            with self._lock:
                self._in_flight = False

        return True

    def refresh(self) -> bool:
        """
        Re-read the persisted turns so writes made elsewhere for the same user
        are rendered. Also runs before every submission.

        Returns:
            False when there is no store or the re-read failed
        """
        return self._refresh()

    def reset_view(self) -> None:
        """Clear the rendered turns and show the intro again; persisted history is kept."""
        self._post(chat_state.ViewReset())

    def start_conversation(self) -> bool:
        """
        Dismiss the intro and seed the conversation with the persona's greeting.

        Returns:
            False when a store is configured but identity is not established
        """
        if self.store is None:
            self._post(chat_state.ConversationStarted(
                greeting=Turn(role=ASSISTANT, text=GREETING, timestamp=_now())
            ))
            return True

        if self._state.identity is None:
            logger.debug("Ignoring conversation start: identity not established")
            return False

        self._post(chat_state.ConversationStarted())
        self._persist(ASSISTANT, GREETING, local_fallback=True)
        return True

    def close(self) -> None:
        """Stop following the store; replies still in flight are discarded."""
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # Helpers

    def _build_chat_history(self, prior_turns, text: str) -> List[Dict[str, Any]]:
        """
        Build the gateway chat history.

        The persona prompt comes first as a user entry, then the prior turns in
        order, then ``text`` as the current prompt.
        """
        chat_history = [{"role": "user", "parts": [{"text": self.persona_prompt}]}]
        chat_history.extend(
            {"role": turn.wire_role, "parts": [{"text": turn.text}]}
            for turn in prior_turns
        )
        chat_history.append({"role": "user", "parts": [{"text": text}]})
        return chat_history

    def _refresh(self) -> bool:
        if self.store is None or self._closed or self._state.identity is None:
            return False
        if not self.store.refresh():
            logger.warning("Could not re-read persisted turns; showing the last known list")
            return False
        return True

    def _request_reply(self, chat_history: List[Dict[str, Any]]) -> str:
        try:
            return self.gateway.request_completion(chat_history, self.generation_config)
        except GatewayError as e:
            logger.error(f"Error communicating with AI via gateway ({e.kind}): {e}")
            return NO_RESPONSE_APOLOGY if e.kind == GatewayError.MALFORMED else CONNECTION_APOLOGY
        except Exception as e:
            logger.error(f"Unexpected error requesting completion: {e}", exc_info=True)
            return CONNECTION_APOLOGY

    def _persist(self, role: str, text: str, local_fallback: bool) -> None:
        """
        Write a turn through the store, or locally when there is none.

        With a store the rendered list is updated by its push. If the write
        fails and ``local_fallback`` is set the turn is shown locally instead.
        """
        if self.store is None:
            if role != USER:
                self._post(chat_state.LocalTurnAdded(Turn(role=role, text=text, timestamp=_now())))
            return

        try:
            self.store.append(text, role)
        except ConversationStoreError as e:
            logger.error(f"Failed to persist {role} turn: {e}")
            if local_fallback:
                self._post(chat_state.LocalTurnAdded(Turn(role=role, text=text, timestamp=_now())))


def _now() -> datetime:
    return datetime.now(timezone.utc)
