"""
Terminal front-end for the Nexlify Sales Call Simulator.

Runs the cold-call role-play against a running completion gateway. Turns are
persisted per user in Supabase unless --local-only is given.

Usage:
    python chat_simulator.py [--gateway-url http://localhost:8000/.netlify/functions/chat] [--local-only]

Commands:
    /start    dismiss the intro and let Mr./Ms. Thompson pick up the phone
    /reset    clear the chat view and show the intro again
    /refresh  reload turns written from another tab or device
    /quit     leave the simulator
"""
import argparse
import sys
from typing import Optional, TextIO

from config import GATEWAY_URL, GATEWAY_TIMEOUT
from services.chat_orchestrator import ChatOrchestrator
from services.chat_state import ChatState, AWAITING_COMPLETION
from services.conversation_store import ConversationStore
from services.gateway_client import GatewayClient
from services.persona import INTRO_TITLE, INTRO_TEXT, THINKING_TEXT

SPEAKERS = {"user": "You", "assistant": "Thompson"}


class ConsoleView:
    """Renders chat state changes to a text stream."""

    def __init__(self, out: TextIO = sys.stdout):
        self.out = out
        self._rendered = 0
        self._intro_shown = False

    def render(self, state: ChatState) -> None:
        if state.intro_visible:
            if not self._intro_shown:
                self.out.write(f"\n=== {INTRO_TITLE} ===\n{INTRO_TEXT}\n\nType /start to begin.\n")
                self._intro_shown = True
            self._rendered = 0
            return
        self._intro_shown = False

        turns = state.turns
        if len(turns) < self._rendered:
            # List shrank (view reset or store resync); redraw from the top
            self._rendered = 0
        for turn in turns[self._rendered:]:
            self.out.write(f"{SPEAKERS.get(turn.role, turn.role)}: {turn.text}\n")
        self._rendered = len(turns)

        if state.phase == AWAITING_COMPLETION:
            self.out.write(f"... {THINKING_TEXT}\n")
        self.out.flush()


def build_orchestrator(
    gateway_url: str = GATEWAY_URL,
    local_only: bool = False,
    view: Optional[ConsoleView] = None
) -> ChatOrchestrator:
    """Wire the orchestrator to the gateway, the store (unless local-only) and a view."""
    store = None if local_only else ConversationStore.from_config()
    view = view or ConsoleView()
    return ChatOrchestrator(
        gateway=GatewayClient(url=gateway_url, timeout=GATEWAY_TIMEOUT),
        store=store,
        on_change=view.render
    )


def run(orchestrator: ChatOrchestrator, lines, out: TextIO = sys.stdout) -> None:
    """Process input lines until /quit or end of input."""
    for raw_line in lines:
        line = raw_line.strip()
        if line == "/quit":
            break
        if line == "/reset":
            orchestrator.reset_view()
        elif line == "/refresh":
            if orchestrator.store is not None and not orchestrator.refresh():
                out.write("Could not reload the conversation.\n")
        elif line == "/start":
            if not orchestrator.start_conversation():
                out.write("Still connecting; please wait.\n")
        elif orchestrator.state.intro_visible:
            out.write("Type /start to begin the call.\n")
        else:
            orchestrator.update_input(raw_line.rstrip("\n"))
            orchestrator.submit_turn()
    orchestrator.close()


def main():
    """Main entry point for the terminal simulator."""
    parser = argparse.ArgumentParser(
        description="Nexlify Sales Call Simulator (terminal front-end)"
    )
    parser.add_argument(
        "--gateway-url",
        default=GATEWAY_URL,
        help=f"Completion gateway chat route (default: {GATEWAY_URL})"
    )
    parser.add_argument(
        "--local-only",
        action="store_true",
        help="Keep the conversation in memory instead of persisting it to Supabase"
    )
    args = parser.parse_args()

    view = ConsoleView()
    try:
        orchestrator = build_orchestrator(args.gateway_url, args.local_only, view)
    except ValueError as e:
        print(f"Error: {e}")
        print("Set SUPABASE_URL and SUPABASE_KEY, or run with --local-only.")
        sys.exit(1)

    view.render(orchestrator.state)
    if not orchestrator.connect():
        print("Could not establish a user session; chat is disabled.")

    if orchestrator.identity is not None:
        print(f"User ID: {orchestrator.identity.user_id}")

    try:
        run(orchestrator, sys.stdin)
    except KeyboardInterrupt:
        orchestrator.close()
        print()


if __name__ == "__main__":
    main()
