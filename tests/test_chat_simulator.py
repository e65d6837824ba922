"""Tests for the terminal front-end."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import io
from unittest.mock import Mock, patch
from chat_simulator import ConsoleView, build_orchestrator, run
from models.conversation import SessionIdentity
from services.chat_orchestrator import ChatOrchestrator
from services.persona import GREETING, INTRO_TITLE, THINKING_TEXT


def _local_session(reply="Not interested."):
    out = io.StringIO()
    view = ConsoleView(out=out)
    gateway = Mock()
    gateway.request_completion.return_value = reply
    orchestrator = ChatOrchestrator(gateway=gateway, on_change=view.render)
    view.render(orchestrator.state)
    return orchestrator, gateway, out


def test_session_transcript():
    """Test a short local session renders intro, greeting, prompt and reply."""
    orchestrator, gateway, out = _local_session()

    run(orchestrator, ["/start\n", "Hi, I'm from Nexlify.\n", "/quit\n", "ignored\n"], out=out)

    transcript = out.getvalue()
    assert INTRO_TITLE in transcript
    assert f"Thompson: {GREETING}" in transcript
    assert "You: Hi, I'm from Nexlify." in transcript
    assert "Thompson: Not interested." in transcript
    assert THINKING_TEXT in transcript
    assert gateway.request_completion.call_count == 1


def test_input_before_start_is_not_sent():
    """Test lines typed while the intro is showing are not submitted."""
    orchestrator, gateway, out = _local_session()

    run(orchestrator, ["Hello?\n"], out=out)

    assert "Type /start to begin the call." in out.getvalue()
    gateway.request_completion.assert_not_called()


def test_reset_shows_intro_again():
    """Test /reset clears the view and re-shows the intro."""
    orchestrator, gateway, out = _local_session()

    run(orchestrator, ["/start\n", "/reset\n"], out=out)

    assert out.getvalue().count(INTRO_TITLE) == 2
    assert orchestrator.turns == []


def test_start_before_identity_reports_connecting():
    """Test /start is refused while the store session is not ready."""
    out = io.StringIO()
    store = Mock()
    orchestrator = ChatOrchestrator(gateway=Mock(), store=store)

    run(orchestrator, ["/start\n"], out=out)

    assert "Still connecting" in out.getvalue()
    store.append.assert_not_called()


def test_build_orchestrator_local_only():
    """Test --local-only wires no store."""
    orchestrator = build_orchestrator(gateway_url="http://gateway/chat", local_only=True)

    assert orchestrator.store is None
    assert orchestrator.gateway.url == "http://gateway/chat"


@patch('chat_simulator.ConversationStore')
def test_build_orchestrator_with_store(mock_store_class):
    """Test the store is built from configuration by default."""
    orchestrator = build_orchestrator(gateway_url="http://gateway/chat")

    mock_store_class.from_config.assert_called_once()
    assert orchestrator.store is mock_store_class.from_config.return_value


def test_refresh_command_rereads_store():
    """Test /refresh asks the store for the latest turns."""
    out = io.StringIO()
    store = Mock()
    store.establish_identity.return_value = SessionIdentity(user_id="user-1")
    store.refresh.return_value = False
    orchestrator = ChatOrchestrator(gateway=Mock(), store=store)
    orchestrator.connect()

    run(orchestrator, ["/refresh\n"], out=out)

    store.refresh.assert_called_once()
    assert "Could not reload the conversation." in out.getvalue()
    store.append.assert_not_called()
