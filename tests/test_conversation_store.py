"""Unit tests for ConversationStore."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch
from models.conversation import SessionIdentity, USER, ASSISTANT
from services.conversation_store import ConversationStore, ConversationStoreError, StoreRefreshError

ROWS = [
    {"id": 1, "sender": "ai", "text": "Thompson's Trinkets, how can I help?",
     "timestamp": "2026-02-21T02:08:26.18976+00:00"},
    {"id": 2, "sender": "user", "text": "Hi, I'm calling from Nexlify.",
     "timestamp": "2026-02-21T02:08:30.5Z"},
]


def _select_chain(client):
    """Return the mock at the end of the ordered select query."""
    return (
        client.table.return_value
        .select.return_value
        .eq.return_value
        .eq.return_value
        .order.return_value
        .order.return_value
    )


@pytest.fixture
def client():
    """Create a mocked Supabase client with no session and two stored rows."""
    mock_client = MagicMock()
    mock_client.auth.get_session.return_value = None
    mock_client.auth.sign_in_anonymously.return_value = Mock(user=Mock(id="anon-123"))
    _select_chain(mock_client).execute.return_value = Mock(data=list(ROWS))
    return mock_client


@pytest.fixture
def store(client):
    """Create a store without a bootstrap token."""
    return ConversationStore(client, app_id="test-app", initial_auth_token=None, table="chat_messages")


class TestEstablishIdentity:
    """Test suite for identity establishment."""

    def test_reuses_existing_session(self, client, store):
        """Test an existing session is reused without signing in."""
        client.auth.get_session.return_value = Mock(user=Mock(id="existing-1"))

        identity = store.establish_identity()

        assert identity == SessionIdentity(user_id="existing-1")
        client.auth.sign_in_anonymously.assert_not_called()

    def test_signs_in_anonymously(self, client, store):
        """Test anonymous sign-in without a bootstrap token."""
        identity = store.establish_identity()

        assert identity == SessionIdentity(user_id="anon-123", anonymous=True)
        client.auth.sign_in_anonymously.assert_called_once()

    def test_signs_in_with_bootstrap_token(self, client):
        """Test the bootstrap token is resolved and scopes database access."""
        client.auth.get_user.return_value = Mock(user=Mock(id="token-user"))
        store = ConversationStore(client, app_id="test-app", initial_auth_token="jwt-token")

        identity = store.establish_identity()

        assert identity == SessionIdentity(user_id="token-user")
        client.auth.get_user.assert_called_once_with("jwt-token")
        client.postgrest.auth.assert_called_once_with("jwt-token")
        client.auth.sign_in_anonymously.assert_not_called()

    def test_unresolved_token_leaves_identity_unset(self, client):
        """Test a token that resolves to no user yields no identity."""
        client.auth.get_user.return_value = None
        store = ConversationStore(client, app_id="test-app", initial_auth_token="bad-token")

        assert store.establish_identity() is None
        assert store.identity is None

    def test_auth_failure_returns_none(self, client, store):
        """Test sign-in errors are logged and leave identity unset."""
        client.auth.sign_in_anonymously.side_effect = Exception("auth service down")

        assert store.establish_identity() is None
        assert store.identity is None

    def test_identity_established_once(self, client, store):
        """Test repeated calls do not sign in again."""
        first = store.establish_identity()
        second = store.establish_identity()

        assert first is second
        client.auth.sign_in_anonymously.assert_called_once()


class TestTurns:
    """Test suite for reading and appending turns."""

    def test_list_turns_without_identity_is_empty(self, client, store):
        """Test nothing is read before identity is established."""
        assert store.list_turns() == []
        client.table.assert_not_called()

    def test_list_turns_queries_user_partition_in_order(self, client, store):
        """Test the query is scoped to app and user and ordered by timestamp."""
        store.establish_identity()

        turns = store.list_turns()

        client.table.assert_called_with("chat_messages")
        select = client.table.return_value.select
        select.return_value.eq.assert_called_once_with("app_id", "test-app")
        select.return_value.eq.return_value.eq.assert_called_once_with("user_id", "anon-123")
        select.return_value.eq.return_value.eq.return_value.order.assert_called_once_with(
            "timestamp", desc=False
        )

        assert [turn.role for turn in turns] == [ASSISTANT, USER]
        assert turns[0].turn_id == "1"
        assert turns[1].text == "Hi, I'm calling from Nexlify."

    def test_list_turns_parses_timestamps(self, store):
        """Test variable-precision timestamps are parsed."""
        store.establish_identity()

        turns = store.list_turns()

        assert turns[0].timestamp == datetime(2026, 2, 21, 2, 8, 26, 189760, tzinfo=timezone.utc)
        assert turns[1].timestamp == datetime(2026, 2, 21, 2, 8, 30, 500000, tzinfo=timezone.utc)

    def test_append_requires_identity(self, client, store):
        """Test writing before identity is an error."""
        with pytest.raises(ConversationStoreError):
            store.append("Hello", USER)
        client.table.return_value.insert.assert_not_called()

    def test_append_inserts_row_without_timestamp(self, client, store):
        """Test the row is partitioned by app and user and the timestamp is left to the server."""
        store.establish_identity()

        store.append("Hello", USER)
        store.append("Busy here.", ASSISTANT)

        inserted = [c.args[0] for c in client.table.return_value.insert.call_args_list]
        assert inserted == [
            {"app_id": "test-app", "user_id": "anon-123", "text": "Hello", "sender": "user"},
            {"app_id": "test-app", "user_id": "anon-123", "text": "Busy here.", "sender": "ai"},
        ]

    def test_append_failure_raises_store_error(self, client, store):
        """Test insert failures are wrapped."""
        store.establish_identity()
        client.table.return_value.insert.return_value.execute.side_effect = Exception("permission denied")

        with pytest.raises(ConversationStoreError, match="permission denied"):
            store.append("Hello", USER)

    def test_store_has_no_delete_or_update(self, store):
        """Test the adapter exposes append only."""
        assert not hasattr(store, "delete")
        assert not hasattr(store, "update")


class TestSubscriptions:
    """Test suite for live turn-list subscriptions."""

    def test_subscribe_pushes_current_snapshot(self, store):
        """Test a new subscriber immediately receives the ordered list."""
        store.establish_identity()
        received = []

        store.subscribe(received.append)

        assert len(received) == 1
        assert [turn.turn_id for turn in received[0]] == ["1", "2"]

    def test_append_pushes_to_every_subscriber(self, store):
        """Test each append pushes the full list to all listeners."""
        store.establish_identity()
        first, second = [], []
        store.subscribe(first.append)
        store.subscribe(second.append)

        store.append("Hello", USER)

        assert len(first) == 2
        assert len(second) == 2
        assert len(first[-1]) == len(ROWS)

    def test_unsubscribe_stops_pushes(self, store):
        """Test an unsubscribed listener receives nothing further."""
        store.establish_identity()
        received = []
        unsubscribe = store.subscribe(received.append)

        unsubscribe()
        store.append("Hello", USER)

        assert len(received) == 1

    def test_read_failure_after_insert_raises_refresh_error(self, client, store):
        """Test a stored turn whose re-read fails is reported and nothing is pushed."""
        store.establish_identity()
        received = []
        store.subscribe(received.append)
        _select_chain(client).execute.side_effect = Exception("timeout")

        with pytest.raises(StoreRefreshError):
            store.append("Hello", USER)

        client.table.return_value.insert.return_value.execute.assert_called_once()
        assert len(received) == 1

    def test_refresh_error_is_a_store_error(self):
        """Test callers handling store errors also handle a failed re-read."""
        assert issubclass(StoreRefreshError, ConversationStoreError)

    def test_refresh_pushes_to_every_subscriber(self, client, store):
        """Test refresh() re-reads and pushes rows written elsewhere."""
        store.establish_identity()
        first, second = [], []
        store.subscribe(first.append)
        store.subscribe(second.append)
        later_row = {"id": 3, "sender": "user", "text": "Sent from my phone",
                     "timestamp": "2026-02-21T02:09:00Z"}
        _select_chain(client).execute.return_value = Mock(data=ROWS + [later_row])

        assert store.refresh()

        assert [turn.text for turn in first[-1]][-1] == "Sent from my phone"
        assert first[-1] == second[-1]
        client.table.return_value.insert.assert_not_called()

    def test_refresh_without_identity(self, client, store):
        """Test refresh() reads nothing before identity is established."""
        assert not store.refresh()
        client.table.assert_not_called()

    def test_refresh_read_failure(self, client, store):
        """Test refresh() reports a failed read and pushes nothing."""
        store.establish_identity()
        received = []
        store.subscribe(received.append)
        _select_chain(client).execute.side_effect = Exception("timeout")

        assert not store.refresh()
        assert len(received) == 1


class TestFromConfig:
    """Test suite for building the store from configuration."""

    def test_missing_settings_raise(self):
        """Test missing Supabase settings are rejected."""
        with patch('services.conversation_store.SUPABASE_URL', None):
            with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
                ConversationStore.from_config()

    @patch('services.conversation_store.create_client')
    def test_builds_client_from_settings(self, mock_create_client):
        """Test the Supabase client is created from the configured URL and key."""
        with patch('services.conversation_store.SUPABASE_URL', "https://example.supabase.co"), \
                patch('services.conversation_store.SUPABASE_KEY', "anon-key"):
            store = ConversationStore.from_config()

        mock_create_client.assert_called_once_with("https://example.supabase.co", "anon-key")
        assert store.client is mock_create_client.return_value
