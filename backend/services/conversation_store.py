"""Conversation store adapter backed by Supabase auth and PostgreSQL."""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional
from supabase import create_client, Client

from models.conversation import Turn, SessionIdentity, ASSISTANT, ROLE_BY_SENDER, SENDER_BY_ROLE
from config import SUPABASE_URL, SUPABASE_KEY, APP_ID, INITIAL_AUTH_TOKEN, CHAT_TABLE

logger = logging.getLogger(__name__)

TurnListener = Callable[[List[Turn]], None]


class ConversationStoreError(Exception):
    """Raised when a turn cannot be written to the store."""


class StoreRefreshError(ConversationStoreError):
    """Raised when a turn was written but the turn list could not be re-read."""


class ConversationStore:
    """
    Per-user ordered append log of turns.

    Rows live in one table partitioned by ``app_id`` (deployment) and
    ``user_id`` (session identity). The ``timestamp`` column is assigned by the
    database. Every successful append pushes the full ordered turn list to all
    subscribers.

    Pushes are driven by this instance only: rows written by another process,
    tab or device for the same user reach subscribers on the next append or
    ``refresh()`` call, not as they happen.
    """

    def __init__(
        self,
        client: Client,
        app_id: str = APP_ID,
        initial_auth_token: Optional[str] = INITIAL_AUTH_TOKEN,
        table: str = CHAT_TABLE
    ):
        self.client = client
        self.app_id = app_id
        self.initial_auth_token = initial_auth_token
        self.table = table
        self.identity: Optional[SessionIdentity] = None
        self._listeners: List[TurnListener] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "ConversationStore":
        """Build a store from SUPABASE_URL and SUPABASE_KEY."""
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        client = create_client(SUPABASE_URL, SUPABASE_KEY)
        logger.info("ConversationStore initialized with Supabase")
        return cls(client)

    def establish_identity(self) -> Optional[SessionIdentity]:
        """
        Establish the session identity once.

        Reuses an existing authenticated session; otherwise signs in with the
        bootstrap token when one is configured, else anonymously.

        Returns:
            The identity, or None if sign-in failed (no retry is attempted)
        """
        if self.identity is not None:
            return self.identity

        try:
            session = self.client.auth.get_session()
            if session and session.user:
                self.identity = SessionIdentity(user_id=session.user.id)
                logger.info(f"Reusing signed-in user: {self.identity.user_id}")
                return self.identity

            logger.info("No user signed in. Attempting sign-in.")
            if self.initial_auth_token:
                response = self.client.auth.get_user(self.initial_auth_token)
                if not response or not response.user:
                    logger.error("Bootstrap auth token did not resolve to a user")
                    return None
                self.client.postgrest.auth(self.initial_auth_token)
                self.identity = SessionIdentity(user_id=response.user.id)
                logger.info(f"Signed in with auth token: {self.identity.user_id}")
            else:
                response = self.client.auth.sign_in_anonymously()
                if not response or not response.user:
                    logger.error("Anonymous sign-in returned no user")
                    return None
                self.identity = SessionIdentity(user_id=response.user.id, anonymous=True)
                logger.info(f"Signed in anonymously: {self.identity.user_id}")
        except Exception as e:
            logger.error(f"Authentication error: {e}", exc_info=True)
            return None

        return self.identity

    def list_turns(self) -> List[Turn]:
        """
        Retrieve the current user's turns.

        Returns:
            Turns ordered by timestamp ascending; empty without an identity
        """
        if self.identity is None:
            return []

        result = (
            self.client.table(self.table)
            .select("*")
            .eq("app_id", self.app_id)
            .eq("user_id", self.identity.user_id)
            .order("timestamp", desc=False)
            .order("id", desc=False)
            .execute()
        )
        return [self._row_to_turn(row) for row in (result.data or [])]

    def append(self, text: str, role: str) -> None:
        """
        Append a turn authored by ``role``; the database assigns its timestamp.

        Raises:
            ConversationStoreError: No identity yet, or the insert failed
            StoreRefreshError: The row was inserted but subscribers were not updated
        """
        if self.identity is None:
            raise ConversationStoreError("Cannot write a turn before identity is established")

        try:
            self.client.table(self.table).insert({
                "app_id": self.app_id,
                "user_id": self.identity.user_id,
                "text": text,
                "sender": SENDER_BY_ROLE[role],
            }).execute()
        except Exception as e:
            logger.error(f"Error appending {role} turn for user {self.identity.user_id}: {e}")
            raise ConversationStoreError(str(e)) from e

        logger.debug(f"Appended {role} turn for user {self.identity.user_id}")
        if not self._publish():
            raise StoreRefreshError(f"{role} turn was stored but the turn list could not be re-read")

    def refresh(self) -> bool:
        """
        Re-read the turn list and push it to every subscriber.

        Returns:
            False when there is no identity yet or the read failed
        """
        return self._publish()

    def subscribe(self, listener: TurnListener) -> Callable[[], None]:
        """
        Register ``listener`` for ordered snapshots and push the current one.

        Returns:
            A callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)
        self._publish(only=listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, only: Optional[TurnListener] = None) -> bool:
        if self.identity is None:
            return False
        try:
            turns = self.list_turns()
        except Exception as e:
            logger.error(f"Error retrieving turns for user {self.identity.user_id}: {e}")
            return False

        with self._lock:
            listeners = [only] if only is not None else list(self._listeners)
        for listener in listeners:
            listener(turns)
        return True

    def _row_to_turn(self, row: dict) -> Turn:
        timestamp = row.get("timestamp")
        return Turn(
            role=ROLE_BY_SENDER.get(row.get("sender"), ASSISTANT),
            text=row.get("text", ""),
            turn_id=str(row["id"]) if row.get("id") is not None else None,
            timestamp=self._parse_timestamp(timestamp) if timestamp else None
        )

    @staticmethod
    def _parse_timestamp(timestamp_str: str) -> datetime:
        """
        Parse a timestamp string from Supabase, handling various formats.

        Supabase can return timestamps with varying fractional-second precision,
        which fromisoformat() does not always accept, so the fraction is
        normalized to six digits.
        """
        timestamp_str = timestamp_str.replace("Z", "+00:00")

        if "." in timestamp_str:
            head, rest = timestamp_str.split(".", 1)
            tz = ""
            for sign in ("+", "-"):
                if sign in rest:
                    fraction, tz_part = rest.split(sign, 1)
                    tz = sign + tz_part
                    break
            else:
                fraction = rest
            timestamp_str = f"{head}.{fraction[:6].ljust(6, '0')}{tz}"

        return datetime.fromisoformat(timestamp_str)
