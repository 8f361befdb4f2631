"""Conversation history persistence.

History is stored per conversation id as individual message rows. Readers
always receive fresh copies, so selectors may update embedding states on what
they are given without touching stored data until the caller saves them.
"""

import asyncio
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from supabase import Client

from hermes.context.models import ConversationMessage
from hermes.core.config import get_settings
from hermes.core.logging import get_logger
from hermes.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _require_conversation_id(conversation_id: str) -> None:
    if not conversation_id or not conversation_id.strip():
        raise ValueError("Conversation id cannot be empty")


class ConversationHistoryRepository(ABC):
    """Store for the ordered message history of each conversation."""

    @abstractmethod
    async def get_history(self, conversation_id: str) -> list[ConversationMessage]:
        """
        Load every stored message for a conversation, oldest first.

        Args:
            conversation_id: Conversation identifier (e.g. Teams conversation id)

        Returns:
            Copies of the stored messages (empty if none)

        Raises:
            ValueError: If conversation_id is blank
        """

    @abstractmethod
    async def append_messages(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        """
        Append messages to a conversation's history.

        Args:
            conversation_id: Conversation identifier
            messages: Messages to store; nothing is written when empty

        Raises:
            ValueError: If conversation_id is blank
        """

    @abstractmethod
    async def save_embedding_states(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        """
        Persist the embedding state of already-stored messages.

        Args:
            conversation_id: Conversation identifier
            messages: Messages whose embedding_state should be written back

        Raises:
            ValueError: If conversation_id is blank
        """


class InMemoryConversationHistoryRepository(ConversationHistoryRepository):
    """Process-local history store, used in development and tests."""

    def __init__(self) -> None:
        self._conversations: dict[str, list[ConversationMessage]] = {}

    async def get_history(self, conversation_id: str) -> list[ConversationMessage]:
        _require_conversation_id(conversation_id)
        stored = self._conversations.get(conversation_id, [])
        return [m.model_copy(deep=True) for m in stored]

    async def append_messages(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        _require_conversation_id(conversation_id)
        if not messages:
            return
        stored = self._conversations.setdefault(conversation_id, [])
        stored.extend(m.model_copy(deep=True) for m in messages)

    async def save_embedding_states(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        _require_conversation_id(conversation_id)
        states = {m.id: m.embedding_state for m in messages}
        for stored in self._conversations.get(conversation_id, []):
            if stored.id in states:
                stored.embedding_state = states[stored.id]

    def clear(self) -> None:
        self._conversations.clear()


class SupabaseConversationHistoryRepository(ConversationHistoryRepository):
    """History store backed by a Supabase table, one row per message."""

    def __init__(self, client: Client | None = None, table: str | None = None):
        self._client = client
        self._table = table or get_settings().CONVERSATION_MESSAGES_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    @staticmethod
    def _to_row(conversation_id: str, message: ConversationMessage) -> dict[str, Any]:
        data = message.model_dump(mode="json")
        return {
            "id": data["id"],
            "conversation_id": conversation_id,
            "role": data["role"],
            "content": data["content"],
            "created_at": data["timestamp"],
            "embedding_state": data["embedding_state"],
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> ConversationMessage:
        return ConversationMessage.model_validate(
            {
                "id": row["id"],
                "role": row["role"],
                "content": row.get("content") or "",
                "timestamp": row["created_at"],
                "embedding_state": row.get("embedding_state") or {"status": "not_attempted"},
            }
        )

    def _select_history(self, conversation_id: str) -> list[dict[str, Any]]:
        response = (
            self.client.table(self._table)
            .select("id, role, content, created_at, embedding_state")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=False)
            .execute()
        )
        return response.data or []

    async def get_history(self, conversation_id: str) -> list[ConversationMessage]:
        _require_conversation_id(conversation_id)

        try:
            rows = await asyncio.to_thread(self._select_history, conversation_id)
        except Exception as e:
            logger.error(f"Failed to load history for conversation {conversation_id}: {e}")
            raise

        logger.debug(f"Fetched {len(rows)} messages for conversation {conversation_id}")
        return [self._from_row(row) for row in rows]

    async def append_messages(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        _require_conversation_id(conversation_id)
        if not messages:
            return

        rows = [self._to_row(conversation_id, m) for m in messages]

        try:
            await asyncio.to_thread(
                lambda: self.client.table(self._table).insert(rows).execute()
            )
        except Exception as e:
            logger.error(f"Failed to append {len(rows)} messages to conversation {conversation_id}: {e}")
            raise

        logger.info(f"Appended {len(rows)} messages to conversation {conversation_id}")

    async def save_embedding_states(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> None:
        _require_conversation_id(conversation_id)
        if not messages:
            return

        # Full rows so the upsert never creates a partial message
        rows = [self._to_row(conversation_id, m) for m in messages]

        try:
            await asyncio.to_thread(
                lambda: self.client.table(self._table).upsert(rows, on_conflict="id").execute()
            )
        except Exception as e:
            logger.error(f"Failed to save embedding states for conversation {conversation_id}: {e}")
            raise

        logger.debug(f"Saved {len(rows)} embedding states for conversation {conversation_id}")


@lru_cache(maxsize=1)
def get_history_repository() -> ConversationHistoryRepository:
    """
    Get the process-wide history repository.

    Supabase is used when configured; otherwise history lives in memory.
    """
    if get_settings().SUPABASE_URL:
        return SupabaseConversationHistoryRepository()
    logger.warning("SUPABASE_URL not set, conversation history is kept in memory")
    return InMemoryConversationHistoryRepository()
