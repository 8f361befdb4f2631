"""Per-turn context window assembly and turn recording.

Glue between the history store and the context selector: load the stored
history for a conversation, pick the messages worth forwarding to the model,
and write completed turns back.
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from hermes.context.base import ContextSelector
from hermes.context.models import (
    ContextSelectionConfig,
    ContextWindow,
    ConversationMessage,
    MessageRole,
    NotAttempted,
)
from hermes.context.semantic_selector import SemanticContextSelector
from hermes.core.config import get_settings
from hermes.core.embeddings import OpenAIEmbeddingClient
from hermes.core.logging import get_logger, log_with_context
from hermes.db.conversation_history import ConversationHistoryRepository, get_history_repository

logger = get_logger(__name__)


def get_context_config() -> ContextSelectionConfig:
    """
    Build the context selection config from settings.

    Raises:
        ValidationError: If any configured threshold or count is out of range
    """
    settings = get_settings()
    return ContextSelectionConfig(
        enable_semantic_filtering=settings.CONTEXT_ENABLE_SEMANTIC_FILTERING,
        max_context_turns=settings.CONTEXT_MAX_CONTEXT_TURNS,
        min_recent_turns=settings.CONTEXT_MIN_RECENT_TURNS,
        relevance_threshold=settings.CONTEXT_RELEVANCE_THRESHOLD,
        enable_query_deduplication=settings.CONTEXT_ENABLE_QUERY_DEDUPLICATION,
        query_duplication_threshold=settings.CONTEXT_QUERY_DUPLICATION_THRESHOLD,
    )


@lru_cache(maxsize=1)
def get_context_selector() -> ContextSelector:
    """Get the process-wide semantic context selector."""
    return SemanticContextSelector(OpenAIEmbeddingClient(), get_context_config())


async def build_context_window(
    conversation_id: str,
    query: str,
    *,
    repository: ConversationHistoryRepository | None = None,
    selector: ContextSelector | None = None,
) -> ContextWindow:
    """
    Select the stored messages to send along with the current query.

    Embedding states filled in during selection are written back so later
    turns neither regenerate nor retry them.

    Args:
        conversation_id: Conversation identifier
        query: The user's current question
        repository: History store (default: process-wide repository)
        selector: Context selector (default: process-wide semantic selector)

    Returns:
        ContextWindow with the selected messages in chronological order
    """
    repository = repository or get_history_repository()
    selector = selector or get_context_selector()

    history = await repository.get_history(conversation_id)
    if not history:
        return ContextWindow(conversation_id=conversation_id)

    untouched = {m.id for m in history if isinstance(m.embedding_state, NotAttempted)}

    selected = await selector.select_relevant_context(query, history)

    backfilled = [m for m in history if m.id in untouched and m.embedding_attempted]
    if backfilled:
        await repository.save_embedding_states(conversation_id, backfilled)

    log_with_context(
        logger,
        logging.INFO,
        f"Context window built: {len(selected)} of {len(history)} messages",
        conversation_id=conversation_id,
        selected=len(selected),
        backfilled=len(backfilled),
    )
    return ContextWindow(
        conversation_id=conversation_id,
        messages=selected,
        total_history=len(history),
    )


async def record_turn(
    conversation_id: str,
    user_content: str,
    assistant_content: str,
    *,
    repository: ConversationHistoryRepository | None = None,
) -> list[ConversationMessage]:
    """
    Store a completed turn: the user's message and the assistant's reply.

    Args:
        conversation_id: Conversation identifier
        user_content: What the user asked
        assistant_content: What the assistant answered
        repository: History store (default: process-wide repository)

    Returns:
        The two stored messages
    """
    repository = repository or get_history_repository()

    asked_at = datetime.now(timezone.utc)
    messages = [
        ConversationMessage(role=MessageRole.USER, content=user_content, timestamp=asked_at),
        # Reply must sort after the question even on coarse clocks
        ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=assistant_content,
            timestamp=asked_at + timedelta(microseconds=1),
        ),
    ]

    await repository.append_messages(conversation_id, messages)
    log_with_context(logger, logging.DEBUG, "Turn recorded", conversation_id=conversation_id)
    return messages
