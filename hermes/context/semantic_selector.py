"""Embedding-based conversation context selection.

Keeps a guaranteed window of the most recent messages and fills the rest of
the budget with older messages that are semantically close to the current
query. Every embedding failure degrades to the recency window instead of
failing the turn.
"""

from hermes.context.deduplication import collapse_duplicate_queries
from hermes.context.models import ContextSelectionConfig, ConversationMessage
from hermes.context.time_based import select_recent_context
from hermes.core.embeddings import EmbeddingClient
from hermes.core.logging import get_logger
from hermes.core.similarity import cosine_similarity

logger = get_logger(__name__)

# Substring markers that signal a reference to earlier turns. English only.
REFERENCE_MARKERS = (
    "that item", "that feature", "that epic", "that work item",
    "that one", "that id", "the same", "this item", "this feature",
    "it", "its", "them", "their", "those",
    "the previous", "the last", "the above",
)

# Previous question + answer, plus one more pair
PRONOUN_MIN_RECENT_TURNS = 4


def needs_reference_resolution(query: str) -> bool:
    """Check whether the query likely points back at earlier messages."""
    if not query or not query.strip():
        return False
    lowered = query.lower()
    return any(marker in lowered for marker in REFERENCE_MARKERS)


class SemanticContextSelector:
    """Selects recent plus semantically relevant history for a query."""

    def __init__(self, embedding_client: EmbeddingClient, config: ContextSelectionConfig):
        self._embedding_client = embedding_client
        self._config = config

    async def select_relevant_context(
        self,
        current_query: str,
        history: list[ConversationMessage],
    ) -> list[ConversationMessage]:
        """
        Select the context window for the current query.

        Embedding states of messages in `history` are backfilled in place.

        Args:
            current_query: The user's current question
            history: Full stored history for the conversation

        Returns:
            At most `max_context_turns` messages from history, oldest first

        Raises:
            DimensionMismatchError: If stored and query embeddings differ in length
        """
        config = self._config

        if not current_query or not current_query.strip():
            logger.warning("Current query is empty, returning empty context")
            return []

        if not history:
            logger.debug("No conversation history available")
            return []

        if not config.enable_semantic_filtering:
            logger.info("Semantic filtering disabled, using time-based selection")
            return select_recent_context(history, config.max_context_turns)

        min_recent_turns = config.min_recent_turns
        if needs_reference_resolution(current_query):
            min_recent_turns = max(min_recent_turns, PRONOUN_MIN_RECENT_TURNS)
            logger.debug(f"Reference detected in query, recency floor raised to {min_recent_turns}")

        try:
            query_embedding = await self._embedding_client.generate_embedding(current_query)
        except Exception as e:
            logger.warning(
                f"Failed to generate query embedding, falling back to time-based selection: {e}"
            )
            return select_recent_context(history, config.max_context_turns)

        logger.debug(f"Generated query embedding ({len(query_embedding)} dimensions)")

        await self._ensure_message_embeddings(history)

        ordered = sorted(history, key=lambda m: m.timestamp)
        split = max(0, len(ordered) - min_recent_turns)
        older, recent = ordered[:split], ordered[split:]

        scored: list[tuple[float, ConversationMessage]] = []
        for message in older:
            if message.embedding is None:
                continue
            similarity = cosine_similarity(query_embedding, message.embedding)
            if similarity >= config.relevance_threshold:
                scored.append((similarity, message))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        relevant_older = [m for _, m in scored[: max(0, config.max_context_turns - len(recent))]]

        selected = sorted(relevant_older + recent, key=lambda m: m.timestamp)
        if len(selected) > config.max_context_turns:
            selected = selected[-config.max_context_turns :]

        if config.enable_query_deduplication:
            result = collapse_duplicate_queries(selected, config.query_duplication_threshold)
        else:
            result = selected

        logger.info(
            f"Selected {len(result)} messages from {len(history)} total "
            f"({len(recent)} recent + {len(relevant_older)} relevant older, "
            f"{len(result)} after deduplication)"
        )
        return result

    async def _ensure_message_embeddings(self, messages: list[ConversationMessage]) -> None:
        """Backfill embeddings in one batch for messages never attempted before."""
        pending = [
            m for m in messages
            if not m.embedding_attempted and m.content and m.content.strip()
        ]
        if not pending:
            return

        logger.debug(f"Generating embeddings for {len(pending)} messages")

        try:
            embeddings = await self._embedding_client.generate_batch_embeddings(
                [m.content for m in pending]
            )
        except Exception as e:
            logger.warning(f"Failed to generate embeddings for {len(pending)} messages: {e}")
            for message in pending:
                message.mark_embedding_failed()
            return

        missing = 0
        for message in pending:
            vector = embeddings.get(message.content)
            if vector is None:
                missing += 1
                message.mark_embedding_failed()
            else:
                message.mark_embedded(vector)

        logger.info(f"Generated embeddings for {len(pending) - missing} of {len(pending)} messages")
