"""Collapse repeated user questions inside a selected context window."""

from hermes.context.models import ConversationMessage, MessageRole
from hermes.core.logging import get_logger
from hermes.core.similarity import cosine_similarity

logger = get_logger(__name__)

_PREVIEW_CHARS = 50


def collapse_duplicate_queries(
    selected: list[ConversationMessage],
    threshold: float,
) -> list[ConversationMessage]:
    """
    Drop earlier user questions that are repeated later in the window.

    For each user message with an embedding, the first later user message
    scoring at or above `threshold` marks it as a duplicate. The earlier
    question is removed together with the assistant reply that immediately
    follows it; the later occurrence is always kept. Messages without an
    embedding are never removed.

    Args:
        selected: Chronologically ordered selection
        threshold: Minimum cosine similarity for two questions to match

    Returns:
        The selection without collapsed pairs, order preserved

    Raises:
        DimensionMismatchError: If two question embeddings differ in length
    """
    if len(selected) < 2:
        return selected

    user_queries = [
        (index, message)
        for index, message in enumerate(selected)
        if message.role == MessageRole.USER and message.embedding is not None
    ]
    if len(user_queries) < 2:
        return selected

    excluded: set[int] = set()

    for pos, (index, message) in enumerate(user_queries[:-1]):
        if index in excluded:
            continue

        for later_index, later in user_queries[pos + 1 :]:
            if later_index in excluded:
                continue

            similarity = cosine_similarity(message.embedding, later.embedding)
            if similarity < threshold:
                continue

            logger.debug(
                f"Detected duplicate query (similarity: {similarity:.3f}): "
                f"'{message.content[:_PREVIEW_CHARS]}' vs '{later.content[:_PREVIEW_CHARS]}'"
            )
            excluded.add(index)
            reply_index = index + 1
            if reply_index < len(selected) and selected[reply_index].role == MessageRole.ASSISTANT:
                excluded.add(reply_index)
            break

    if not excluded:
        return selected

    logger.info(f"Query deduplication removed {len(excluded)} messages")
    return [m for i, m in enumerate(selected) if i not in excluded]
