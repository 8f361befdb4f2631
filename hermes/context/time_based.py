"""Recency-window context selection.

Used directly when semantic filtering is disabled and as the fallback path
whenever semantic selection cannot run.
"""

from hermes.context.models import ConversationMessage


def select_recent_context(
    history: list[ConversationMessage],
    max_turns: int,
) -> list[ConversationMessage]:
    """
    Return the most recent messages in chronological order.

    Args:
        history: Messages to select from (any order)
        max_turns: Maximum number of messages to return

    Returns:
        The last `max_turns` messages by timestamp, or all if fewer

    Examples:
        >>> select_recent_context([m1, m2, m3], max_turns=2)
        [m2, m3]
        >>> select_recent_context([], max_turns=10)
        []
    """
    if not history or max_turns <= 0:
        return []

    ordered = sorted(history, key=lambda m: m.timestamp)
    return ordered[-max_turns:]


class TimeBasedContextSelector:
    """Selector that ignores the query and keeps the last N messages."""

    def __init__(self, max_turns: int):
        self.max_turns = max_turns

    async def select_relevant_context(
        self,
        current_query: str,
        history: list[ConversationMessage],
    ) -> list[ConversationMessage]:
        return select_recent_context(history, self.max_turns)
