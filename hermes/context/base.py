"""Shared interface for conversation context selectors."""

from typing import Protocol

from hermes.context.models import ConversationMessage


class ContextSelector(Protocol):
    """Chooses which stored messages accompany the current query."""

    async def select_relevant_context(
        self,
        current_query: str,
        history: list[ConversationMessage],
    ) -> list[ConversationMessage]:
        """
        Select messages to forward to the language model.

        Args:
            current_query: The user's current question
            history: Full stored history for the conversation

        Returns:
            Subset of history in chronological order
        """
        ...
