"""Conversation context selection.

Chooses which stored messages accompany the current query when calling the
language model.
"""

from hermes.context.models import (
    Attempted,
    ContextSelectionConfig,
    ContextWindow,
    ConversationMessage,
    MessageRole,
    NotAttempted,
)
from hermes.context.semantic_selector import SemanticContextSelector
from hermes.context.time_based import TimeBasedContextSelector, select_recent_context

__all__ = [
    "Attempted",
    "ContextSelectionConfig",
    "ContextWindow",
    "ConversationMessage",
    "MessageRole",
    "NotAttempted",
    "SemanticContextSelector",
    "TimeBasedContextSelector",
    "select_recent_context",
]
