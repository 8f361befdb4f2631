"""Pydantic models for conversation context selection."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MessageRole(str, Enum):
    """Who produced a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class NotAttempted(BaseModel):
    """No embedding has been requested for the message yet."""

    model_config = ConfigDict(frozen=True)

    status: Literal["not_attempted"] = "not_attempted"


class Attempted(BaseModel):
    """
    Embedding generation was tried once.

    `vector` is None when generation failed or the service returned nothing
    for the message; such messages are never scored and never retried.
    """

    model_config = ConfigDict(frozen=True)

    status: Literal["attempted"] = "attempted"
    vector: list[float] | None = None


EmbeddingState = Annotated[Union[NotAttempted, Attempted], Field(discriminator="status")]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(BaseModel):
    """A single stored message of a conversation."""

    id: UUID = Field(default_factory=uuid4)
    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=_utc_now)
    embedding_state: EmbeddingState = Field(default_factory=NotAttempted)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are stored as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="before")
    @classmethod
    def _upgrade_flat_embedding_fields(cls, data: Any) -> Any:
        """Accept documents that store `embedding` + `embedding_generated` side by side."""
        if not isinstance(data, dict) or "embedding_state" in data:
            return data
        if "embedding" not in data and "embedding_generated" not in data:
            return data

        data = dict(data)
        vector = data.pop("embedding", None)
        generated = data.pop("embedding_generated", vector is not None)
        data["embedding_state"] = (
            {"status": "attempted", "vector": vector} if generated else {"status": "not_attempted"}
        )
        return data

    @property
    def embedding(self) -> list[float] | None:
        if isinstance(self.embedding_state, Attempted):
            return self.embedding_state.vector
        return None

    @property
    def embedding_attempted(self) -> bool:
        return isinstance(self.embedding_state, Attempted)

    def mark_embedded(self, vector: list[float]) -> None:
        """Record a successfully generated embedding."""
        self.embedding_state = Attempted(vector=vector)

    def mark_embedding_failed(self) -> None:
        """Record a failed attempt so generation is never retried."""
        self.embedding_state = Attempted(vector=None)


class ContextSelectionConfig(BaseModel):
    """
    Thresholds and toggles for conversation context selection.

    Immutable once built; every constraint is checked at construction.
    """

    model_config = ConfigDict(frozen=True)

    enable_semantic_filtering: bool = Field(
        default=True, description="Use embedding relevance; time-based window when false"
    )
    max_context_turns: int = Field(
        default=10, gt=0, description="Hard cap on returned message count"
    )
    min_recent_turns: int = Field(
        default=1, ge=0, description="Trailing messages always kept"
    )
    relevance_threshold: float = Field(
        default=0.70, ge=0.0, le=1.0, description="Minimum similarity for older messages"
    )
    enable_query_deduplication: bool = Field(
        default=True, description="Collapse repeated user questions"
    )
    query_duplication_threshold: float = Field(
        default=0.95, ge=0.0, le=1.0, description="Minimum similarity to treat queries as duplicates"
    )

    @model_validator(mode="after")
    def validate_recent_within_cap(self) -> "ContextSelectionConfig":
        """Ensure the recency floor fits inside the context cap."""
        if self.min_recent_turns > self.max_context_turns:
            raise ValueError(
                f"min_recent_turns ({self.min_recent_turns}) must not exceed "
                f"max_context_turns ({self.max_context_turns})"
            )
        return self


class ContextWindow(BaseModel):
    """Selected history for one turn, ready to hand to the language model."""

    conversation_id: str
    messages: list[ConversationMessage] = Field(default_factory=list)
    total_history: int = Field(default=0, ge=0, description="Messages stored for the conversation")

    def to_llm_messages(self) -> list[dict[str, str]]:
        """Format selected messages as role/content dicts for chat completion APIs."""
        return [{"role": m.role.value, "content": m.content} for m in self.messages]
