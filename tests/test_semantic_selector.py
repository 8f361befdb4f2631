"""Tests for SemanticContextSelector with a mocked embedding client."""

import asyncio
import math
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from hermes.context.models import ContextSelectionConfig, ConversationMessage
from hermes.context.semantic_selector import SemanticContextSelector, needs_reference_resolution
from hermes.context.time_based import select_recent_context
from hermes.core.similarity import DimensionMismatchError

BASE_TIME = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)

QUERY_VECTOR = [1.0, 0.0, 0.0]
RELEVANT = [0.9, 0.1, 0.0]
HIGHLY_RELEVANT = [0.95, 0.05, 0.0]
IRRELEVANT = [0.0, 1.0, 0.0]


def _message(
    content: str,
    minute: int,
    role: str = "user",
    vector: list[float] | None = None,
    attempted: bool = True,
) -> ConversationMessage:
    message = ConversationMessage(
        role=role, content=content, timestamp=BASE_TIME + timedelta(minutes=minute)
    )
    if vector is not None:
        message.mark_embedded(vector)
    elif attempted:
        message.mark_embedding_failed()
    return message


def _config(**overrides) -> ContextSelectionConfig:
    values = {
        "relevance_threshold": 0.70,
        "max_context_turns": 10,
        "min_recent_turns": 1,
        "enable_semantic_filtering": True,
        "enable_query_deduplication": False,
    }
    values.update(overrides)
    return ContextSelectionConfig(**values)


@pytest.fixture
def embedding_client():
    client = MagicMock()
    client.generate_embedding = AsyncMock(return_value=QUERY_VECTOR)
    client.generate_batch_embeddings = AsyncMock(return_value={})
    return client


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "   ", None])
async def test_blank_query_returns_empty(embedding_client, query):
    selector = SemanticContextSelector(embedding_client, _config())

    result = await selector.select_relevant_context(query, [_message("Test", 1)])

    assert result == []
    embedding_client.generate_embedding.assert_not_called()


@pytest.mark.asyncio
async def test_empty_history_returns_empty(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())

    result = await selector.select_relevant_context("test query", [])

    assert result == []
    embedding_client.generate_embedding.assert_not_called()


@pytest.mark.asyncio
async def test_semantic_filtering_disabled_uses_time_based(embedding_client):
    config = _config(enable_semantic_filtering=False, max_context_turns=2, min_recent_turns=1)
    selector = SemanticContextSelector(embedding_client, config)
    history = [_message("Message 1", 1), _message("Message 2", 2), _message("Message 3", 3)]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Message 2", "Message 3"]
    assert result == select_recent_context(history, 2)
    embedding_client.generate_embedding.assert_not_called()
    embedding_client.generate_batch_embeddings.assert_not_called()


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_embedding_failure_falls_back_to_time_based(embedding_client):
    embedding_client.generate_embedding.side_effect = Exception("API error")
    config = _config(max_context_turns=3)
    selector = SemanticContextSelector(embedding_client, config)
    history = [_message(f"Message {i}", i, vector=IRRELEVANT) for i in range(6)]

    result = await selector.select_relevant_context("test query", history)

    assert result == select_recent_context(history, 3)
    embedding_client.generate_batch_embeddings.assert_not_called()


@pytest.mark.asyncio
async def test_query_embedding_failure_skips_dedup_and_floor(embedding_client):
    """Fallback is the plain recency window, even for pronoun queries."""
    embedding_client.generate_embedding.side_effect = RuntimeError("timeout")
    config = _config(max_context_turns=2, enable_query_deduplication=True)
    selector = SemanticContextSelector(embedding_client, config)
    history = [
        _message("same", 1, vector=QUERY_VECTOR),
        _message("same", 2, vector=QUERY_VECTOR),
    ]

    result = await selector.select_relevant_context("what about that one", history)

    assert result == history


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(embedding_client):
    embedding_client.generate_embedding.side_effect = asyncio.CancelledError()
    selector = SemanticContextSelector(embedding_client, _config())

    with pytest.raises(asyncio.CancelledError):
        await selector.select_relevant_context("test query", [_message("m", 1)])


@pytest.mark.asyncio
async def test_dimension_mismatch_propagates(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [_message("old", 1, vector=[1.0, 0.0]), _message("recent", 2, vector=[1.0, 0.0])]

    with pytest.raises(DimensionMismatchError):
        await selector.select_relevant_context("test query", history)


# ---------------------------------------------------------------------------
# Embedding backfill
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_backfills_missing_embeddings_in_one_batch(embedding_client):
    embedding_client.generate_batch_embeddings.side_effect = lambda texts: {
        t: RELEVANT for t in texts
    }
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("First question", 1, attempted=False),
        _message("First answer", 2, role="assistant", attempted=False),
    ]

    result = await selector.select_relevant_context("test query", history)

    embedding_client.generate_batch_embeddings.assert_awaited_once_with(
        ["First question", "First answer"]
    )
    assert all(m.embedding_attempted for m in history)
    assert history[0].embedding == RELEVANT
    assert [m.content for m in result] == ["First question", "First answer"]


@pytest.mark.asyncio
async def test_blank_and_already_attempted_messages_are_not_requested(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("   ", 1, attempted=False),
        _message("Failed before", 2),
        _message("Has vector", 3, vector=RELEVANT),
        _message("Needs vector", 4, attempted=False),
    ]

    await selector.select_relevant_context("test query", history)

    embedding_client.generate_batch_embeddings.assert_awaited_once_with(["Needs vector"])
    assert history[0].embedding_attempted is False


@pytest.mark.asyncio
async def test_no_batch_call_when_everything_attempted(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [_message("Failed before", 1), _message("Has vector", 2, vector=RELEVANT)]

    await selector.select_relevant_context("test query", history)

    embedding_client.generate_batch_embeddings.assert_not_called()


@pytest.mark.asyncio
async def test_batch_failure_marks_attempted_and_never_retries(embedding_client):
    embedding_client.generate_batch_embeddings.side_effect = Exception("batch failed")
    selector = SemanticContextSelector(embedding_client, _config(min_recent_turns=1))
    history = [
        _message("Old message", 1, attempted=False),
        _message("Recent message", 2, attempted=False),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Recent message"]
    assert all(m.embedding_attempted and m.embedding is None for m in history)

    await selector.select_relevant_context("test query", history)

    assert embedding_client.generate_batch_embeddings.await_count == 1


@pytest.mark.asyncio
async def test_messages_missing_from_batch_result_are_marked_failed(embedding_client):
    embedding_client.generate_batch_embeddings.return_value = {"Embedded": HIGHLY_RELEVANT}
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("Embedded", 1, attempted=False),
        _message("Skipped by service", 2, attempted=False),
        _message("Recent", 3, vector=IRRELEVANT),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert history[0].embedding == HIGHLY_RELEVANT
    assert history[1].embedding_attempted is True
    assert history[1].embedding is None
    assert [m.content for m in result] == ["Embedded", "Recent"]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_none_relevant_returns_min_recent_only(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("Irrelevant message", 1, vector=IRRELEVANT),
        _message("Recent message", 2, vector=[0.1, 0.9, 0.0]),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Recent message"]


@pytest.mark.asyncio
async def test_mixed_relevance_returns_hybrid_set(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("Relevant old message", 1, vector=RELEVANT),
        _message("Irrelevant old message", 2, vector=IRRELEVANT),
        _message("Unembeddable old message", 3),
        _message("Recent message", 4, vector=[0.5, 0.5, 0.0]),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Relevant old message", "Recent message"]


@pytest.mark.asyncio
async def test_all_relevant_returns_all_up_to_max(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config(max_context_turns=2))
    history = [
        _message("Message 1", 1, vector=RELEVANT),
        _message("Message 2", 2, vector=HIGHLY_RELEVANT),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert result == history


@pytest.mark.asyncio
async def test_respects_max_context_turns_and_prefers_higher_scores(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config(max_context_turns=3))
    history = [
        _message("Weak match", 1, vector=[0.75, 0.66, 0.0]),
        _message("Strong match", 2, vector=HIGHLY_RELEVANT),
        _message("Good match", 3, vector=RELEVANT),
        _message("Recent message", 4, vector=IRRELEVANT),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Strong match", "Good match", "Recent message"]


@pytest.mark.asyncio
async def test_returns_messages_in_chronological_order(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config())
    history = [
        _message("Third", 3, vector=RELEVANT),
        _message("First", 1, vector=RELEVANT),
        _message("Second", 2, vector=RELEVANT),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["First", "Second", "Third"]


@pytest.mark.asyncio
async def test_zero_min_recent_uses_relevance_only(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config(min_recent_turns=0))
    history = [
        _message("Relevant", 1, vector=RELEVANT),
        _message("Latest but irrelevant", 2, vector=IRRELEVANT),
    ]

    result = await selector.select_relevant_context("test query", history)

    assert [m.content for m in result] == ["Relevant"]


@pytest.mark.asyncio
async def test_output_is_subset_of_input(embedding_client):
    embedding_client.generate_batch_embeddings.side_effect = lambda texts: {
        t: (RELEVANT if "bug" in t else IRRELEVANT) for t in texts
    }
    selector = SemanticContextSelector(
        embedding_client, _config(max_context_turns=4, enable_query_deduplication=True)
    )
    history = [
        _message(f"{'bug' if i % 3 == 0 else 'feature'} note {i}", i, attempted=False)
        for i in range(12)
    ]

    result = await selector.select_relevant_context("test query", history)

    assert len(result) <= 4
    assert all(any(m is h for h in history) for m in result)
    assert [m.timestamp for m in result] == sorted(m.timestamp for m in result)


# ---------------------------------------------------------------------------
# Reference-aware recency floor
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "query",
    ["What about that one?", "Who owns THAT ITEM", "show the previous result", "assign them to me"],
)
def test_reference_markers_detected(query):
    assert needs_reference_resolution(query) is True


@pytest.mark.parametrize("query", ["show open bugs", "how many tasks are done?", "", "   "])
def test_queries_without_markers(query):
    assert needs_reference_resolution(query) is False


@pytest.mark.asyncio
async def test_pronoun_query_keeps_last_four(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config(min_recent_turns=1))
    history = [
        _message(f"Message {i}", i, role="user" if i % 2 == 0 else "assistant", vector=IRRELEVANT)
        for i in range(8)
    ]

    result = await selector.select_relevant_context("What about that one?", history)

    assert result == history[-4:]


@pytest.mark.asyncio
async def test_floor_above_cap_keeps_most_recent(embedding_client):
    selector = SemanticContextSelector(
        embedding_client, _config(max_context_turns=2, min_recent_turns=1)
    )
    history = [_message(f"Message {i}", i, vector=RELEVANT) for i in range(6)]

    result = await selector.select_relevant_context("tell me more about those", history)

    assert [m.content for m in result] == ["Message 4", "Message 5"]


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_scenario_short_history_returned_unchanged(embedding_client):
    selector = SemanticContextSelector(embedding_client, _config(max_context_turns=10))
    history = [
        _message("How many bugs are open?", 1, vector=RELEVANT),
        _message("There are 12 open bugs.", 2, role="assistant", vector=IRRELEVANT),
    ]

    result = await selector.select_relevant_context("show open bugs", history)

    assert result == history


@pytest.mark.asyncio
async def test_scenario_long_history_recent_plus_relevant(embedding_client):
    config = _config(min_recent_turns=4, max_context_turns=6, relevance_threshold=0.8)
    selector = SemanticContextSelector(embedding_client, config)
    vectors = {2: QUERY_VECTOR, 5: QUERY_VECTOR, 8: RELEVANT, 11: [0.7, 0.7, 0.0]}
    history = [
        _message(
            f"Message {i}",
            i,
            role="user" if i % 2 == 0 else "assistant",
            vector=vectors.get(i, IRRELEVANT),
        )
        for i in range(20)
    ]

    result = await selector.select_relevant_context("show open bugs", history)

    assert len(result) <= 6
    assert result[-4:] == history[-4:]
    older = result[:-4]
    assert len(older) <= 2
    assert all(m.embedding is not None for m in older)
    assert [m.content for m in older] == ["Message 2", "Message 5"]
    assert [m.timestamp for m in result] == sorted(m.timestamp for m in result)


@pytest.mark.asyncio
async def test_scenario_paraphrased_question_collapses_earlier_pair(embedding_client):
    config = _config(
        max_context_turns=12,
        min_recent_turns=12,
        enable_query_deduplication=True,
        query_duplication_threshold=0.9,
    )
    selector = SemanticContextSelector(embedding_client, config)
    paraphrase = [0.95, math.sqrt(1 - 0.95**2), 0.0, 0.0]
    user_vectors = {
        0: [0.0, 0.0, 1.0, 0.0],
        2: [1.0, 0.0, 0.0, 0.0],
        4: [0.0, 0.0, 0.0, 1.0],
        6: [0.0, 0.0, -1.0, 0.0],
        8: [0.0, 0.0, 0.0, -1.0],
        10: paraphrase,
    }
    history = [
        _message(f"Question {i}", i, vector=user_vectors[i])
        if i % 2 == 0
        else _message(f"Answer {i}", i, role="assistant")
        for i in range(12)
    ]

    result = await selector.select_relevant_context("show open bugs", history)

    contents = [m.content for m in result]
    assert "Question 2" not in contents
    assert "Answer 3" not in contents
    assert contents[-2:] == ["Question 10", "Answer 11"]
    assert len(result) == 10


@pytest.mark.asyncio
async def test_scenario_dissimilar_questions_both_kept(embedding_client):
    config = _config(
        max_context_turns=4,
        min_recent_turns=4,
        enable_query_deduplication=True,
        query_duplication_threshold=0.9,
    )
    selector = SemanticContextSelector(embedding_client, config)
    history = [
        _message("Show open bugs", 1, vector=[1.0, 0.0]),
        _message("Three bugs are open", 2, role="assistant"),
        _message("Who owns epic 7?", 3, vector=[0.5, math.sqrt(0.75)]),
        _message("Dana owns epic 7", 4, role="assistant"),
    ]

    result = await selector.select_relevant_context("show open bugs", history)

    assert result == history
