"""Conversation context endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError

from hermes.context.window import build_context_window, record_turn
from hermes.core.logging import get_logger
from hermes.core.similarity import DimensionMismatchError

logger = get_logger(__name__)

router = APIRouter()


class ContextRequest(BaseModel):
    """Request to preview the context selected for a query."""

    query: str = Field(..., description="The user's current question")


class SelectedMessage(BaseModel):
    """A history message chosen for the context window."""

    role: str
    content: str
    timestamp: datetime


class ContextResponse(BaseModel):
    """Context window selected for a query."""

    conversation_id: str
    messages: list[SelectedMessage]
    selected_count: int
    total_history: int


class TurnRequest(BaseModel):
    """A completed user/assistant exchange to store."""

    user_message: str = Field(..., min_length=1)
    assistant_message: str = Field(..., min_length=1)


@router.post("/{conversation_id}/context", response_model=ContextResponse)
async def select_context(conversation_id: str, request: ContextRequest) -> ContextResponse:
    """
    Select the history messages that would accompany a query.

    Args:
        conversation_id: Conversation identifier
        request: Query to select context for

    Returns:
        Selected messages in chronological order

    Raises:
        HTTPException 400: If the conversation id is blank
        HTTPException 500: If history cannot be loaded or embeddings are inconsistent
    """
    try:
        window = await build_context_window(conversation_id, request.query)
    except (DimensionMismatchError, ValidationError):
        # Embedding model or server config defect
        logger.exception(f"Context selection misconfigured for conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to select conversation context")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Failed to select context for conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to select conversation context")

    return ContextResponse(
        conversation_id=conversation_id,
        messages=[
            SelectedMessage(role=m.role.value, content=m.content, timestamp=m.timestamp)
            for m in window.messages
        ],
        selected_count=len(window.messages),
        total_history=window.total_history,
    )


@router.post("/{conversation_id}/turns", status_code=201)
async def store_turn(conversation_id: str, request: TurnRequest) -> dict:
    """
    Store a completed turn in the conversation history.

    Raises:
        HTTPException 400: If the conversation id is blank
        HTTPException 500: If the history store fails
    """
    try:
        stored = await record_turn(
            conversation_id, request.user_message, request.assistant_message
        )
    except ValidationError:
        logger.exception(f"Invalid message built for conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to store conversation turn")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Failed to store turn for conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to store conversation turn")

    return {"conversation_id": conversation_id, "stored": len(stored)}
