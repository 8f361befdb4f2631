"""API router for v1 endpoints."""

from fastapi import APIRouter

from hermes.api import conversations

router = APIRouter()

router.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
