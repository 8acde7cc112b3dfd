"""Context pack API endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from app.context.engine import build_context
from app.context.errors import StorageConnectionError
from app.context.models import BuildOptions
from app.context.weight_profiles import list_profiles
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class BuildContextRequest(BaseModel):
    """Request body for building a context pack."""

    user_id: str = Field(..., min_length=1, description="User whose records are aggregated")
    consumer: str = Field(default="default", description="Consumer (weight profile) name")
    max_tokens: int | None = Field(default=None, ge=1, description="Total token budget")
    max_items_per_category: int | None = Field(default=None, ge=1, description="Item cap per category")
    use_relevance_search: bool = Field(
        default=False, description="Rank the historical pool against the identity statement"
    )


class SectionOut(BaseModel):
    key: str
    header: str
    lines: list[str]
    item_ids: list[str]


class BuildContextResponse(BaseModel):
    """Response body for a built context pack."""

    consumer: str
    profile: str
    text: str
    sections: list[SectionOut]
    budgets: dict[str, int]
    excluded: list[str]
    relevance_tier: str | None = None
    estimated_tokens: int


@router.post("/build", response_model=BuildContextResponse)
async def build_context_pack(request: BuildContextRequest) -> BuildContextResponse:
    """
    Build the size-bounded context pack for one consumer.

    Args:
        request: User, consumer and budget overrides

    Returns:
        Rendered text plus the per-section breakdown

    Raises:
        HTTPException 503: If storage cannot be reached
    """
    options = BuildOptions(
        max_tokens=request.max_tokens,
        max_items_per_category=request.max_items_per_category,
        use_relevance_search=request.use_relevance_search,
    )

    try:
        pack = await build_context(request.user_id, request.consumer, options)
    except StorageConnectionError as e:
        logger.error(f"Storage unavailable building context for user {request.user_id}: {e}")
        raise HTTPException(status_code=503, detail="Storage unavailable") from e

    return BuildContextResponse(
        consumer=pack.consumer,
        profile=pack.profile,
        text=pack.to_text(),
        sections=[SectionOut(**section.model_dump()) for section in pack.sections],
        budgets=pack.budgets,
        excluded=pack.excluded,
        relevance_tier=pack.relevance_tier,
        estimated_tokens=pack.estimated_tokens(),
    )


@router.get("/profiles")
async def get_profiles() -> list[dict[str, Any]]:
    """List every registered weight profile with its normalized weights."""
    return [
        {
            "name": profile.name,
            "description": profile.description,
            "weights": dict(profile.normalized),
            "similarity_threshold": profile.similarity_threshold,
            "relevance_top_k": profile.relevance_top_k,
        }
        for profile in list_profiles()
    ]
