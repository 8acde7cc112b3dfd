"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import context

router = APIRouter()

# Context pack routes
router.include_router(context.router, prefix="/context", tags=["context"])
