"""Batch discovery routes.

Provides:
    GET /batches/recent   — Recently uploaded batches the caller can open.
    GET /batches/overview — Upload progress for the current term.
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from marks_editor.api.dependencies import MarksClientDep
from marks_editor.schemas.marks import MarksOverview, RecentBatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/batches", tags=["batches"])


class RecentBatchListResponse(BaseModel):
    """List of recently uploaded batches."""

    recent_batches: list[RecentBatch]
    total: int


@router.get(
    "/recent",
    response_model=RecentBatchListResponse,
    summary="List recently uploaded batches",
    responses={502: {"description": "Marks API unavailable"}},
)
async def list_recent_batches(client: MarksClientDep) -> RecentBatchListResponse:
    batches = await client.list_recent_batches()
    logger.debug("Fetched %d recent batches", len(batches))
    return RecentBatchListResponse(recent_batches=batches, total=len(batches))


@router.get(
    "/overview",
    response_model=MarksOverview,
    summary="Upload progress for the current term",
    responses={502: {"description": "Marks API unavailable"}},
)
async def get_overview(client: MarksClientDep) -> MarksOverview:
    """Return how many of the expected batches have been uploaded."""
    overview = await client.get_overview()
    logger.debug(
        "Overview %s %s: %d/%d uploaded",
        overview.academic_year,
        overview.term,
        overview.uploaded,
        overview.total_expected,
    )
    return overview
