"""AI recommendation routes."""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Depends, Request, Response

from booktracker.api.dependencies import get_recommendation_service
from booktracker.api.middleware.auth import get_current_user_id
from booktracker.api.schemas import (
    ErrorResponse,
    RecommendationRequest,
    RecommendationsResponse,
    RecommendationStatusResponse,
)
from booktracker.config import settings
from booktracker.domain.errors import InvalidRequestError
from booktracker.services.recommendation import RecommendationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recommendations", tags=["Recommendations"])

T = TypeVar("T")

DISCONNECT_POLL_SECONDS = 0.5
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    pass


async def run_until_disconnect(request: Request, work: Awaitable[T]) -> T:
    """
    Await ``work`` but cancel it as soon as the HTTP client goes away.

    Cancelling the task cancels the in-flight completion call with it, so an
    abandoned request stops costing provider tokens.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                # let the provider call unwind before answering
                await asyncio.wait({task})
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


@router.post(
    "/generate",
    response_model=RecommendationsResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def generate_recommendations(
    request: Request,
    body: RecommendationRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationsResponse | Response:
    """Generate AI-powered book recommendations from the user's ratings."""
    body = body or RecommendationRequest()
    count = body.requested_count
    if count is None:
        count = settings.recommendation_default_count
    if count < 1:
        raise InvalidRequestError(
            f"Count must be between 1 and {settings.recommendation_max_count}.",
            errors=[f"requestedCount: got {count}"],
        )

    exclude = [(ref.title, ref.author) for ref in body.previous_recommendations]
    try:
        batch = await run_until_disconnect(
            request, service.generate(user_id, count, exclude=exclude)
        )
    except ClientDisconnected:
        logger.info("Client disconnected; recommendation request for user %s cancelled", user_id)
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    return RecommendationsResponse.from_batch(batch)


@router.get("/status", response_model=RecommendationStatusResponse)
async def recommendation_status(
    user_id: str = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationStatusResponse:
    """Report whether the user can generate now, without using quota."""
    return RecommendationStatusResponse.from_status(await service.eligibility(user_id))
