import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.dependencies.services import get_review_service
from app.schemas.review import (
    ReviewCreateRequest,
    ReviewCreateResponse,
    ReviewDeleteResponse,
    ReviewListRequest,
    ReviewListResponse,
    ReviewPublic,
    ReviewSort,
    ReviewUpdateRequest,
    ReviewUpdateResponse,
)
from app.services import ReviewService
from app.services.exceptions import (
    ForbiddenError,
    MissingCredentialError,
    ReviewNotFoundError,
    ReviewValidationError,
    ServiceError,
    StoreConflictError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

TOKEN_HEADER = "X-Ownership-Token"


def _http_error(exc: ServiceError) -> HTTPException:
    if isinstance(exc, ReviewNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, MissingCredentialError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=403, detail="Forbidden")
    if isinstance(exc, ReviewValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, StoreConflictError):
        return HTTPException(status_code=409, detail="Review conflicts with an existing review")
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=503, detail="Review store unavailable, try again later")
    logger.error("Unhandled service error: %s", exc)
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("", status_code=201, response_model=ReviewCreateResponse)
async def create_review(
    req: ReviewCreateRequest,
    service: ReviewService = Depends(get_review_service),
):
    try:
        return await service.create(req)
    except ServiceError as exc:
        raise _http_error(exc) from exc


@router.get("", response_model=ReviewListResponse)
async def list_reviews(
    query: Optional[str] = Query(None, max_length=100),
    sort: ReviewSort = ReviewSort.NEWEST,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: ReviewService = Depends(get_review_service),
):
    req = ReviewListRequest(query=query, sort=sort, page=page, limit=limit)
    try:
        return await service.list(req)
    except ServiceError as exc:
        raise _http_error(exc) from exc


@router.get("/{review_id}", response_model=ReviewPublic)
async def get_review(
    review_id: int,
    service: ReviewService = Depends(get_review_service),
):
    try:
        return await service.get(review_id)
    except ServiceError as exc:
        raise _http_error(exc) from exc


@router.patch("/{review_id}", response_model=ReviewUpdateResponse)
async def update_review(
    review_id: int,
    req: ReviewUpdateRequest,
    ownership_token: Optional[str] = Header(None, alias=TOKEN_HEADER),
    service: ReviewService = Depends(get_review_service),
):
    token = ownership_token or req.ownership_token
    try:
        review = await service.update(review_id, req, token)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return ReviewUpdateResponse(review=review)


@router.delete("/{review_id}", response_model=ReviewDeleteResponse)
async def delete_review(
    review_id: int,
    ownership_token: Optional[str] = Header(None, alias=TOKEN_HEADER),
    service: ReviewService = Depends(get_review_service),
):
    try:
        await service.delete(review_id, ownership_token)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return ReviewDeleteResponse(id=review_id)
