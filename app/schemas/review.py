from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

AUTHOR_MAX_LENGTH = 30
PRODUCT_MAX_LENGTH = 50
CONTENT_MIN_LENGTH = 3
CONTENT_MAX_LENGTH = 500


class ReviewSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    RATING_ASC = "rating_asc"
    RATING_DESC = "rating_desc"


class ReviewCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    author: str = Field(..., min_length=1, max_length=AUTHOR_MAX_LENGTH)
    product: str = Field(..., min_length=1, max_length=PRODUCT_MAX_LENGTH)
    rating: int = Field(..., ge=1, le=5, strict=True, description="Rating from 1 to 5")
    content: str = Field(..., min_length=CONTENT_MIN_LENGTH, max_length=CONTENT_MAX_LENGTH)


class ReviewCreateResponse(BaseModel):
    """Returned for every accepted submission.

    ``ownership_token`` is only present when a new row was created; an
    absorbed duplicate answers with the original row's id and no token.
    """

    ok: bool = True
    id: int
    ownership_token: Optional[str] = None
    duplicate: bool = False


class ReviewPublic(BaseModel):
    """Read projection of a review. Has no ownership token field."""

    id: int
    author: str
    product: str
    rating: int
    content: str
    created_at: datetime


class ReviewUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    author: Optional[str] = Field(None, min_length=1, max_length=AUTHOR_MAX_LENGTH)
    product: Optional[str] = Field(None, min_length=1, max_length=PRODUCT_MAX_LENGTH)
    rating: Optional[int] = Field(None, ge=1, le=5, strict=True)
    content: Optional[str] = Field(
        None, min_length=CONTENT_MIN_LENGTH, max_length=CONTENT_MAX_LENGTH
    )
    ownership_token: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"ownership_token"})


class ReviewUpdateResponse(BaseModel):
    ok: bool = True
    review: ReviewPublic


class ReviewDeleteResponse(BaseModel):
    ok: bool = True
    id: int


class ReviewListRequest(BaseModel):
    query: Optional[str] = Field(None, max_length=100, description="Text matched against author, product and content")
    sort: ReviewSort = ReviewSort.NEWEST
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1, description="Page size, capped by the service")


class ReviewListResponse(BaseModel):
    items: List[ReviewPublic]
    page: int
    limit: int
    total: int
    has_more: bool
