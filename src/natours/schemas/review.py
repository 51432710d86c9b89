"""Pydantic schemas for tour reviews."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    """Create a review. tour_id may come from the nested route instead."""
    review: str = Field(..., min_length=1, description="Review text")
    rating: float = Field(..., ge=1, le=5, description="Rating between 1 and 5")
    tour_id: Optional[uuid.UUID] = Field(None, description="Tour UUID")


class ReviewUpdate(BaseModel):
    review: Optional[str] = Field(None, min_length=1)
    rating: Optional[float] = Field(None, ge=1, le=5)


class ReviewAuthor(BaseModel):
    id: uuid.UUID
    name: str
    photo: Optional[str] = None

    model_config = {"from_attributes": True}


class ReviewRead(BaseModel):
    id: uuid.UUID
    review: str
    rating: float
    created_at: datetime
    tour_id: uuid.UUID
    user: ReviewAuthor

    model_config = {"from_attributes": True}
