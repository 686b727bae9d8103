"""
marketplace/schemas_listings.py

Pydantic schemas for listings, dashboards and favourites.
agent_id and agency_id are never accepted from request bodies; they come
from the auth context.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketplace.models import ListingStatus, PurchaseCategory

PriceValue = Union[int, float, str]


def _strip(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


# ========================================================================
# LISTING WRITE SCHEMAS
# ========================================================================

class ListingCreateRequest(BaseModel):
    """Request schema for creating a listing.

    Notes:
    - title is required and trimmed
    - price may carry currency formatting ("₦2,500,000"); it is stored as given
    - status defaults to pending (moderation), never featured
    """
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=200)
    state: Optional[str] = Field(None, max_length=100)
    price: Optional[PriceValue] = None
    status: ListingStatus = ListingStatus.pending
    purchase_category: Optional[PurchaseCategory] = None
    property_type: Optional[str] = Field(None, max_length=100)
    subtype: Optional[str] = Field(None, max_length=100)
    bedrooms: Optional[int] = Field(None, ge=0, le=100)
    bathrooms: Optional[int] = Field(None, ge=0, le=100)

    @field_validator("title", mode="before")
    @classmethod
    def trim_title(cls, v):
        return _strip(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v == ListingStatus.featured:
            raise ValueError("use the feature endpoint to feature a listing")
        return v


class ListingUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=200)
    state: Optional[str] = Field(None, max_length=100)
    price: Optional[PriceValue] = None
    status: Optional[ListingStatus] = None
    purchase_category: Optional[PurchaseCategory] = None
    property_type: Optional[str] = Field(None, max_length=100)
    subtype: Optional[str] = Field(None, max_length=100)
    bedrooms: Optional[int] = Field(None, ge=0, le=100)
    bathrooms: Optional[int] = Field(None, ge=0, le=100)

    @field_validator("title", mode="before")
    @classmethod
    def trim_title(cls, v):
        return _strip(v)


class FeatureListingRequest(BaseModel):
    days: Optional[int] = Field(None, ge=1, le=365, description="Feature duration (capped by plan)")


class FavouriteCreateRequest(BaseModel):
    property_id: int = Field(..., ge=1)


# ========================================================================
# RESPONSE SCHEMAS
# ========================================================================

class ListingResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    property_id: int
    agent_id: int
    agency_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: str
    is_featured: bool = False
    featured_expires_at: Optional[str] = None
    purchase_category: Optional[str] = None
    price: Optional[PriceValue] = None
    location: Optional[str] = None
    state: Optional[str] = None
    property_type: Optional[str] = None
    subtype: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    date_listed: Optional[str] = None
    updated_at: Optional[str] = None
    favourited_at: Optional[str] = None


class ListingPageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listings: List[ListingResponse] = Field(default_factory=list)
    total: int = 0
    total_pages: int = Field(1, alias="totalPages")
    current_page: int = Field(1, alias="currentPage")


class FavouritesPageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    favourites: List[ListingResponse] = Field(default_factory=list)
    total: int = 0
    total_pages: int = Field(1, alias="totalPages")
    current_page: int = Field(1, alias="currentPage")


class FavouriteStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_favourited: bool = Field(..., alias="isFavourited")


class PlanUsageResponse(BaseModel):
    plan: str
    limits: Dict[str, int]
    usage: Dict[str, int]
