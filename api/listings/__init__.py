"""Listings API endpoints."""

import logging
from decimal import Decimal
from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status, Depends
from pydantic import BaseModel, Field, model_validator

from auth import get_current_user, get_optional_user
from listings import (
    ListingManager, BillingInterval, ListingNotFoundError, ListingPermissionError,
    ListingActiveError, InvalidPriceError
)
from tools import ToolNotFoundError, ToolPermissionError
from ..dependencies import get_listing_manager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/listings",
    tags=["Listings"]
)

# Public listing page
details_router = APIRouter(
    prefix="/listing",
    tags=["Listings"]
)


class ListingRequest(BaseModel):
    """Request model for creating or updating a listing."""
    tool_id: Optional[UUID] = None
    price: Decimal = Field(..., gt=0)
    billing_interval: BillingInterval
    max_billing_intervals: Optional[int] = Field(None, ge=1)


class SearchParams(BaseModel):
    """Query parameters of a listing search."""
    query: Optional[str] = Field(None, max_length=200)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lon: Optional[float] = Field(None, ge=-180, le=180)
    radius: Optional[float] = Field(None, gt=0)
    category_id: Optional[UUID] = None
    use_my_address: bool = False
    per_page: int = Field(50, ge=1, le=200)
    page: int = Field(1, ge=1)

    @model_validator(mode='after')
    def check_origin(self):
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be given together")
        return self


def listing_error_response(e: Exception) -> HTTPException:
    """Map a listing error to an HTTP error."""
    if isinstance(e, (ListingNotFoundError, ToolNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (ListingPermissionError, ToolPermissionError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ListingActiveError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, InvalidPriceError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"Listing request failed: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Listing request failed"
    )


LISTING_ERRORS = (
    ListingNotFoundError, ListingPermissionError, ListingActiveError,
    InvalidPriceError, ToolNotFoundError, ToolPermissionError
)


""" Public Endpoints - No Authentication Required """
@router.get("/search")
async def search_listings(
    params: Annotated[SearchParams, Query()],
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Search active listings by text and distance from an origin."""
    offset = (params.page - 1) * params.per_page
    results = await listings.search_listings(
        query=params.query,
        origin_lat=params.lat,
        origin_lon=params.lon,
        radius_km=params.radius,
        category_id=params.category_id,
        user=user,
        use_user_address=params.use_my_address,
        limit=params.per_page,
        offset=offset
    )
    return {
        "listings": results,
        "current_page": params.page,
        "limit": params.per_page,
        "offset": offset
    }


@details_router.get("/{listing_id}/details")
async def get_listing_details(
    listing_id: UUID,
    listings: ListingManager = Depends(get_listing_manager)
):
    """Details of an active listing."""
    try:
        return await listings.get_listing_details(listing_id)
    except ListingNotFoundError as e:
        raise listing_error_response(e)


""" Protected Endpoints - Authentication Required """
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """List one of your tools for rent."""
    if body.tool_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="tool_id is required"
        )
    try:
        return await listings.create_listing(
            user['id'],
            body.tool_id,
            body.price,
            body.billing_interval,
            body.max_billing_intervals
        )
    except LISTING_ERRORS as e:
        raise listing_error_response(e)


@router.put("/{listing_id}")
async def update_listing(
    listing_id: UUID,
    body: ListingRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Change price and billing terms of a listing."""
    try:
        return await listings.update_listing(
            listing_id,
            user['id'],
            body.price,
            body.billing_interval,
            body.max_billing_intervals
        )
    except LISTING_ERRORS as e:
        raise listing_error_response(e)


@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Delete a paused listing."""
    try:
        await listings.delete_listing(listing_id, user['id'])
        return {"success": True}
    except LISTING_ERRORS as e:
        raise listing_error_response(e)


@router.post("/{listing_id}/pause")
async def pause_listing(
    listing_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Hide a listing from search."""
    try:
        return await listings.set_active(listing_id, user['id'], False)
    except LISTING_ERRORS as e:
        raise listing_error_response(e)


@router.post("/{listing_id}/resume")
async def resume_listing(
    listing_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Show a paused listing in search again."""
    try:
        return await listings.set_active(listing_id, user['id'], True)
    except LISTING_ERRORS as e:
        raise listing_error_response(e)


__all__ = ['router', 'details_router']
