"""Tool maker and category lookup endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, status, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from auth import get_current_user
from listings import ListingManager, LookupKind
from ..dependencies import get_listing_manager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Lookups"]
)


class LookupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


def unknown_kind() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Not found", "results": None}
    )


def parse_kind(kind: str) -> Optional[LookupKind]:
    try:
        return LookupKind(kind)
    except ValueError:
        return None


@router.get("/search/{kind}")
async def search_lookup(
    kind: str,
    q: Optional[str] = Query(None, max_length=200),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Makers or categories whose name starts with the words in q."""
    lookup_kind = parse_kind(kind)
    if lookup_kind is None:
        return unknown_kind()
    return {"results": await listings.search_lookup(lookup_kind, q)}


@router.post("/create/{kind}", status_code=status.HTTP_201_CREATED)
async def create_lookup(
    kind: str,
    body: LookupCreateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Add a maker or category."""
    lookup_kind = parse_kind(kind)
    if lookup_kind is None:
        return unknown_kind()
    return {"result": await listings.create_lookup(lookup_kind, body.name.strip())}


__all__ = ['router']
