"""Tools API endpoints."""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Depends, Form, File, UploadFile

from auth import get_current_user, get_optional_user
from listings import ListingManager
from tools import (
    ToolManager, ToolNotFoundError, ToolPermissionError, ToolHasActiveListingsError,
    ToolLookupNotFoundError
)
from uploads import UploadStore, UploadError, UploadTooLargeError
from ..dependencies import get_listing_manager, get_tool_manager, get_upload_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/tools",
    tags=["Tools"]
)


def tool_error_response(e: Exception) -> HTTPException:
    """Map a tool error to an HTTP error."""
    if isinstance(e, ToolNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ToolPermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ToolHasActiveListingsError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ToolLookupNotFoundError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, UploadTooLargeError):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    logger.error(f"Tool request failed: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Tool request failed"
    )


async def store_manual(
    store: UploadStore,
    manual: Optional[UploadFile],
    user_id: UUID
) -> Optional[UUID]:
    if manual is None or not manual.filename:
        return None
    record = await store.save(manual, user_id)
    return record['id']


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tool(
    name: str = Form(..., min_length=1),
    description: Optional[str] = Form(None),
    tool_category_id: Optional[UUID] = Form(None),
    tool_maker_id: Optional[UUID] = Form(None),
    manual: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    tools: ToolManager = Depends(get_tool_manager),
    store: UploadStore = Depends(get_upload_store)
):
    """Create a tool, optionally with its manual."""
    try:
        # The manual is only stored once the references are known to be good
        await tools.check_lookups(tool_category_id, tool_maker_id)
        manual_file_id = await store_manual(store, manual, user['id'])
        return await tools.create_tool(
            user['id'],
            name,
            description,
            tool_category_id,
            tool_maker_id,
            manual_file_id
        )
    except (ToolLookupNotFoundError, UploadError) as e:
        raise tool_error_response(e)


@router.get("/{tool_id}")
async def get_tool(
    tool_id: UUID,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    tools: ToolManager = Depends(get_tool_manager),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Get a tool with its category, maker and manual.

    The owner also gets every listing of the tool, paused ones included.
    """
    try:
        tool = await tools.get_tool(tool_id)
    except ToolNotFoundError as e:
        raise tool_error_response(e)

    if user is not None and tool['owner_id'] == user['id']:
        tool['listings'] = await listings.get_tool_listings(tool_id)
    return tool


@router.patch("/{tool_id}")
async def update_tool(
    tool_id: UUID,
    name: str = Form(..., min_length=1),
    description: Optional[str] = Form(None),
    tool_category_id: Optional[UUID] = Form(None),
    tool_maker_id: Optional[UUID] = Form(None),
    manual: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    tools: ToolManager = Depends(get_tool_manager),
    store: UploadStore = Depends(get_upload_store)
):
    """Edit a tool. Only its owner may do this."""
    try:
        # Check ownership and references before storing anything
        existing = await tools.get_tool(tool_id)
        if existing['owner_id'] != user['id']:
            raise ToolPermissionError("You are not authorized to edit this tool.")
        await tools.check_lookups(tool_category_id, tool_maker_id)

        manual_file_id = await store_manual(store, manual, user['id'])
        return await tools.update_tool(
            tool_id,
            user['id'],
            name,
            description,
            tool_category_id,
            tool_maker_id,
            manual_file_id
        )
    except (ToolNotFoundError, ToolPermissionError, ToolLookupNotFoundError, UploadError) as e:
        raise tool_error_response(e)


@router.delete("/{tool_id}")
async def delete_tool(
    tool_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    tools: ToolManager = Depends(get_tool_manager)
):
    """Delete a tool that has no active listings."""
    try:
        await tools.delete_tool(tool_id, user['id'])
        return {"success": True}
    except (ToolNotFoundError, ToolPermissionError, ToolHasActiveListingsError) as e:
        raise tool_error_response(e)


__all__ = ['router']
