"""User and session API endpoints."""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response, status, Depends
from pydantic import BaseModel, Field, field_validator

from auth import (
    manager, get_current_user, get_optional_user, set_session_cookie, public_user,
    AuthError, InvalidCredentialsError, EmailTakenError, InvalidPasswordError, MAX_PASSWORD_BYTES
)
from listings import ListingManager
from tools import ToolManager
from ..dependencies import get_listing_manager, get_tool_manager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/user",
    tags=["Users"]
)


class AddressRequest(BaseModel):
    """Postal address given at registration."""
    line_one: str = Field(..., min_length=1)
    line_two: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    """Request model for creating a user with their address."""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, pattern=r'^[^@\s]+@[^@\s]+$')
    password: str = Field(..., min_length=8)
    address: AddressRequest

    @field_validator('password')
    @classmethod
    def password_fits(cls, v: str) -> str:
        if len(v.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


async def resolve_user_id(user_id: str, user: Optional[Dict[str, Any]]) -> UUID:
    """Path user id, where 'me' means the logged in user."""
    if user_id == 'me':
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Login required"
            )
        return user['id']
    try:
        return UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )


async def existing_user_id(user_id: str, user: Optional[Dict[str, Any]]) -> UUID:
    """Like resolve_user_id, but 404 unless the user exists."""
    resolved = await resolve_user_id(user_id, user)
    if user_id != 'me' and not await manager.get_user(resolved):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    return resolved


@router.post("/new", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request, response: Response):
    """Create a user and log them in."""
    try:
        user = await manager.register(
            body.first_name,
            body.last_name,
            body.email,
            body.password,
            body.address.model_dump()
        )
        session = await manager.login(body.email, body.password, request)
    except EmailTakenError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )
    except InvalidPasswordError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except AuthError as e:
        logger.error(f"Registration failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )

    set_session_cookie(response, session['token'])
    return {"user": user, "token": session['token']}


@router.post("/login")
async def login(body: LoginRequest, request: Request, response: Response):
    """Check credentials and start a session."""
    try:
        session = await manager.login(body.email, body.password, request)
    except InvalidCredentialsError as e:
        set_session_cookie(response, None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    set_session_cookie(response, session['token'])
    return {
        "user": session['user'],
        "token": session['token'],
        "expires_at": session['expires_at']
    }


@router.post("/logout")
async def logout(response: Response, user: Dict[str, Any] = Depends(get_current_user)):
    """Revoke the session and clear the cookie."""
    try:
        await manager.logout(user['id'])
    except AuthError as e:
        logger.error(f"Logout failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Logout failed"
        )
    set_session_cookie(response, None)
    return {"success": True}


@router.get("")
async def list_users():
    """Public records of all active users."""
    return {"users": await manager.list_users()}


@router.get("/{user_id}")
async def get_user(user_id: str, current: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    """A user's public record. /user/me returns the full record of the logged in user."""
    if user_id == 'me':
        if current is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Login required"
            )
        return current

    user = await manager.get_user(await resolve_user_id(user_id, current))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    return public_user(user)


@router.get("/{user_id}/tools")
async def get_user_tools(
    user_id: str,
    current: Dict[str, Any] = Depends(get_current_user),
    tools: ToolManager = Depends(get_tool_manager)
):
    """Tools owned by a user."""
    owner_id = await existing_user_id(user_id, current)
    return {"tools": await tools.get_user_tools(owner_id)}


@router.get("/{user_id}/listings")
async def get_user_listings(
    user_id: str,
    current: Optional[Dict[str, Any]] = Depends(get_optional_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Active listings of a user's tools."""
    owner_id = await existing_user_id(user_id, current)
    return {"listings": await listings.get_user_listings(owner_id)}


__all__ = ['router']
