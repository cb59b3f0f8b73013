"""
API Dependencies
Shared dependencies for authentication, Supabase access and the call manager
"""
import os
from typing import Optional
from fastapi import Depends, HTTPException, status, Header
from supabase import create_client, Client
from pydantic import BaseModel
from dotenv import load_dotenv

from consult_call.domain.services.call_manager import CallClient, CallManager

load_dotenv()


class CurrentUser(BaseModel):
    """Current authenticated user model"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = "user"


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    supabase: Client = Depends(get_supabase)
) -> CurrentUser:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        authorization: Bearer token from Authorization header
        supabase: Supabase client

    Returns:
        CurrentUser with the display name from user_profiles

    Raises:
        HTTPException: If token is invalid or user not found
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]

    try:
        user_response = supabase.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        auth_user = user_response.user

        profile_response = supabase.table("user_profiles").select(
            "full_name, role"
        ).eq("id", auth_user.id).single().execute()

        profile = profile_response.data or {}
        return CurrentUser(
            id=str(auth_user.id),
            email=auth_user.email,
            name=profile.get("full_name"),
            role=profile.get("role") or "user",
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_call_manager() -> CallManager:
    """
    Raises:
        HTTPException: 503 if the call manager was not started
    """
    try:
        return await CallManager.get_instance()
    except RuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )


async def get_call_client(
    current_user: CurrentUser = Depends(get_current_user),
    manager: CallManager = Depends(get_call_manager),
) -> CallClient:
    """Call client for the authenticated user"""
    return await manager.get_client(current_user.id, current_user.name)
