"""
FastAPI router for caller authentication.
Verifies Supabase Auth bearer tokens; the Supabase user id is the tenant id.
"""

import httpx
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.config import settings
from app.integrations.ebay.errors import Unauthorized

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def fetch_supabase_user(token: str) -> dict:
    """
    Resolve a Supabase access token to its user record.

    Raises:
        Unauthorized: Token rejected by Supabase or the auth endpoint unreachable
    """
    auth_url = f"{settings.supabase_url}/auth/v1/user"
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": settings.supabase_service_key,
    }
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(auth_url, headers=headers, timeout=10.0)
    except httpx.HTTPError as e:
        logger.error("HTTP error during token verification", error=str(e))
        raise Unauthorized("Token verification failed") from e

    if response.status_code != 200:
        raise Unauthorized("Invalid or expired token")
    user_data = response.json()
    if not user_data or not user_data.get("id"):
        raise Unauthorized("Invalid token payload")
    return user_data


async def verify_token(authorization: str | None = Header(None)) -> dict:
    """
    Verify Supabase JWT token from Authorization header.

    Args:
        authorization: Authorization header value (Bearer <token>)

    Returns:
        Caller data; tenant_id is the Supabase user id

    Raises:
        HTTPException: If token is invalid or missing
    """
    if not authorization:
        raise _unauthorized("Authorization header is required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid authorization header format")

    try:
        user_data = await fetch_supabase_user(parts[1])
    except Unauthorized as e:
        raise _unauthorized(str(e)) from e

    return {
        "tenant_id": user_data["id"],
        "email": user_data.get("email"),
    }


@router.get("/me")
async def get_current_user(user_data: dict = Depends(verify_token)):
    """
    Get current authenticated caller information.
    """
    return {
        "tenant_id": user_data["tenant_id"],
        "email": user_data["email"],
    }
