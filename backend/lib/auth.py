"""
Authentication utilities: bearer token validation and role lookup
"""
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import HTTPException, Header
from jose import JWTError, jwt

from .logger import get_logger
from .supabase_client import fetch_profile, get_supabase_client

load_dotenv()
load_dotenv('../.env')

logger = get_logger("backend.auth")

# Supabase signs access tokens with the project's JWT secret
JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"

ROLES = ("student", "lecturer")


def _user_id_from_token(token: str) -> str:
    """Resolve the user id from an access token, locally when the secret is known."""
    if JWT_SECRET:
        try:
            claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE)
        except JWTError as e:
            raise HTTPException(status_code=401, detail="Invalid or expired token") from e
        user_id = claims.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Token has no subject")
        return user_id

    user_response = get_supabase_client().auth.get_user(token)
    if not user_response or not user_response.user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_response.user.id


async def get_current_user(authorization: Optional[str] = Header(None)):
    """
    Validate the bearer token and return the caller with their role.

    Returns:
        dict: id, role ("student" or "lecturer") and full_name

    Raises:
        HTTPException: 401 for missing/invalid tokens, 404 without a profile
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization[len("Bearer "):]

    try:
        user_id = _user_id_from_token(token)
        profile = fetch_profile(user_id)
        if not profile:
            raise HTTPException(status_code=404, detail="User profile not found")

        role = profile.get("role", "student")
        return {
            "id": user_id,
            "role": role if role in ROLES else "student",
            "full_name": profile.get("full_name"),
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Auth error", error=e)
        raise HTTPException(status_code=401, detail="Could not validate credentials")


def require_lecturer(user: dict):
    """Raise 403 unless the caller is a lecturer."""
    if user.get("role") != "lecturer":
        raise HTTPException(status_code=403, detail="Lecturer access required")
