"""
Supabase access for the quiz backend: auth lookups and the profiles table
"""
import os
from functools import lru_cache
from typing import Any, Dict, Optional

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()
load_dotenv('../.env')

PROFILE_COLUMNS = "id, role, full_name"


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Service-role client; profiles are read regardless of row-level policies."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")
    return create_client(url, key)


def fetch_profile(user_id: str) -> Optional[Dict[str, Any]]:
    """Return the caller's profile row, or None when the user has no profile."""
    response = (
        get_supabase_client()
        .table("profiles")
        .select(PROFILE_COLUMNS)
        .eq("id", user_id)
        .maybe_single()
        .execute()
    )
    # maybe_single() yields None instead of raising on zero rows
    return response.data if response else None
