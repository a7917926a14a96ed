"""
User directory (finances.users).
Maps an authenticated email to the dashboard profile that drives access scoping.
"""

import asyncio
import logging
from typing import Optional

from access_policy import Role
from metrics.models import UserProfile

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """No dashboard profile exists for the authenticated email."""


def _users(client):
    return client.schema("finances").table("users")


async def fetch_user_profile(client, email: str) -> Optional[UserProfile]:
    """Exact-email lookup; None when no row matches."""
    if not email:
        return None
    result = await asyncio.to_thread(lambda: (
        _users(client)
        .select("id, email, name, role")
        .eq("email", email)
        .limit(1)
        .execute()
    ))
    rows = result.data or []
    if not rows:
        return None
    row = rows[0]
    return UserProfile(
        id=str(row.get("id")),
        email=row.get("email") or email,
        name=row.get("name") or "",
        role=row.get("role") or "",
    )


async def resolve_profile(client, email: str) -> UserProfile:
    """
    Raises:
        ProfileNotFoundError: the email has no profile; the caller should sign out.
    """
    profile = await fetch_user_profile(client, email)
    if profile is None:
        logger.warning(f"No dashboard profile for {email}")
        raise ProfileNotFoundError(
            "User profile not found. Please contact admin to set up your account."
        )
    return profile


async def fetch_all_reps(client) -> list[str]:
    """Display names of every field rep, alphabetical."""
    result = await asyncio.to_thread(lambda: (
        _users(client)
        .select("name")
        .eq("role", Role.FIELD_REP)
        .order("name")
        .execute()
    ))
    return [r["name"] for r in (result.data or []) if r.get("name")]
