"""
User Directory Tests
====================
Verifies exact-email profile lookup, the not-found error, and rep listing.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_directory import ProfileNotFoundError, fetch_all_reps, fetch_user_profile, resolve_profile
from fake_supabase import FakeSupabase


def _client():
    return FakeSupabase({"finances.users": [
        {"id": 1, "email": "alice@example.com", "name": "Alice", "role": "field_rep"},
        {"id": 2, "email": "zed@example.com", "name": "Zed", "role": "field_rep"},
        {"id": 3, "email": "mia@example.com", "name": "Mia", "role": "account_manager"},
        {"id": 4, "email": "boss@example.com", "name": "Boss", "role": "admin"},
        {"id": 5, "email": "ghost@example.com", "name": None, "role": "field_rep"},
    ]})


class TestProfiles:

    @pytest.mark.asyncio
    async def test_exact_email_match(self):
        profile = await fetch_user_profile(_client(), "alice@example.com")
        assert profile.id == "1"
        assert profile.role == "field_rep"
        assert profile.name == "Alice"

    @pytest.mark.asyncio
    async def test_no_partial_or_case_folded_match(self):
        assert await fetch_user_profile(_client(), "ALICE@example.com") is None
        assert await fetch_user_profile(_client(), "") is None

    @pytest.mark.asyncio
    async def test_resolve_raises_when_missing(self):
        with pytest.raises(ProfileNotFoundError):
            await resolve_profile(_client(), "nobody@example.com")

    @pytest.mark.asyncio
    async def test_missing_name_becomes_empty(self):
        profile = await resolve_profile(_client(), "ghost@example.com")
        assert profile.name == ""


class TestReps:

    @pytest.mark.asyncio
    async def test_lists_named_field_reps_alphabetically(self):
        assert await fetch_all_reps(_client()) == ["Alice", "Zed"]
