"""
Business-line tags and the remembered selection.

Plain class constants (not Enum) so values travel as bare strings through
query params and preference rows.

The active line is always passed explicitly into every source call; the
only persistence is an externally owned key-value PreferenceStore that
remembers the user's last choice.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from date_ranges import Period

logger = logging.getLogger(__name__)

PREFERENCE_KEY = "active_business"


class BusinessLine:
    SOLAR = "solar"
    ECO4 = "eco4"

    ALL = frozenset({SOLAR, ECO4})
    DEFAULT = SOLAR

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls.ALL

    @classmethod
    def default_period(cls, line: str) -> str:
        """ECO4 views open on all-time data, Solar views on the current year."""
        return Period.ALL_TIME if line == cls.ECO4 else Period.THIS_YEAR


class PreferenceStore(ABC):
    """Key-value persistence for per-user UI preferences."""

    @abstractmethod
    async def get(self, user_id: str, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, user_id: str, key: str, value: str) -> None:
        """Store (insert or overwrite) a value."""


class SupabasePreferenceStore(PreferenceStore):
    """Preferences in finances.user_preferences (user_id, key, value)."""

    def __init__(self, client):
        self.client = client

    def _table(self):
        return self.client.schema("finances").table("user_preferences")

    async def get(self, user_id: str, key: str) -> Optional[str]:
        result = await asyncio.to_thread(lambda: (
            self._table()
            .select("value")
            .eq("user_id", user_id)
            .eq("key", key)
            .limit(1)
            .execute()
        ))
        rows = result.data or []
        return rows[0].get("value") if rows else None

    async def set(self, user_id: str, key: str, value: str) -> None:
        await asyncio.to_thread(lambda: (
            self._table()
            .upsert({"user_id": user_id, "key": key, "value": value},
                    on_conflict="user_id,key")
            .execute()
        ))


async def recall_business_line(store: PreferenceStore, user_id: str) -> str:
    """Last remembered line for this user; falls back to Solar."""
    try:
        saved = await store.get(user_id, PREFERENCE_KEY)
    except Exception as e:
        logger.warning(f"Failed to load business-line preference for {user_id}: {e}")
        return BusinessLine.DEFAULT
    return saved if saved and BusinessLine.is_valid(saved) else BusinessLine.DEFAULT


async def remember_business_line(store: PreferenceStore, user_id: str, line: str) -> str:
    if not BusinessLine.is_valid(line):
        raise ValueError(f"Unknown business line: {line}")
    await store.set(user_id, PREFERENCE_KEY, line)
    return line
