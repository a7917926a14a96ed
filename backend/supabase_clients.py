"""
Supabase clients for the two backing projects.

Solar project: schemas `solar` (leads) and `finances` (expenses, users,
user_preferences). ECO4 project: public.ECO4_Leads.

Clients are created lazily on first use and shared for the process.
"""

import logging
import os

logger = logging.getLogger(__name__)

_solar_client = None
_eco4_client = None


def _create(url_var: str, key_var: str):
    url = (os.environ.get(url_var) or "").strip()
    key = (os.environ.get(key_var) or "").strip()
    if not url or not key:
        raise RuntimeError(f"{url_var} and {key_var} environment variables are required")
    from supabase import create_client
    logger.info(f"Creating Supabase client for {url_var}")
    return create_client(url, key)


def get_solar_client():
    """Client for the Solar project (service key)."""
    global _solar_client
    if _solar_client is None:
        _solar_client = _create("SUPABASE_URL", "SUPABASE_SERVICE_KEY")
    return _solar_client


def get_eco4_client():
    """Client for the ECO4 project."""
    global _eco4_client
    if _eco4_client is None:
        _eco4_client = _create("ECO4_SUPABASE_URL", "ECO4_SUPABASE_KEY")
    return _eco4_client
