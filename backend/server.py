"""Solar & ECO4 Reporting Dashboard - Main Server"""
from fastapi import FastAPI, APIRouter, HTTPException, Depends, Header, Query
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from access_policy import AccessDeniedError, Role
from auth_service import verify_token, TokenData
from business_line import (
    BusinessLine, PreferenceStore, SupabasePreferenceStore,
    recall_business_line, remember_business_line,
)
from dashboard import ADMIN_VIEWS, VIEW_LOADERS, FilterState
from metrics.models import UserProfile
from sources import create_source
from supabase_clients import get_solar_client
from user_directory import ProfileNotFoundError, fetch_all_reps, resolve_profile

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Solar & ECO4 Reporting Dashboard")
api_router = APIRouter(prefix="/api")


# ============ Pydantic Models ============

class BusinessLinePreference(BaseModel):
    business_line: str


# ============ Dependencies ============

def get_directory_client():
    """Client for the finances schema (users, preferences)."""
    return get_solar_client()


def get_preference_store(client=Depends(get_directory_client)) -> PreferenceStore:
    return SupabasePreferenceStore(client)


def get_source_factory():
    return create_source


async def get_current_user(authorization: Optional[str] = Header(None)) -> TokenData:
    """Verify JWT token and return current user data"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise HTTPException(status_code=401, detail="Invalid authentication scheme")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    token_data = verify_token(token)
    if not token_data:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return token_data


async def get_current_profile(
    current_user: TokenData = Depends(get_current_user),
    client=Depends(get_directory_client),
) -> UserProfile:
    """Dashboard profile for the signed-in user"""
    try:
        return await resolve_profile(client, current_user.email)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=403, detail=str(e))


def _require_admin(profile: UserProfile):
    if profile.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")


def _filter_state(
    business: str,
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    rep: Optional[str],
) -> FilterState:
    if not BusinessLine.is_valid(business):
        raise HTTPException(status_code=400, detail=f"Unknown business line: {business}")
    state = FilterState(
        business_line=business,
        period=period or BusinessLine.default_period(business),
        custom_start=start,
        custom_end=end,
        target_name=rep,
    )
    try:
        state.date_range()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return state


# ============ Profile Endpoints ============

@api_router.get("/me")
async def get_me(profile: UserProfile = Depends(get_current_profile)):
    return profile


@api_router.get("/reps")
async def list_reps(
    profile: UserProfile = Depends(get_current_profile),
    client=Depends(get_directory_client),
):
    """Field-rep names for the admin rep filter"""
    _require_admin(profile)
    try:
        return {"reps": await fetch_all_reps(client)}
    except Exception as e:
        logger.error(f"Failed to list reps: {e}")
        raise HTTPException(status_code=502, detail="Failed to load reps")


@api_router.get("/preferences/business-line")
async def get_business_line(
    profile: UserProfile = Depends(get_current_profile),
    store: PreferenceStore = Depends(get_preference_store),
):
    return {"business_line": await recall_business_line(store, profile.id)}


@api_router.put("/preferences/business-line")
async def set_business_line(
    request: BusinessLinePreference,
    profile: UserProfile = Depends(get_current_profile),
    store: PreferenceStore = Depends(get_preference_store),
):
    try:
        line = await remember_business_line(store, profile.id, request.business_line)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to save business-line preference for {profile.id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to save preference")
    return {"business_line": line}


# ============ Dashboard Endpoints ============

@api_router.get("/{business}/leads")
async def get_leads(
    business: str,
    period: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    rep: Optional[str] = Query(None),
    profile: UserProfile = Depends(get_current_profile),
    source_factory=Depends(get_source_factory),
):
    state = _filter_state(business, period, start, end, rep)
    source = source_factory(business)
    target = rep if profile.role == Role.ADMIN else None
    try:
        leads = await source.fetch_leads(profile, state.date_range(), target)
    except AccessDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"Lead fetch failed for {business}: {e}")
        raise HTTPException(status_code=502, detail="Failed to load leads")
    return {"leads": leads, "count": len(leads)}


@api_router.get("/{business}/views/{view}")
async def get_view(
    business: str,
    view: str,
    period: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    rep: Optional[str] = Query(None),
    profile: UserProfile = Depends(get_current_profile),
    source_factory=Depends(get_source_factory),
):
    loader = VIEW_LOADERS.get(view)
    if loader is None:
        raise HTTPException(status_code=404, detail=f"Unknown view: {view}")
    if view in ADMIN_VIEWS:
        _require_admin(profile)

    state = _filter_state(business, period, start, end, rep)
    source = source_factory(business)
    try:
        data = await loader(source, profile, state)
    except AccessDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error(f"View '{view}' failed for {business}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to load {view} view")

    return {
        "business_line": state.business_line,
        "period": state.period,
        **data,
    }


@api_router.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
