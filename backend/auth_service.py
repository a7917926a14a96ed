"""Authentication Service: verifies Supabase Auth access tokens (JWT)"""
import os
import logging
from datetime import datetime, timezone
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv
import jwt
from pydantic import BaseModel

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


def _jwt_secret() -> str:
    secret = (os.environ.get('SUPABASE_JWT_SECRET') or '').strip()
    if not secret:
        raise RuntimeError("SUPABASE_JWT_SECRET environment variable is required")
    return secret


class TokenData(BaseModel):
    user_id: str
    email: str
    exp: datetime


def verify_token(token: str) -> Optional[TokenData]:
    """Verify and decode a Supabase access token"""
    try:
        payload = jwt.decode(
            token,
            _jwt_secret(),
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
        )
        email = payload.get("email")
        if not email:
            logger.warning("Token has no email claim")
            return None
        return TokenData(
            user_id=payload["sub"],
            email=email,
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except (jwt.InvalidTokenError, KeyError) as e:
        logger.warning(f"Invalid token: {str(e)}")
        return None
