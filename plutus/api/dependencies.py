"""
API Dependencies

Engine lookup and admin authorization.
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from plutus.config import Settings, get_settings
from plutus.services.engine import PlutusEngine


def get_engine(request: Request) -> PlutusEngine:
    """Engine created by the application lifespan."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized",
        )
    return engine


async def require_admin(
    x_admin_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard admin routes with the X-Admin-Key header when a key is configured."""
    if not settings.admin_api_key:
        return
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )
