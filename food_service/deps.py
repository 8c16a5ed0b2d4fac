"""Request-scoped dependencies.

Identity comes from the upstream gateway as headers; this service trusts them.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from food_service.config import DEFAULT_LOCALE

SUPPORTED_LOCALES = ("en", "ja")


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(None),
) -> int:
    if (x_user_role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id


def resolve_locale(accept_language: Optional[str]) -> str:
    """Pick the first supported language tag, e.g. ``ja-JP,ja;q=0.9`` gives ``ja``."""
    for part in (accept_language or "").split(","):
        tag = part.split(";")[0].strip().lower()
        primary = tag.split("-")[0]
        if primary in SUPPORTED_LOCALES:
            return primary
    return DEFAULT_LOCALE


async def get_locale(accept_language: Optional[str] = Header(None)) -> str:
    return resolve_locale(accept_language)


def get_cache(request: Request):
    return getattr(request.app.state, "cache", None)
