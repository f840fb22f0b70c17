from __future__ import annotations

"""Authentication and organisation resolution helpers."""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from src.app.settings import settings


@dataclass(frozen=True)
class AuthContext:
    """Resolved authentication context for the current request."""
    api_key: str | None
    org_id: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_api_key(request: Request) -> AuthContext:
    """Resolve the caller's organisation from an API key, or allow anonymous access."""
    api_key = _extract_api_key(request)
    key_map = settings.api_key_map
    if api_key is None:
        if settings.allow_anonymous:
            return AuthContext(api_key=None, org_id=settings.default_org_id)
        raise _unauthorized("API key required")
    org_id = key_map.get(api_key)
    if org_id is None:
        raise _unauthorized("Invalid or missing API key")
    return AuthContext(api_key=api_key, org_id=org_id)


def _extract_api_key(request: Request) -> str | None:
    """Extract API key from headers."""
    header_key = request.headers.get("x-api-key")
    if header_key:
        return header_key.strip()
    auth = request.headers.get("authorization")
    if not auth:
        return None
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None
