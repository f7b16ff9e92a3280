"""
API Dependencies

Common dependencies for route handlers.
"""

from functools import lru_cache

from fastapi import Header, HTTPException, Request
from supabase import Client, create_client

from prodassist.core.config import get_settings
from prodassist.core.exceptions import SessionError
from prodassist.core.logging_config import get_logger
from prodassist.session.arc_session import ArcSession, SessionManager

logger = get_logger("api.deps")


@lru_cache()
def get_supabase_auth_client() -> Client:
    """Supabase client used to validate access tokens."""
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_anon_key)


async def get_current_user_id(request: Request, authorization: str = Header(...)) -> str:
    """Extract and validate the caller's user id from the authorization header."""
    try:
        if not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Invalid token format")

        token = authorization.replace("Bearer ", "", 1).strip()
        if not token:
            raise HTTPException(status_code=401, detail="Invalid token")

        # The in-memory backend has no auth service; the token is the user id
        if request.app.state.settings.store_backend == "memory":
            return token

        response = get_supabase_auth_client().auth.get_user(token)
        if not response or not response.user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Auth error: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed")


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def require_session(manager: SessionManager, arc_id: str) -> ArcSession:
    """Look up an open session or answer 404."""
    session = manager.get(arc_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No open session for arc {arc_id}")
    return session


def require_ready(session: ArcSession) -> ArcSession:
    """Answer 409 while the session is still loading (or failed to load)."""
    try:
        session.ensure_ready()
    except SessionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return session
