"""
FastAPI dependencies shared by the wizard and campaign routers.
"""

from typing import Optional
import httpx
from fastapi import Depends, HTTPException

from adwizard.auth import get_session_id
from adwizard.config import get_settings
from adwizard.database import async_session
from adwizard.services.oauth_service import OAuthWizard
from adwizard.store import DatabaseSessionStore, SessionStore


def get_session_store() -> SessionStore:
    return DatabaseSessionStore(async_session)


def get_graph_transport() -> Optional[httpx.AsyncBaseTransport]:
    """httpx's default transport. Overridden in tests with httpx.MockTransport."""
    return None


async def get_wizard(
    session_id: str = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_graph_transport),
) -> OAuthWizard:
    return await OAuthWizard.load(store, session_id, get_settings(), transport)


def require_access_token(wizard: OAuthWizard = Depends(get_wizard)) -> OAuthWizard:
    if not wizard.state.access_token:
        raise HTTPException(status_code=409, detail="Complete the Facebook OAuth step first.")
    return wizard
