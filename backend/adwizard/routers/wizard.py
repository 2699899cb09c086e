"""
Wizard Router — credentials, Facebook OAuth redirect/callback, ad-account
selection and the .env download.
State lives in the session store; every endpoint reloads it from there.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel
from typing import Optional
from adwizard.dependencies import get_wizard
from adwizard.services.campaign_service import InvalidDatePresetError
from adwizard.services.export_service import ENV_FILENAME
from adwizard.services.oauth_service import (
    OAuthWizard, WizardStep, WizardError,
    CredentialsRequiredError, InvalidTransitionError, UnknownAccountError,
    CampaignExtractionError,
)

logger = logging.getLogger(__name__)

router = APIRouter()
callback_router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class CredentialsSubmit(BaseModel):
    app_id: str = ""
    app_secret: str = ""


# ── Helpers ───────────────────────────────────────────────────────────
def wizard_http_error(exc: Exception) -> HTTPException:
    """Map wizard errors onto HTTP status codes."""
    if isinstance(exc, (CredentialsRequiredError, InvalidDatePresetError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UnknownAccountError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, CampaignExtractionError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _wizard_view(wizard: OAuthWizard) -> dict:
    """Session state safe to hand to the browser (no secret, no token)."""
    s = wizard.state
    view = {
        "step": s.step.value,
        "error": s.error,
        "app_id": s.app_id,
        "has_app_secret": bool(s.app_secret),
        "has_access_token": bool(s.access_token),
        "ad_accounts": [a.model_dump() for a in s.ad_accounts or []],
        "selected_account_id": s.selected_account_id,
        "redirect_uri": wizard.redirect_uri,
        "oauth_scope": wizard.settings.oauth_scope.split(","),
    }
    if s.step == WizardStep.COMPLETE:
        view["env_content"] = wizard.env_file_content()
    return view


# ── Endpoints ────────────────────────────────────────────────────────
@router.get("")
async def get_wizard_state(wizard: OAuthWizard = Depends(get_wizard)):
    return _wizard_view(wizard)


@router.post("/credentials")
async def submit_credentials(payload: CredentialsSubmit, wizard: OAuthWizard = Depends(get_wizard)):
    try:
        await wizard.submit_credentials(payload.app_id, payload.app_secret)
    except WizardError as e:
        raise wizard_http_error(e)
    return _wizard_view(wizard)


@router.get("/authorize")
async def authorize(wizard: OAuthWizard = Depends(get_wizard)):
    """Send the user agent to the Facebook OAuth dialog."""
    try:
        url = await wizard.begin_authorization()
    except WizardError as e:
        raise wizard_http_error(e)
    return RedirectResponse(url, status_code=302)


@router.post("/accounts/{account_id}/select")
async def select_account(account_id: str, wizard: OAuthWizard = Depends(get_wizard)):
    try:
        await wizard.select_account(account_id)
    except WizardError as e:
        raise wizard_http_error(e)
    return _wizard_view(wizard)


@router.post("/accounts/{account_id}/extractor")
async def open_extractor(account_id: str, wizard: OAuthWizard = Depends(get_wizard)):
    try:
        await wizard.open_extractor(account_id)
    except WizardError as e:
        raise wizard_http_error(e)
    return _wizard_view(wizard)


@router.get("/env")
async def download_env_file(wizard: OAuthWizard = Depends(get_wizard)):
    try:
        content = wizard.env_file_content()
    except WizardError as e:
        raise wizard_http_error(e)
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{ENV_FILENAME}"'},
    )


@router.post("/reset")
async def reset_wizard(wizard: OAuthWizard = Depends(get_wizard)):
    await wizard.reset()
    return _wizard_view(wizard)


# ── OAuth redirect target (registered in the Facebook app) ────────────
@callback_router.get("/oauth-callback", include_in_schema=False)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    wizard: OAuthWizard = Depends(get_wizard),
):
    """
    Consume code/state/error once, then redirect to the bare app URL so a
    refresh does not replay the query string.
    """
    outcome = await wizard.handle_callback(code=code, state=state, error=error)
    logger.info(f"OAuth callback handled: {outcome.value} (step now {wizard.state.step.value})")
    return RedirectResponse("/", status_code=303)
