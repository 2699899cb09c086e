"""
Campaigns Router — extract campaign performance for the selected ad account,
return it as JSON or download it as CSV.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from adwizard.dependencies import require_access_token
from adwizard.routers.wizard import wizard_http_error
from adwizard.services.campaign_service import (
    DATE_PRESETS, DEFAULT_DATE_PRESET, InvalidDatePresetError, summarize_campaigns,
)
from adwizard.services.export_service import campaigns_to_csv, csv_filename
from adwizard.services.oauth_service import OAuthWizard, WizardError

logger = logging.getLogger(__name__)
router = APIRouter()


def _report(wizard: OAuthWizard) -> dict:
    records = wizard.state.campaign_data or []
    return {
        "account_id": wizard.state.selected_account_id,
        "date_preset": wizard.state.date_preset,
        "summary": summarize_campaigns(records),
        "campaigns": [r.model_dump() for r in records],
    }


@router.get("/date-presets")
async def list_date_presets():
    return {"date_presets": list(DATE_PRESETS), "default": DEFAULT_DATE_PRESET}


@router.post("/extract")
async def extract_campaigns(
    date_preset: str = Query(DEFAULT_DATE_PRESET),
    wizard: OAuthWizard = Depends(require_access_token),
):
    try:
        await wizard.extract_campaigns(date_preset)
    except (WizardError, InvalidDatePresetError) as e:
        raise wizard_http_error(e)
    return _report(wizard)


@router.get("")
async def get_campaigns(wizard: OAuthWizard = Depends(require_access_token)):
    return _report(wizard)


@router.get("/export.csv")
async def export_campaigns_csv(wizard: OAuthWizard = Depends(require_access_token)):
    records = wizard.state.campaign_data
    if not records:
        raise HTTPException(status_code=404, detail="No campaign data extracted yet.")
    filename = csv_filename(wizard.state.date_preset or DEFAULT_DATE_PRESET)
    return Response(
        campaigns_to_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
