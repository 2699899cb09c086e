"""
Campaign Service — Extract campaign metadata and performance for one ad account.

Two phases:
  1. act_{id}/campaigns — static fields, every record starts with zeroed metrics
  2. act_{id}/insights at campaign level for a date preset, merged by campaign id

Phase 1 failing is fatal. Phase 2 failing is logged and the metadata-only
records are returned (paused or never-run campaigns have no insights anyway).
"""

import logging
from typing import Any, Optional
from pydantic import BaseModel, Field
from adwizard.graph_client import GraphAPIClient, GraphAPIError
from adwizard.utils import utcnow_iso, to_int, to_float

logger = logging.getLogger(__name__)

DATE_PRESETS = (
    "today", "yesterday", "last_3d", "this_week", "last_week",
    "last_7d", "last_14d", "last_30d", "this_month", "last_month", "last_90d",
)
DEFAULT_DATE_PRESET = "last_30d"

CAMPAIGN_FIELDS = (
    "id", "name", "objective", "status",
    "created_time", "updated_time", "start_time", "stop_time",
    "daily_budget", "lifetime_budget", "budget_remaining",
)

INSIGHT_FIELDS = (
    "campaign_id", "impressions", "reach", "clicks",
    "cpc", "cpm", "ctr", "spend", "actions",
)

INSIGHTS_LIMIT = 1000


class InvalidDatePresetError(ValueError):
    pass


class CampaignRecord(BaseModel):
    """One campaign row. Field order is the CSV column order."""
    id: str
    name: Optional[str] = None
    objective: Optional[str] = None
    status: Optional[str] = None
    created_time: Optional[str] = None
    updated_time: Optional[str] = None
    start_time: Optional[str] = None
    stop_time: Optional[str] = None
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None
    budget_remaining: Optional[str] = None
    campaign_id: str
    campaign_name: Optional[str] = None
    account_id: str
    extracted_at: str
    date_preset: str
    impressions: int = 0
    reach: int = 0
    clicks: int = 0
    cpc: float = 0.0
    cpm: float = 0.0
    ctr: float = 0.0
    spend: float = 0.0
    cost_per_conversion: float = 0.0
    parsed_actions: dict[str, float] = Field(default_factory=dict)


def validate_date_preset(date_preset: str) -> str:
    if date_preset not in DATE_PRESETS:
        raise InvalidDatePresetError(
            f"Unsupported date preset: {date_preset!r}. Use one of: {', '.join(DATE_PRESETS)}"
        )
    return date_preset


def parse_actions(actions: Any) -> dict[str, float]:
    """Flatten [{action_type, value}, ...] into {action_type: value}; later duplicates win."""
    if not isinstance(actions, list):
        return {}
    parsed = {}
    for action in actions:
        if not isinstance(action, dict):
            continue
        action_type = action.get("action_type") or "unknown"
        parsed[action_type] = to_float(action.get("value"))
    return parsed


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def build_campaign_record(raw: dict, account_id: str, date_preset: str, extracted_at: str) -> CampaignRecord:
    static = {field: _str_or_none(raw.get(field)) for field in CAMPAIGN_FIELDS if field != "id"}
    return CampaignRecord(
        id=str(raw["id"]),
        **static,
        campaign_id=str(raw["id"]),
        campaign_name=static["name"],
        account_id=account_id,
        extracted_at=extracted_at,
        date_preset=date_preset,
    )


def merge_insights(records: list[CampaignRecord], insights: list[dict]) -> list[CampaignRecord]:
    """
    Overwrite the metrics of every record that has a matching insight row.
    Records without a row keep their zeroed metrics.
    """
    by_campaign = {}
    for insight in insights:
        campaign_id = insight.get("campaign_id")
        if campaign_id:
            by_campaign[str(campaign_id)] = insight

    for record in records:
        insight = by_campaign.get(record.id)
        if insight is None:
            continue
        record.impressions = to_int(insight.get("impressions"))
        record.reach = to_int(insight.get("reach"))
        record.clicks = to_int(insight.get("clicks"))
        record.cpc = to_float(insight.get("cpc"))
        record.cpm = to_float(insight.get("cpm"))
        record.ctr = to_float(insight.get("ctr"))
        record.spend = to_float(insight.get("spend"))
        if insight.get("actions"):
            record.parsed_actions = parse_actions(insight["actions"])
    return records


async def extract_campaign_data(
    client: GraphAPIClient,
    ad_account_id: str,
    date_preset: str = DEFAULT_DATE_PRESET,
) -> list[CampaignRecord]:
    """Fetch campaigns for act_{ad_account_id} and merge campaign-level insights."""
    validate_date_preset(date_preset)
    clean_id = ad_account_id.removeprefix("act_")
    account_ref = f"act_{clean_id}"

    raw_campaigns = await client.get_data(
        f"{account_ref}/campaigns", {"fields": ",".join(CAMPAIGN_FIELDS)}
    )
    logger.info(f"Found {len(raw_campaigns)} campaigns in {account_ref}")

    extracted_at = utcnow_iso()
    records = [
        build_campaign_record(c, account_ref, date_preset, extracted_at)
        for c in raw_campaigns if c.get("id")
    ]

    if records:
        try:
            insights = await client.get_data(
                f"{account_ref}/insights",
                {
                    "fields": ",".join(INSIGHT_FIELDS),
                    "date_preset": date_preset,
                    "level": "campaign",
                    "limit": str(INSIGHTS_LIMIT),
                },
            )
            logger.info(f"Found insights for {len(insights)} campaigns ({date_preset})")
            merge_insights(records, insights)
        except GraphAPIError as e:
            logger.warning(f"Could not fetch insights for {account_ref} (normal for paused/new campaigns): {e}")

    logger.info(f"Extracted {len(records)} campaign records from {account_ref}")
    return records


def summarize_campaigns(records: list[CampaignRecord]) -> dict:
    """Totals shown above the campaign table."""
    return {
        "campaign_count": len(records),
        "total_spend": round(sum(r.spend for r in records), 2),
        "total_impressions": sum(r.impressions for r in records),
        "total_clicks": sum(r.clicks for r in records),
    }
