"""
Export Service — .env credential file and campaign CSV.
"""

import csv
import io
from datetime import date
from adwizard.services.campaign_service import CampaignRecord

ENV_FILENAME = ".env"

# Nested mapping; not representable as a CSV column
CSV_EXCLUDED_FIELDS = {"parsed_actions"}


def clean_account_id(account_id: str) -> str:
    """act_123 → 123. Ids without the prefix pass through."""
    return account_id.removeprefix("act_")


def build_env_content(app_id: str, app_secret: str, access_token: str, ad_account_id: str) -> str:
    return "\n".join([
        f"META_APP_ID={app_id}",
        f"META_APP_SECRET={app_secret}",
        f"META_ACCESS_TOKEN={access_token}",
        f"META_AD_ACCOUNT_ID={clean_account_id(ad_account_id)}",
    ])


def csv_columns() -> list[str]:
    return [f for f in CampaignRecord.model_fields if f not in CSV_EXCLUDED_FIELDS]


def campaigns_to_csv(records: list[CampaignRecord]) -> str:
    """
    Header row plus one row per campaign. Values with commas (or quotes,
    newlines) are double-quoted; None becomes an empty cell.
    """
    columns = csv_columns()
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        row = record.model_dump(exclude=CSV_EXCLUDED_FIELDS)
        writer.writerow(["" if row[c] is None else row[c] for c in columns])
    return buffer.getvalue()


def csv_filename(date_preset: str, on: date | None = None) -> str:
    on = on or date.today()
    return f"campaign_data_{date_preset}_{on.isoformat()}.csv"
