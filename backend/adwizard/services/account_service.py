"""
Account Service — Discover the ad accounts an access token can reach.
Personal accounts come from /me/adaccounts; business-owned accounts come from
each business in /me/businesses. Results are labelled by provenance and
deduplicated by account id.
"""

import asyncio
import logging
from typing import Optional
from pydantic import BaseModel
from adwizard.graph_client import GraphAPIClient, GraphAPIError

logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = "id,name,account_status,currency"

# Graph API reports sandbox ad accounts with this account_status
SANDBOX_ACCOUNT_STATUS = 999

PERSONAL_SOURCE = "Personal Account"
BUSINESS_SOURCE = "Business Portfolio"
SANDBOX_SOURCE = "Sandbox Account"


class AdAccount(BaseModel):
    id: str
    name: Optional[str] = None
    account_status: Optional[int] = None
    currency: Optional[str] = None
    source: str
    business_name: Optional[str] = None
    business_id: Optional[str] = None

    @property
    def is_sandbox(self) -> bool:
        return self.account_status == SANDBOX_ACCOUNT_STATUS


def _label_personal(raw: dict) -> AdAccount:
    sandbox = raw.get("account_status") == SANDBOX_ACCOUNT_STATUS
    label = SANDBOX_SOURCE if sandbox else PERSONAL_SOURCE
    return AdAccount(
        id=str(raw["id"]),
        name=raw.get("name"),
        account_status=raw.get("account_status"),
        currency=raw.get("currency"),
        source=label,
        business_name=label,
    )


def _label_business(raw: dict, business: dict) -> AdAccount:
    sandbox = raw.get("account_status") == SANDBOX_ACCOUNT_STATUS
    return AdAccount(
        id=str(raw["id"]),
        name=raw.get("name"),
        account_status=raw.get("account_status"),
        currency=raw.get("currency"),
        source=SANDBOX_SOURCE if sandbox else BUSINESS_SOURCE,
        business_name=SANDBOX_SOURCE if sandbox else business.get("name"),
        business_id=str(business.get("id")),
    )


async def fetch_personal_accounts(client: GraphAPIClient) -> list[AdAccount]:
    """Ad accounts attached to the user directly. Failure propagates."""
    try:
        raw_accounts = await client.get_data("me/adaccounts", {"fields": ACCOUNT_FIELDS})
    except GraphAPIError as e:
        raise GraphAPIError(
            f"Failed to fetch personal ad accounts: {e}",
            status_code=e.status_code,
            body=e.body,
        ) from e
    return [_label_personal(a) for a in raw_accounts if a.get("id")]


async def fetch_business_accounts(client: GraphAPIClient) -> list[AdAccount]:
    """
    Ad accounts owned by the user's businesses, one lookup per business in order.
    Any failure here is logged and skipped; partial results are fine.
    """
    try:
        businesses = await client.get_data("me/businesses", {"fields": "id,name"})
    except GraphAPIError as e:
        logger.warning(f"Could not fetch business accounts: {e}")
        return []

    accounts: list[AdAccount] = []
    for business in businesses:
        business_id = business.get("id")
        if not business_id:
            continue
        try:
            raw_accounts = await client.get_data(
                f"{business_id}/owned_ad_accounts", {"fields": ACCOUNT_FIELDS}
            )
        except GraphAPIError as e:
            logger.warning(f"Could not fetch ad accounts for business {business.get('name')}: {e}")
            continue
        accounts.extend(_label_business(a, business) for a in raw_accounts if a.get("id"))

    logger.info(f"Found {len(accounts)} business-owned ad accounts across {len(businesses)} businesses")
    return accounts


def dedupe_accounts(accounts: list[AdAccount]) -> list[AdAccount]:
    """Keep the first account seen for each id, preserving order."""
    seen: set[str] = set()
    unique = []
    for account in accounts:
        if account.id in seen:
            continue
        seen.add(account.id)
        unique.append(account)
    return unique


async def discover_ad_accounts(client: GraphAPIClient) -> list[AdAccount]:
    """
    Personal and business discovery run concurrently; the merged list is
    personal-then-business, deduplicated by id.
    """
    personal, business = await asyncio.gather(
        fetch_personal_accounts(client),
        fetch_business_accounts(client),
        return_exceptions=True,
    )
    # Business failures are already absorbed; only the personal path can raise
    if isinstance(personal, BaseException):
        raise personal
    if isinstance(business, BaseException):
        raise business
    accounts = dedupe_accounts(personal + business)
    logger.info(
        f"Discovered {len(accounts)} ad accounts "
        f"({len(personal)} personal, {len(business)} business before dedup)"
    )
    return accounts
