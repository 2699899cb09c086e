"""
Facebook Token Exchange Script
Terminal version of the wizard for when there is no browser session to hand.

Usage:
    python3 get_tokens.py                 # print the OAuth dialog URL
    python3 get_tokens.py YOUR_AUTH_CODE  # exchange the code, print .env lines

Requires environment variables (or a .env file):
    META_APP_ID       — Facebook App ID
    META_APP_SECRET   — Facebook App Secret
    PUBLIC_BASE_URL   — (optional) the redirect URI is {PUBLIC_BASE_URL}/oauth-callback
"""

import asyncio
import secrets
import sys

from adwizard.config import get_settings
from adwizard.graph_client import (
    GraphAPIClient, GraphAPIError, build_authorization_url, exchange_code_for_token,
)
from adwizard.services.account_service import discover_ad_accounts
from adwizard.services.export_service import build_env_content


async def exchange_and_describe(code: str) -> int:
    settings = get_settings()
    try:
        token = await exchange_code_for_token(
            settings.graph_api_url,
            settings.meta_app_id,
            settings.meta_app_secret,
            settings.oauth_redirect_uri,
            code,
        )
    except GraphAPIError as e:
        print(f"\n{e}")
        return 1

    client = GraphAPIClient(settings.graph_api_url, token, settings.meta_app_secret)
    try:
        accounts = await discover_ad_accounts(client)
    except GraphAPIError as e:
        print(f"\nToken obtained, but ad account discovery failed: {e}")
        accounts = []

    print()
    print("=" * 60)
    print("SUCCESS! Ad accounts reachable with this token:")
    print("=" * 60)
    for account in accounts:
        print(f"  {account.id:<24} {account.name or '':<30} {account.source}")
    if not accounts:
        print("  (none)")

    print()
    print("Your .env file contents:")
    print()
    print(build_env_content(
        settings.meta_app_id,
        settings.meta_app_secret,
        token,
        accounts[0].id if accounts else "",
    ))
    return 0


if __name__ == "__main__":
    settings = get_settings()
    if not settings.meta_app_id or not settings.meta_app_secret:
        print("ERROR: META_APP_ID and META_APP_SECRET environment variables are required.")
        print("Set them in your .env file or export them in your shell.")
        sys.exit(1)

    if len(sys.argv) < 2:
        print("=" * 60)
        print("FACEBOOK ADS TOKEN EXCHANGE")
        print("=" * 60)
        print()
        print("STEP 1: Add this Valid OAuth Redirect URI to your app's Facebook Login settings:")
        print(f"  {settings.oauth_redirect_uri}")
        print()
        print("STEP 2: Open this URL in your browser and authorize:")
        print()
        print(build_authorization_url(
            settings.oauth_dialog_base_url,
            settings.graph_api_version,
            settings.meta_app_id,
            settings.oauth_redirect_uri,
            settings.oauth_scope,
            secrets.token_urlsafe(16),
        ))
        print()
        print("STEP 3: After redirect, copy the 'code' parameter from the URL")
        print()
        print("STEP 4: Run this script with the code:")
        print("  python3 get_tokens.py YOUR_AUTH_CODE")
        sys.exit(0)

    print("Exchanging authorization code for an access token...")
    sys.exit(asyncio.run(exchange_and_describe(sys.argv[1])))
