"""
OAuth Service — the resumable setup wizard.

    credentials → oauth → exchanging → accounts → complete / extractor
                                    ↘ failed → credentials

The user agent leaves for the Facebook OAuth dialog and comes back on a new
request, so the wizard is rebuilt from the session store on every request
(`OAuthWizard.load`) and every transition is written back through `_commit`,
which stores all the keys of that transition in a single write.

The last processed authorization code is remembered and never un-marked, even
when its exchange fails: Facebook rejects a code the second time, so a replay
resumes from stored state (or does nothing) instead of exchanging again.
"""

import enum
import logging
import secrets
from typing import Any, Optional
import httpx
from pydantic import BaseModel
from adwizard import store as keys
from adwizard.config import Settings, get_settings
from adwizard.graph_client import (
    GraphAPIClient, GraphAPIError, TokenExchangeError,
    build_authorization_url, exchange_code_for_token,
)
from adwizard.store import SessionStore
from adwizard.services.account_service import AdAccount, discover_ad_accounts
from adwizard.services.campaign_service import (
    CampaignRecord, DEFAULT_DATE_PRESET, extract_campaign_data, validate_date_preset,
)
from adwizard.services.export_service import build_env_content, clean_account_id

logger = logging.getLogger(__name__)


class WizardStep(str, enum.Enum):
    AWAITING_CREDENTIALS = "credentials"
    AWAITING_AUTHORIZATION = "oauth"
    EXCHANGING_CODE = "exchanging"
    ACCOUNTS_READY = "accounts"
    COMPLETE = "complete"
    EXTRACTOR = "extractor"
    FAILED = "failed"


class CallbackOutcome(str, enum.Enum):
    EXCHANGED = "exchanged"
    RESUMED = "resumed"
    ALREADY_PROCESSED = "already_processed"
    DENIED = "denied"
    CSRF_MISMATCH = "csrf_mismatch"
    EXCHANGE_FAILED = "exchange_failed"
    DISCOVERY_FAILED = "discovery_failed"
    IGNORED = "ignored"


# ── Errors ────────────────────────────────────────────────────────────

class WizardError(Exception):
    """Base class for wizard errors surfaced to the user."""
    pass


class CredentialsRequiredError(WizardError):
    pass


class InvalidTransitionError(WizardError):
    pass


class UnknownAccountError(WizardError):
    pass


class CampaignExtractionError(WizardError):
    pass


# ── State ─────────────────────────────────────────────────────────────

class WizardState(BaseModel):
    """In-memory mirror of the stored session keys."""
    step: WizardStep = WizardStep.AWAITING_CREDENTIALS
    error: Optional[str] = None
    oauth_state: Optional[str] = None
    app_id: Optional[str] = None
    app_secret: Optional[str] = None
    access_token: Optional[str] = None
    ad_accounts: Optional[list[AdAccount]] = None
    processed_code: Optional[str] = None
    selected_account_id: Optional[str] = None
    date_preset: Optional[str] = None
    campaign_data: Optional[list[CampaignRecord]] = None


def _to_stored(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, list):
        return [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
    return value


class OAuthWizard:
    """
    One wizard session. Construct with `load`; every public method is a
    transition that persists its effects before returning.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        state: WizardState,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.state = state
        self.settings = settings or get_settings()
        self.transport = transport

    @classmethod
    async def load(
        cls,
        store: SessionStore,
        session_id: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OAuthWizard":
        values = await store.read(session_id)
        return cls(store, session_id, WizardState.model_validate(values), settings, transport)

    # ── Internals ─────────────────────────────────────────────────────

    @property
    def _sid(self) -> str:
        return self.session_id[:8]

    async def _commit(self, **changes: Any) -> None:
        """Apply changes in memory and write them to the store together."""
        for name, value in changes.items():
            setattr(self.state, name, value)
        await self.store.write(
            self.session_id,
            {name: _to_stored(value) for name, value in changes.items()},
        )

    async def _fail(self, message: str) -> None:
        """Enter Failed, surface the message and fall back to the credentials step."""
        logger.warning(f"Wizard {self._sid}: {self.state.step.value} → failed: {message}")
        self.state.step = WizardStep.FAILED
        await self._commit(step=WizardStep.AWAITING_CREDENTIALS, error=message)

    async def _resume_processed(self) -> CallbackOutcome:
        """Callback for a code that was already claimed: resume if the result is stored."""
        s = self.state
        if s.app_id and s.app_secret and s.access_token and s.ad_accounts is not None:
            await self._commit(step=WizardStep.ACCOUNTS_READY)
            logger.info(f"Wizard {self._sid}: code already exchanged, resumed from stored state")
            return CallbackOutcome.RESUMED
        logger.info(f"Wizard {self._sid}: code already processed, nothing stored to resume")
        return CallbackOutcome.ALREADY_PROCESSED

    def _require_step(self, *allowed: WizardStep) -> None:
        if self.state.step not in allowed:
            raise InvalidTransitionError(
                f"Not allowed in step '{self.state.step.value}' "
                f"(expected {', '.join(s.value for s in allowed)})"
            )

    def _find_account(self, account_id: str) -> AdAccount:
        wanted = clean_account_id(account_id)
        for account in self.state.ad_accounts or []:
            if clean_account_id(account.id) == wanted:
                return account
        raise UnknownAccountError(f"Ad account {account_id} was not discovered for this session")

    @property
    def redirect_uri(self) -> str:
        return self.settings.oauth_redirect_uri

    def graph_client(self) -> GraphAPIClient:
        if not self.state.access_token or not self.state.app_secret:
            raise InvalidTransitionError("No access token yet. Complete the OAuth step first")
        return GraphAPIClient(
            self.settings.graph_api_url,
            self.state.access_token,
            self.state.app_secret,
            transport=self.transport,
        )

    # ── Transitions ───────────────────────────────────────────────────

    async def submit_credentials(self, app_id: str, app_secret: str) -> None:
        self._require_step(WizardStep.AWAITING_CREDENTIALS)
        app_id = (app_id or "").strip()
        app_secret = (app_secret or "").strip()
        if not app_id or not app_secret:
            message = "Please enter both App ID and App Secret"
            await self._commit(error=message)
            raise CredentialsRequiredError(message)

        await self._commit(
            step=WizardStep.AWAITING_AUTHORIZATION,
            app_id=app_id,
            app_secret=app_secret,
            error=None,
        )
        logger.info(f"Wizard {self._sid}: credentials accepted for app {app_id}")

    async def begin_authorization(self) -> str:
        """Mint a CSRF token, persist it with the credentials, return the dialog URL."""
        self._require_step(WizardStep.AWAITING_AUTHORIZATION)
        oauth_state = secrets.token_urlsafe(16)
        await self._commit(
            oauth_state=oauth_state,
            app_id=self.state.app_id,
            app_secret=self.state.app_secret,
        )
        logger.info(f"Wizard {self._sid}: redirecting to OAuth dialog")
        return build_authorization_url(
            self.settings.oauth_dialog_base_url,
            self.settings.graph_api_version,
            self.state.app_id,
            self.redirect_uri,
            self.settings.oauth_scope,
            oauth_state,
        )

    async def handle_callback(
        self,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
    ) -> CallbackOutcome:
        """Consume the redirect-back parameters of the OAuth dialog."""
        if error:
            await self._fail(f"OAuth error: {error}")
            return CallbackOutcome.DENIED

        if not code or not state:
            return CallbackOutcome.IGNORED

        if code == self.state.processed_code:
            return await self._resume_processed()

        if state != self.state.oauth_state:
            await self._fail("State mismatch - possible CSRF attack")
            return CallbackOutcome.CSRF_MISMATCH

        if not self.state.app_id or not self.state.app_secret:
            await self._fail("App credentials are missing from this session. Please start over.")
            return CallbackOutcome.EXCHANGE_FAILED

        # Marked before the exchange and never rolled back; only one request wins the claim
        if not await self.store.claim_code(self.session_id, code):
            self.state = WizardState.model_validate(await self.store.read(self.session_id))
            return await self._resume_processed()
        self.state.processed_code = code
        self.state.step = WizardStep.EXCHANGING_CODE
        self.state.error = None

        try:
            access_token = await exchange_code_for_token(
                self.settings.graph_api_url,
                self.state.app_id,
                self.state.app_secret,
                self.redirect_uri,
                code,
                transport=self.transport,
            )
        except TokenExchangeError as e:
            await self._fail(f"Failed to exchange code for token: {e}")
            return CallbackOutcome.EXCHANGE_FAILED
        except Exception as e:
            logger.error(f"Wizard {self._sid}: unexpected token exchange failure", exc_info=True)
            await self._fail(f"Failed to exchange code for token: {e}")
            return CallbackOutcome.EXCHANGE_FAILED

        await self._commit(access_token=access_token)

        accounts: list[AdAccount] = []
        discovery_error = None
        try:
            accounts = await discover_ad_accounts(self.graph_client())
        except GraphAPIError as e:
            discovery_error = f"Failed to fetch ad accounts: {e}"
            logger.error(f"Wizard {self._sid}: {discovery_error}")
        except Exception as e:
            # Token is stored but the accounts are unusable; restart from credentials
            logger.error(f"Wizard {self._sid}: unexpected ad account discovery failure", exc_info=True)
            await self._fail(f"Failed to fetch ad accounts: {e}")
            return CallbackOutcome.DISCOVERY_FAILED

        await self._commit(
            ad_accounts=accounts,
            step=WizardStep.ACCOUNTS_READY,
            error=discovery_error,
        )
        return CallbackOutcome.EXCHANGED

    async def select_account(self, account_id: str) -> str:
        """Pick the account for the .env file. Returns the cleaned numeric id."""
        self._require_step(WizardStep.ACCOUNTS_READY, WizardStep.COMPLETE, WizardStep.EXTRACTOR)
        account = self._find_account(account_id)
        cleaned = clean_account_id(account.id)
        await self._commit(selected_account_id=cleaned, step=WizardStep.COMPLETE, error=None)
        return cleaned

    def env_file_content(self) -> str:
        self._require_step(WizardStep.COMPLETE)
        s = self.state
        return build_env_content(s.app_id, s.app_secret, s.access_token, s.selected_account_id)

    async def open_extractor(self, account_id: str) -> str:
        self._require_step(WizardStep.ACCOUNTS_READY, WizardStep.COMPLETE, WizardStep.EXTRACTOR)
        account = self._find_account(account_id)
        cleaned = clean_account_id(account.id)
        await self._commit(
            selected_account_id=cleaned,
            step=WizardStep.EXTRACTOR,
            campaign_data=None,
            date_preset=None,
            error=None,
        )
        return cleaned

    async def extract_campaigns(self, date_preset: str = DEFAULT_DATE_PRESET) -> list[CampaignRecord]:
        self._require_step(WizardStep.EXTRACTOR)
        validate_date_preset(date_preset)
        try:
            records = await extract_campaign_data(
                self.graph_client(), self.state.selected_account_id, date_preset
            )
        except GraphAPIError as e:
            message = f"Failed to extract campaign data: {e}"
            logger.error(f"Wizard {self._sid}: {message}")
            await self._commit(error=message)
            raise CampaignExtractionError(message) from e

        await self._commit(campaign_data=records, date_preset=date_preset, error=None)
        return records

    async def reset(self) -> None:
        """Valid from any step: forget everything."""
        await self.store.purge(self.session_id)
        self.state = WizardState()
        logger.info(f"Wizard {self._sid}: reset")
