"""
Session Store — durable key-value state for one wizard session.

The OAuth redirect leaves the service and comes back on a fresh request, so
everything the wizard knows lives here, keyed by the session id from the
cookie. A write carries every related key of one transition and lands as a
single unit; readers see either the old or the new values, never a mix.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any
from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from adwizard.crypto import seal_fields, open_fields
from adwizard.models import WizardSessionRecord

logger = logging.getLogger(__name__)

# ── Stored keys ───────────────────────────────────────────────────────
STEP = "step"
ERROR = "error"
OAUTH_STATE = "oauth_state"
APP_ID = "app_id"
APP_SECRET = "app_secret"
ACCESS_TOKEN = "access_token"
AD_ACCOUNTS = "ad_accounts"
PROCESSED_CODE = "processed_code"
SELECTED_ACCOUNT_ID = "selected_account_id"
DATE_PRESET = "date_preset"
CAMPAIGN_DATA = "campaign_data"

STORED_KEYS = (
    STEP, ERROR, OAUTH_STATE, APP_ID, APP_SECRET, ACCESS_TOKEN,
    AD_ACCOUNTS, PROCESSED_CODE, SELECTED_ACCOUNT_ID, DATE_PRESET, CAMPAIGN_DATA,
)

_ENCRYPTED_KEYS = {APP_SECRET, ACCESS_TOKEN}


class SessionStore(ABC):
    """Key-value storage for wizard sessions. Missing keys read as absent."""

    @abstractmethod
    async def read(self, session_id: str) -> dict[str, Any]:
        """Return every stored key for the session (absent keys omitted)."""

    @abstractmethod
    async def write(self, session_id: str, values: dict[str, Any]) -> None:
        """Store all given keys together. A value of None removes the key."""

    @abstractmethod
    async def purge(self, session_id: str) -> None:
        """Remove every key for the session."""

    @abstractmethod
    async def claim_code(self, session_id: str, code: str) -> bool:
        """
        Atomically mark `code` as processed and the step as exchanging.
        True for exactly one caller per code; False if it was already marked.
        """


def _check_keys(values: dict[str, Any]) -> None:
    unknown = set(values) - set(STORED_KEYS)
    if unknown:
        raise KeyError(f"Unknown session keys: {sorted(unknown)}")


class MemorySessionStore(SessionStore):
    """Process-local store. Used for tests and single-process development."""

    def __init__(self):
        self._sessions: dict[str, dict[str, Any]] = {}

    async def read(self, session_id: str) -> dict[str, Any]:
        return dict(self._sessions.get(session_id, {}))

    async def write(self, session_id: str, values: dict[str, Any]) -> None:
        _check_keys(values)
        current = dict(self._sessions.get(session_id, {}))
        for key, value in values.items():
            if value is None:
                current.pop(key, None)
            else:
                current[key] = value
        self._sessions[session_id] = current

    async def purge(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def claim_code(self, session_id: str, code: str) -> bool:
        # No await between the check and the set
        current = self._sessions.setdefault(session_id, {})
        if current.get(PROCESSED_CODE) == code:
            return False
        current[PROCESSED_CODE] = code
        current[STEP] = "exchanging"
        current.pop(ERROR, None)
        return True


class DatabaseSessionStore(SessionStore):
    """
    PostgreSQL-backed store: one wizard_sessions row per session.
    The app secret and access token are Fernet-encrypted at rest.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def read(self, session_id: str) -> dict[str, Any]:
        async with self._session_factory() as db:
            row = await db.get(WizardSessionRecord, session_id)
            if row is None:
                return {}
            values = {key: getattr(row, key) for key in STORED_KEYS if getattr(row, key) is not None}
            return open_fields(values, _ENCRYPTED_KEYS)

    async def write(self, session_id: str, values: dict[str, Any]) -> None:
        _check_keys(values)
        async with self._session_factory() as db:
            async with db.begin():
                row = await db.get(WizardSessionRecord, session_id)
                if row is None:
                    row = WizardSessionRecord(id=session_id)
                    db.add(row)
                for key, value in seal_fields(values, _ENCRYPTED_KEYS).items():
                    setattr(row, key, value)

    async def purge(self, session_id: str) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                await db.execute(
                    delete(WizardSessionRecord).where(WizardSessionRecord.id == session_id)
                )
        logger.info(f"Purged wizard session {session_id[:8]}…")

    async def claim_code(self, session_id: str, code: str) -> bool:
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(WizardSessionRecord)
                    .where(WizardSessionRecord.id == session_id)
                    .where(or_(
                        WizardSessionRecord.processed_code.is_(None),
                        WizardSessionRecord.processed_code != code,
                    ))
                    .values(processed_code=code, step="exchanging", error=None)
                )
        return result.rowcount == 1
