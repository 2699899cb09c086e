"""
Ad Wizard — Database Models
One row per browser session; every column is a resumable wizard key and the
whole row is deleted on reset.
"""

from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from adwizard.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class WizardSessionRecord(Base):
    """Durable mirror of a wizard session (survives the OAuth redirect)."""
    __tablename__ = "wizard_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    step: Mapped[str] = mapped_column(String(20), nullable=True)
    error: Mapped[str] = mapped_column(Text, nullable=True)
    oauth_state: Mapped[str] = mapped_column(String(128), nullable=True)
    app_id: Mapped[str] = mapped_column(String(255), nullable=True)
    app_secret: Mapped[str] = mapped_column(Text, nullable=True)  # encrypted
    access_token: Mapped[str] = mapped_column(Text, nullable=True)  # encrypted
    ad_accounts: Mapped[list] = mapped_column(JSON, nullable=True)
    processed_code: Mapped[str] = mapped_column(Text, nullable=True)
    selected_account_id: Mapped[str] = mapped_column(String(64), nullable=True)
    date_preset: Mapped[str] = mapped_column(String(20), nullable=True)
    campaign_data: Mapped[list] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_wizard_sessions_updated_at", "updated_at"),
    )
