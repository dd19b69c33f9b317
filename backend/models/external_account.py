"""ExternalAccount model - a provider-reported sub-account."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class ExternalAccount(Base):
    """An account unit as reported by a provider, before or after linking.

    Raw payloads are stored verbatim on every import so that processing can
    be replayed offline.
    """

    __tablename__ = "external_accounts"
    __table_args__ = (
        UniqueConstraint(
            "connection_id", "provider_account_id",
            name="uix_external_account_connection_provider_id",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_account_id = Column(String, nullable=False)
    name = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    current_balance = Column(Numeric(19, 4), nullable=True)
    available_balance = Column(Numeric(19, 4), nullable=True)
    account_type = Column(String, nullable=True)
    last4 = Column(String(4), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    raw_transactions_payload = Column(JSON, nullable=True)
    raw_holdings_payload = Column(JSON, nullable=True)
    raw_trades_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    connection = relationship("Connection", back_populates="external_accounts")
    link = relationship(
        "AccountProvider", back_populates="external_account", uselist=False
    )

    @property
    def linked_account(self):
        """The Account this sub-account is linked to, or None."""
        return self.link.account if self.link else None
