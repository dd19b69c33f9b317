"""Entry model - an immutable ledger event."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow

ENTRY_KINDS = ("transaction", "trade", "valuation")


class Entry(Base):
    """A transaction, trade or valuation recorded against one account.

    Provider-imported entries carry ``external_id`` + ``source``; that pair is
    unique across the whole ledger so re-imports update in place. Manual
    entries leave both NULL.
    """

    __tablename__ = "entries"
    __table_args__ = (
        UniqueConstraint("external_id", "source", name="uix_entry_external_source"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(String, nullable=False, default="transaction")
    external_id = Column(String, nullable=True)
    source = Column(String, nullable=True)  # Provider key, e.g. "simplefin"
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(19, 4), nullable=False)
    currency = Column(String(3), nullable=False)
    notes = Column(Text, nullable=True)
    extra = Column(JSON, nullable=True)
    pending = Column(Boolean, default=False, nullable=False)
    user_modified = Column(Boolean, default=False, nullable=False)

    # Transaction attributes
    category = Column(String, nullable=True)
    merchant_id = Column(String(36), ForeignKey("provider_merchants.id"), nullable=True)

    # Trade attributes
    security_id = Column(
        String(36), ForeignKey("securities.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    qty = Column(Numeric(24, 8), nullable=True)  # Signed: negative for sells
    price = Column(Numeric(19, 8), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    account = relationship("Account", back_populates="entries")
    merchant = relationship("ProviderMerchant")
    security = relationship("Security")
