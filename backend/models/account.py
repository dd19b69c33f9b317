"""Account model - the user-facing internal account."""

from decimal import Decimal

from sqlalchemy import Boolean, Column, Date, DateTime, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow

# Account types whose cash balance is tracked separately from the total balance.
INVESTMENT_ACCOUNT_TYPES = frozenset({"investment", "crypto"})


class Account(Base):
    """A ledger account owned by the user.

    Accounts are either created manually or on behalf of a provider
    sub-account; the binding to a provider lives in AccountProvider.
    """

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    account_type = Column(String, nullable=False, default="depository")
    balance = Column(Numeric(19, 4), nullable=True, default=Decimal("0"))
    cash_balance = Column(Numeric(19, 4), nullable=True, default=Decimal("0"))
    last4 = Column(String(4), nullable=True)  # Masked account number suffix
    start_date = Column(Date, nullable=True)  # Overrides first-entry date for holdings
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    entries = relationship("Entry", back_populates="account")
    holdings = relationship("Holding", back_populates="account")
    account_provider = relationship(
        "AccountProvider", back_populates="account", uselist=False
    )

    @property
    def is_investment(self) -> bool:
        """True for account types that hold securities."""
        return self.account_type in INVESTMENT_ACCOUNT_TYPES
