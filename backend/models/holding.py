"""Holding model - derived position of a security on a date."""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class Holding(Base):
    """A derived (account, security, date) position snapshot.

    Rows are regenerated wholesale from the trade log by
    HoldingsMaterializer or written by providers that report complete
    holdings snapshots. They are never edited by hand.
    """

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "security_id", "date",
            name="uix_holding_account_security_date",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    security_id = Column(
        String(36), ForeignKey("securities.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    account_provider_id = Column(
        String(36), ForeignKey("account_providers.id", ondelete="SET NULL"), nullable=True
    )
    date = Column(Date, nullable=False, index=True)
    qty = Column(Numeric(24, 8), nullable=False, default=Decimal("0"))
    price = Column(Numeric(19, 8), nullable=True)
    amount = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False)
    cost_basis = Column(Numeric(19, 8), nullable=True)
    source = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    account = relationship("Account", back_populates="holdings")
    security = relationship("Security")
