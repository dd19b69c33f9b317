"""Security model - stable identity for a tradable instrument."""

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid, utcnow


class Security(Base):
    """A security identified by ticker and exchange.

    ``exchange`` is an empty string when the provider does not report one,
    so the (ticker, exchange) constraint also holds for those rows.
    """

    __tablename__ = "securities"
    __table_args__ = (
        UniqueConstraint("ticker", "exchange", name="uix_security_ticker_exchange"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    ticker = Column(String, nullable=False)
    exchange = Column(String, nullable=False, default="")
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
