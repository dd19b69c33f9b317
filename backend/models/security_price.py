"""SecurityPrice model - resolved closing price of a security on a date."""

from sqlalchemy import Column, Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class SecurityPrice(Base):
    """A daily price, loaded by market-data collaborators and read by the calculator."""

    __tablename__ = "security_prices"
    __table_args__ = (
        UniqueConstraint("security_id", "date", name="uix_security_price_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    security_id = Column(
        String(36), ForeignKey("securities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)
    price = Column(Numeric(19, 8), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    security = relationship("Security")
