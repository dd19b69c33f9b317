"""ProviderMerchant model - merchant data supplied by a provider."""

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid, utcnow


class ProviderMerchant(Base):
    """A merchant as named by one provider."""

    __tablename__ = "provider_merchants"
    __table_args__ = (
        UniqueConstraint("source", "name", name="uix_provider_merchant_source_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    source = Column(String, nullable=False)
    name = Column(String, nullable=False)
    provider_merchant_id = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
