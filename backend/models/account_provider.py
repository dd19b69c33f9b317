"""AccountProvider model - the link between a sub-account and an account."""

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class AccountProvider(Base):
    """One-to-one binding of an ExternalAccount to an Account.

    Both sides are unique, so a sub-account feeds at most one account and an
    account is fed by at most one sub-account. Relinking replaces the row.
    """

    __tablename__ = "account_providers"
    __table_args__ = (
        UniqueConstraint("external_account_id", name="uix_account_provider_external"),
        UniqueConstraint("account_id", name="uix_account_provider_account"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    external_account_id = Column(
        String(36), ForeignKey("external_accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    account = relationship("Account", back_populates="account_provider")
    external_account = relationship("ExternalAccount", back_populates="link")
