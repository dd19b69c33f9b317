"""Connection model - a credentialed link to one upstream provider."""

from sqlalchemy import JSON, Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow

CONNECTION_STATUSES = ("good", "requires_update", "syncing", "failed")


class Connection(Base):
    """A provider connection (e.g. one SimpleFIN access URL).

    ``status`` is only ever changed by the sync orchestrator; the value
    ``syncing`` doubles as the exclusion marker for concurrent passes.
    """

    __tablename__ = "connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    provider_key = Column(String, nullable=False, index=True)  # e.g. "simplefin"
    name = Column(String, nullable=True)
    credentials = Column(JSON, nullable=True)  # Opaque to the core
    status = Column(String, nullable=False, default="good")
    pending_account_setup = Column(Boolean, nullable=False, default=False)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    external_accounts = relationship(
        "ExternalAccount",
        back_populates="connection",
        order_by="ExternalAccount.created_at",
    )
    syncs = relationship("Sync", back_populates="connection")
