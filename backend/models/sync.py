"""Sync model - one orchestration pass for one connection."""

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow

SYNC_STATUSES = ("pending", "syncing", "completed", "failed")


class Sync(Base):
    """A unit of work carrying a date window and progress for one pass.

    ``status`` is the coarse lifecycle; ``phase`` records where the
    orchestrator is (or stopped) inside the pass.
    """

    __tablename__ = "syncs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(36), ForeignKey("connections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    window_start_date = Column(Date, nullable=True)
    window_end_date = Column(Date, nullable=True)
    status = Column(String, nullable=False, default="pending")
    phase = Column(String, nullable=False, default="pending")
    status_text = Column(String, nullable=True)
    sync_stats = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    # Relationships
    connection = relationship("Connection", back_populates="syncs")

    def merge_stats(self, **stats) -> None:
        """Merge keys into ``sync_stats`` (reassigns so the JSON change is tracked)."""
        self.sync_stats = {**(self.sync_stats or {}), **stats}
