"""Service for managing Security records."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from integrations.provider_protocol import SecurityRef
from models import Security

logger = logging.getLogger(__name__)


class SecurityService:
    """Centralized operations on the Security master list."""

    @staticmethod
    def ensure_exists(
        db: Session,
        ticker: str,
        exchange: str = "",
        name: Optional[str] = None,
    ) -> Security:
        """Ensure a Security record exists for the given ticker and exchange.

        Creates the record if it doesn't exist. An existing record only has
        its name filled in when it has none.

        Returns:
            The Security record (flushed but not committed)
        """
        ticker = ticker.strip().upper()
        exchange = (exchange or "").strip().upper()
        security = db.query(Security).filter_by(ticker=ticker, exchange=exchange).first()

        if not security:
            security = Security(ticker=ticker, exchange=exchange, name=name or ticker)
            db.add(security)
            db.flush()
            logger.info("Created security: %s%s", ticker, f" ({exchange})" if exchange else "")
        elif name and not security.name:
            security.name = name
            db.flush()
            logger.info("Filled missing security name: %s -> %s", ticker, name)

        return security

    @classmethod
    def from_ref(cls, db: Session, ref: SecurityRef) -> Security:
        """Resolve a provider SecurityRef to a Security row."""
        return cls.ensure_exists(db, ref.ticker, ref.exchange, ref.name)
