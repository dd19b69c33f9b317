"""Tests for SecurityService."""

from integrations.provider_protocol import SecurityRef
from models import Security
from services.security_service import SecurityService


class TestEnsureExists:
    """Tests for SecurityService.ensure_exists."""

    def test_creates_security_when_missing(self, db):
        """Creates a new Security record when the ticker doesn't exist."""
        security = SecurityService.ensure_exists(db, "AAPL", name="Apple Inc.")
        assert security.ticker == "AAPL"
        assert security.exchange == ""
        assert security.name == "Apple Inc."
        assert db.query(Security).count() == 1

    def test_uses_ticker_as_name_when_name_not_provided(self, db):
        security = SecurityService.ensure_exists(db, "AAPL")
        assert security.name == "AAPL"

    def test_normalizes_ticker_and_exchange(self, db):
        first = SecurityService.ensure_exists(db, " shop ", "tsx")
        second = SecurityService.ensure_exists(db, "SHOP", "TSX")
        assert first.id == second.id
        assert first.ticker == "SHOP"
        assert first.exchange == "TSX"

    def test_same_ticker_on_different_exchanges(self, db):
        SecurityService.ensure_exists(db, "SHOP", "TSX")
        SecurityService.ensure_exists(db, "SHOP", "NYSE")
        assert db.query(Security).count() == 2

    def test_returns_existing_security(self, db):
        """Returns the existing record without creating a duplicate."""
        existing = Security(ticker="AAPL", exchange="", name="Apple Inc.")
        db.add(existing)
        db.flush()

        security = SecurityService.ensure_exists(db, "AAPL")
        assert security.id == existing.id
        assert db.query(Security).count() == 1

    def test_fills_missing_name(self, db):
        existing = Security(ticker="AAPL", exchange="", name=None)
        db.add(existing)
        db.flush()

        security = SecurityService.ensure_exists(db, "AAPL", name="Apple Inc.")
        assert security.name == "Apple Inc."

    def test_does_not_overwrite_existing_name(self, db):
        existing = Security(ticker="AAPL", exchange="", name="Old Name")
        db.add(existing)
        db.flush()

        security = SecurityService.ensure_exists(db, "AAPL", name="New Name")
        assert security.name == "Old Name"


class TestFromRef:
    def test_resolves_provider_reference(self, db, security):
        resolved = SecurityService.from_ref(db, SecurityRef(ticker="aapl"))
        assert resolved.id == security.id

    def test_creates_from_reference(self, db):
        resolved = SecurityService.from_ref(
            db, SecurityRef(ticker="VTI", exchange="ARCA", name="Vanguard Total Market")
        )
        assert resolved.name == "Vanguard Total Market"
        assert resolved.exchange == "ARCA"
