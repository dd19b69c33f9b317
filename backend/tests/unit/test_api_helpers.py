"""Tests for shared API helpers."""

import pytest
from fastapi import HTTPException

from api.helpers import get_or_404
from models import Account, Connection


class TestGetOr404:
    """Tests for get_or_404."""

    def test_returns_entity(self, db, account):
        """Returns the entity when it exists."""
        assert get_or_404(db, Account, account.id).id == account.id

    def test_raises_404_with_detail(self, db):
        with pytest.raises(HTTPException) as exc_info:
            get_or_404(db, Connection, "missing", "Connection not found")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Connection not found"
