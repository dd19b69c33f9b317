"""Integration tests for connection endpoints (sync and relink)."""

from datetime import date
from decimal import Decimal

from api.connections import get_registry
from main import app
from models import Account, AccountProvider, Entry, ExternalAccount, Sync
from tests.fixtures import link
from tests.fixtures.mocks import MockProviderClient, MockProviderRegistry


def _use_client(mock_client: MockProviderClient) -> None:
    registry = MockProviderRegistry({mock_client.provider_key: mock_client})
    app.dependency_overrides[get_registry] = lambda: registry


class TestSyncEndpoint:
    def test_unlinked_connection_pauses(self, client, db, connection):
        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "pending_account_setup"
        assert data["status"] == "completed"
        assert data["sync_stats"]["unlinked_accounts"] == 1
        db.refresh(connection)
        assert connection.pending_account_setup is True

    def test_linked_connection_imports(self, client, db, connection, external_account, account):
        link(db, external_account, account)
        db.commit()

        response = client.post(
            f"/api/connections/{connection.id}/sync",
            json={"window_start": "2024-03-01", "window_end": "2024-03-31"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "completed"
        assert data["window_start_date"] == "2024-03-01"
        assert data["attempts"] == 1
        assert data["sync_stats"]["transactions_imported"] == 2
        assert db.query(Entry).filter_by(account_id=account.id).count() == 2

    def test_unknown_connection(self, client):
        response = client.post("/api/connections/nope/sync")
        assert response.status_code == 404

    def test_already_syncing(self, client, db, connection):
        connection.status = "syncing"
        db.commit()

        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.status_code == 409
        assert db.query(Sync).one().phase == "pending"

    def test_auth_failure_returns_failed_sync(self, client, db, connection):
        _use_client(MockProviderClient(should_fail=True, failure_type="auth"))

        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        db.refresh(connection)
        assert connection.status == "requires_update"

    def test_provider_error_is_502(self, client, db, connection):
        _use_client(MockProviderClient(should_fail=True, failure_type="connection"))

        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.status_code == 502
        sync = db.query(Sync).one()
        assert sync.status == "failed"
        assert sync.sync_stats["retry"]["retry"] is True

    def test_unexpected_error_is_500_without_details(self, client, connection):
        _use_client(MockProviderClient(should_fail=True, failure_message="secret detail"))

        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.status_code == 500
        assert "secret detail" not in response.text


class TestRelinkEndpoints:
    def test_candidates(self, client, db, connection, external_account):
        manual = Account(name="My Checking", currency="USD", last4="1234", balance=Decimal("1500.25"))
        db.add(manual)
        db.commit()

        response = client.get(f"/api/connections/{connection.id}/relink-candidates")

        assert response.status_code == 200
        assert response.json() == [
            {
                "sub_account_id": external_account.id,
                "sub_account_name": "Everyday Checking",
                "manual_account_id": manual.id,
                "manual_account_name": "My Checking",
                "match_reason": "last4",
            }
        ]

    def test_candidates_unknown_connection(self, client):
        assert client.get("/api/connections/nope/relink-candidates").status_code == 404

    def test_apply(self, client, db, connection, external_account, account):
        connection.pending_account_setup = True
        db.commit()

        response = client.post(
            f"/api/connections/{connection.id}/relink",
            json={"pairs": [{"sub_account_id": external_account.id, "account_id": account.id}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["unlinked_count"] == 0
        assert data["pending_account_setup"] is False
        assert data["results"][0]["status"] == "ok"
        assert db.query(AccountProvider).one().account_id == account.id

    def test_then_sync_completes(self, client, db, connection, external_account, account):
        client.post(
            f"/api/connections/{connection.id}/relink",
            json={"pairs": [{"sub_account_id": external_account.id, "account_id": account.id}]},
        )

        response = client.post(f"/api/connections/{connection.id}/sync")

        assert response.json()["phase"] == "completed"

    def test_apply_unknown_account(self, client, connection, external_account):
        response = client.post(
            f"/api/connections/{connection.id}/relink",
            json={"pairs": [{"sub_account_id": external_account.id, "account_id": "missing"}]},
        )
        assert response.status_code == 404

    def test_apply_target_linked_elsewhere(self, client, db, connection, external_account, account):
        other = ExternalAccount(connection_id=connection.id, provider_account_id="acc-2")
        db.add(other)
        db.flush()
        link(db, other, account)
        db.commit()

        response = client.post(
            f"/api/connections/{connection.id}/relink",
            json={"pairs": [{"sub_account_id": external_account.id, "account_id": account.id}]},
        )

        assert response.status_code == 409

    def test_apply_requires_pairs(self, client, connection):
        response = client.post(f"/api/connections/{connection.id}/relink", json={"pairs": []})
        assert response.status_code == 422
