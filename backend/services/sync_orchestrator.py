"""Sync orchestrator - runs one pass of a connection through its phases.

    pending -> importing -> pending_account_setup        (stops the pass)
                         -> processing -> scheduling -> completed

Any non-terminal phase may move to ``failed``. Raw payloads are committed
as soon as they are imported, so a later failure never loses them and a
re-run of the same window only replays idempotent imports.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import (
    ProviderAuthError,
    ProviderDataError,
    ProviderError,
    TransientProviderError,
    is_transient,
)
from integrations.provider_protocol import ProviderClient, RawAccountPayload
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from models import AccountProvider, Connection, ExternalAccount, Sync
from services.exceptions import InvalidSyncTransition, SyncInProgressError
from services.results import BatchSummary, Err
from services.retry_policy import RetryPolicy
from services.sync_scheduler import (
    AccountSyncScheduler,
    InlineAccountSyncScheduler,
    LoggingSyncBroadcaster,
    SyncBroadcaster,
)
from services.syncers import Syncer, get_syncer_class

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    PENDING = "pending"
    IMPORTING = "importing"
    PENDING_ACCOUNT_SETUP = "pending_account_setup"
    PROCESSING = "processing"
    SCHEDULING = "scheduling"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[SyncPhase, set[SyncPhase]] = {
    SyncPhase.PENDING: {SyncPhase.IMPORTING, SyncPhase.FAILED},
    SyncPhase.IMPORTING: {
        SyncPhase.PENDING_ACCOUNT_SETUP,
        SyncPhase.PROCESSING,
        SyncPhase.FAILED,
    },
    SyncPhase.PROCESSING: {SyncPhase.SCHEDULING, SyncPhase.FAILED},
    SyncPhase.SCHEDULING: {SyncPhase.COMPLETED, SyncPhase.FAILED},
    SyncPhase.PENDING_ACCOUNT_SETUP: set(),
    SyncPhase.COMPLETED: set(),
    SyncPhase.FAILED: set(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def transition(sync: Sync, target: SyncPhase) -> None:
    """Move ``sync`` to ``target`` or raise InvalidSyncTransition."""
    current = SyncPhase(sync.phase)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidSyncTransition(current.value, target.value)
    sync.phase = target.value
    sync.status_text = target.value.replace("_", " ")


class SyncOrchestrator:
    """Runs sync passes for connections.

    Collaborators are injected so tests can swap the provider registry,
    scheduler, broadcaster and retry policy.
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[ProviderRegistry] = None,
        scheduler: Optional[AccountSyncScheduler] = None,
        broadcaster: Optional[SyncBroadcaster] = None,
        retry_policy: Optional[RetryPolicy] = None,
        syncer_classes: Optional[dict[str, type[Syncer]]] = None,
    ):
        self.db = db
        self._registry = registry
        self.scheduler = scheduler or InlineAccountSyncScheduler(db)
        self.broadcaster = broadcaster or LoggingSyncBroadcaster()
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._syncer_classes = syncer_classes
        self._streamed = 0

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = get_provider_registry()
        return self._registry

    # -- sync records ----------------------------------------------------

    @staticmethod
    def create_sync(
        db: Session,
        connection: Connection,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
    ) -> Sync:
        """Create a pending Sync; the default window is the last SYNC_WINDOW_DAYS days."""
        window_end = window_end or date.today()
        window_start = window_start or window_end - timedelta(days=settings.SYNC_WINDOW_DAYS)
        sync = Sync(
            connection_id=connection.id,
            window_start_date=window_start,
            window_end_date=window_end,
            status="pending",
            phase=SyncPhase.PENDING.value,
        )
        db.add(sync)
        db.flush()
        return sync

    def sync_connection(
        self,
        connection: Connection,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
    ) -> Sync:
        """Create a Sync for the connection and run it."""
        sync = self.create_sync(self.db, connection, window_start, window_end)
        self.db.commit()
        return self.run(sync)

    # -- the pass --------------------------------------------------------

    def _acquire(self, connection: Connection) -> None:
        """Compare-and-set the connection to ``syncing``.

        Raises:
            SyncInProgressError: If another pass holds the connection.
        """
        claimed = (
            self.db.query(Connection)
            .filter(Connection.id == connection.id, Connection.status != "syncing")
            .update({Connection.status: "syncing"}, synchronize_session=False)
        )
        self.db.commit()
        if not claimed:
            raise SyncInProgressError(connection.id)
        self.db.refresh(connection)

    def run(self, sync: Sync) -> Sync:
        """Run one pass for ``sync``.

        Auth failures end the pass quietly with the connection flagged
        ``requires_update``. Every other failure marks the pass and the
        connection failed and is re-raised for the caller's job runner.

        Raises:
            SyncInProgressError: If the connection is already syncing.
            InvalidSyncTransition: If the sync already finished.
        """
        connection = sync.connection
        if sync.phase == SyncPhase.FAILED.value:
            # Re-run of the same window
            sync.phase = SyncPhase.PENDING.value
            sync.error = None
        if SyncPhase.IMPORTING not in ALLOWED_TRANSITIONS[SyncPhase(sync.phase)]:
            raise InvalidSyncTransition(sync.phase, SyncPhase.IMPORTING.value)

        self._acquire(connection)

        sync.attempts = (sync.attempts or 0) + 1
        sync.status = "syncing"
        sync.started_at = _now()
        transition(sync, SyncPhase.IMPORTING)
        self.db.commit()
        logger.info(
            "Sync %s started for connection %s (%s, attempt %d, window %s..%s)",
            sync.id, connection.id, connection.provider_key, sync.attempts,
            sync.window_start_date, sync.window_end_date,
        )

        self._streamed = 0
        syncer: Optional[Syncer] = None
        try:
            client = self.registry.get_provider(connection.provider_key)
            syncer_cls = get_syncer_class(connection.provider_key, self._syncer_classes)

            import_summary = self._import(sync, connection, client)
            if self._gate_on_unlinked(sync, connection):
                self.db.commit()
            else:
                syncer = syncer_cls(self.db, connection, client)
                self._process_and_schedule(sync, syncer, import_summary)
                self._complete(sync, connection)
        except ProviderAuthError as e:
            logger.warning("Sync %s: %s credentials rejected: %s", sync.id, connection.provider_key, e)
            self._fail(sync, connection, e, connection_status="requires_update")
            return sync
        except Exception as e:
            error = self._partial_delivery_error(e) if self._streamed else e
            decision = self.retry_policy.decide(error, sync.attempts)
            logger.error(
                "Sync %s failed for connection %s: %s (retry: %s)",
                sync.id, connection.id, error, decision.retry,
            )
            self._fail(sync, connection, error, retry=decision.as_stats())
            if error is e:
                raise
            raise error from e

        if syncer is not None:
            syncer.perform_post_sync()
        self.broadcaster.notify_sync_complete(connection.id)
        return sync

    @staticmethod
    def _partial_delivery_error(exc: Exception) -> Exception:
        """Transient errors after data was already streamed must not be retried."""
        if not is_transient(exc):
            return exc
        if isinstance(exc, TransientProviderError):
            return type(exc)(str(exc), exc.provider_name, partial_delivery=True)
        return TransientProviderError(
            str(exc), getattr(exc, "provider_name", ""), partial_delivery=True
        )

    # -- phases ----------------------------------------------------------

    def _import(self, sync: Sync, connection: Connection, client: ProviderClient) -> BatchSummary:
        """Stream every account payload and commit each one as it arrives."""
        summary = BatchSummary()
        for payload in client.stream_accounts(
            connection, sync.window_start_date, sync.window_end_date
        ):
            self._streamed += 1
            self._store_payload(connection, client, payload, summary)
            self.db.commit()
        sync.merge_stats(
            accounts_streamed=self._streamed,
            account_errors=summary.error_count,
        )
        return summary

    def _process_and_schedule(self, sync: Sync, syncer: Syncer, import_summary: BatchSummary) -> None:
        transition(sync, SyncPhase.PROCESSING)
        self.db.commit()
        report = syncer.perform_sync(sync)
        report.summary.merge(import_summary)
        sync.merge_stats(**report.as_stats())
        self.db.commit()

        transition(sync, SyncPhase.SCHEDULING)
        for account_id in report.processed_account_ids:
            self.scheduler.schedule_account_sync(
                account_id, sync.window_start_date, sync.window_end_date
            )
        sync.merge_stats(accounts_scheduled=len(report.processed_account_ids))
        self.db.commit()

    def _store_payload(
        self,
        connection: Connection,
        client: ProviderClient,
        payload: RawAccountPayload,
        summary: BatchSummary,
    ) -> Optional[ExternalAccount]:
        """Upsert the sub-account for ``payload`` and keep its raw data verbatim."""
        try:
            record = client.map_account(payload.account)
        except ProviderDataError as e:
            logger.warning(
                "%s: unusable account payload on connection %s: %s",
                connection.provider_key, connection.id, e,
            )
            summary.add(Err("data", str(e), payload.account.get("id")))
            return None

        external_account = (
            self.db.query(ExternalAccount)
            .filter_by(connection_id=connection.id, provider_account_id=record.provider_account_id)
            .first()
        )
        if external_account is None:
            external_account = ExternalAccount(
                connection_id=connection.id,
                provider_account_id=record.provider_account_id,
            )
            self.db.add(external_account)

        account_type = record.account_type
        if not account_type and (payload.holdings or payload.trades):
            account_type = "investment"

        external_account.name = record.name
        external_account.currency = record.currency
        external_account.current_balance = record.balance
        external_account.available_balance = record.available_balance
        external_account.account_type = account_type
        external_account.last4 = record.last4
        external_account.raw_payload = payload.account
        external_account.raw_transactions_payload = payload.transactions
        external_account.raw_holdings_payload = payload.holdings
        external_account.raw_trades_payload = payload.trades
        self.db.flush()
        return external_account

    def _gate_on_unlinked(self, sync: Sync, connection: Connection) -> bool:
        """Stop the pass when any sub-account still needs to be linked.

        Returns:
            True if the pass ended in ``pending_account_setup``.
        """
        total = (
            self.db.query(ExternalAccount)
            .filter(ExternalAccount.connection_id == connection.id)
            .count()
        )
        unlinked = (
            self.db.query(ExternalAccount)
            .outerjoin(AccountProvider, AccountProvider.external_account_id == ExternalAccount.id)
            .filter(ExternalAccount.connection_id == connection.id, AccountProvider.id.is_(None))
            .count()
        )
        if unlinked == 0:
            connection.pending_account_setup = False
            return False

        connection.pending_account_setup = True
        sync.merge_stats(
            total_accounts=total,
            linked_accounts=total - unlinked,
            unlinked_accounts=unlinked,
            pending_account_setup=True,
        )
        transition(sync, SyncPhase.PENDING_ACCOUNT_SETUP)
        sync.status = "completed"
        sync.completed_at = _now()
        connection.status = "good"
        logger.info(
            "Sync %s paused: %d of %d sub-accounts on connection %s need linking",
            sync.id, unlinked, total, connection.id,
        )
        return True

    def _complete(self, sync: Sync, connection: Connection) -> None:
        transition(sync, SyncPhase.COMPLETED)
        sync.status = "completed"
        sync.completed_at = _now()
        connection.status = "good"
        connection.last_synced_at = sync.completed_at
        started = sync.started_at
        if started is not None and started.tzinfo is None:
            # SQLite hands datetimes back naive
            started = started.replace(tzinfo=timezone.utc)
        elapsed = (sync.completed_at - started).total_seconds() if started else None
        sync.merge_stats(duration_seconds=elapsed)
        self.db.commit()
        logger.info(
            "Sync %s completed for connection %s (%s records imported, %s errors)",
            sync.id, connection.id,
            (sync.sync_stats or {}).get("records_imported", 0),
            (sync.sync_stats or {}).get("record_errors", 0),
        )

    def _fail(
        self,
        sync: Sync,
        connection: Connection,
        error: BaseException,
        connection_status: str = "failed",
        retry: Optional[dict] = None,
    ) -> None:
        """Discard the uncommitted phase and record the failure."""
        self.db.rollback()
        transition(sync, SyncPhase.FAILED)
        sync.status = "failed"
        sync.error = str(error)
        sync.failed_at = _now()
        stats = {"error_type": type(error).__name__}
        if isinstance(error, ProviderError):
            stats["provider"] = error.provider_name or connection.provider_key
        if retry is not None:
            stats["retry"] = retry
        sync.merge_stats(**stats)
        connection.status = connection_status
        self.db.commit()
