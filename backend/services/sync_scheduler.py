"""Downstream collaborators of a sync pass: account scheduling and notification."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from models import Account
from services.holdings_materializer import HoldingsMaterializer, MaterializeResult
from services.plan_restriction_tracker import PlanRestrictionTracker

logger = logging.getLogger(__name__)


class AccountSyncScheduler(Protocol):
    def schedule_account_sync(
        self, account_id: str, window_start: Optional[date], window_end: Optional[date]
    ) -> None:
        ...


class SyncBroadcaster(Protocol):
    def notify_sync_complete(self, connection_id: str) -> None:
        ...


@dataclass(frozen=True)
class ScheduledAccountSync:
    account_id: str
    window_start: Optional[date]
    window_end: Optional[date]


class InlineAccountSyncScheduler:
    """Runs the holdings materializer immediately instead of enqueueing a job.

    Every request is recorded in ``scheduled`` so callers (and tests) can
    see what was asked for.
    """

    def __init__(
        self,
        db: Session,
        plan_restrictions: Optional[PlanRestrictionTracker] = None,
        materializer_factory: Optional[Callable[..., HoldingsMaterializer]] = None,
    ):
        self.db = db
        self.plan_restrictions = plan_restrictions
        self._materializer_factory = materializer_factory or HoldingsMaterializer
        self.scheduled: list[ScheduledAccountSync] = []
        self.results: list[MaterializeResult] = []

    def schedule_account_sync(
        self, account_id: str, window_start: Optional[date], window_end: Optional[date]
    ) -> None:
        self.scheduled.append(ScheduledAccountSync(account_id, window_start, window_end))
        account = self.db.get(Account, account_id)
        if account is None:
            logger.warning("Account %s vanished before holdings could be materialized", account_id)
            return
        materializer = self._materializer_factory(
            self.db, account, plan_restrictions=self.plan_restrictions
        )
        self.results.append(materializer.materialize())


class RecordingAccountSyncScheduler:
    """Records requests only; for callers that run account jobs elsewhere."""

    def __init__(self):
        self.scheduled: list[ScheduledAccountSync] = []

    def schedule_account_sync(
        self, account_id: str, window_start: Optional[date], window_end: Optional[date]
    ) -> None:
        self.scheduled.append(ScheduledAccountSync(account_id, window_start, window_end))


class LoggingSyncBroadcaster:
    def notify_sync_complete(self, connection_id: str) -> None:
        logger.info("Sync complete for connection %s", connection_id)
