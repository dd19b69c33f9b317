"""Relink service - proposes and applies sub-account to account links."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from config import settings
from models import Account, AccountProvider, Connection, Entry, ExternalAccount, Holding
from services.exceptions import LinkIntegrityError, ValidationError
from services.relink_matcher import (
    ManualAccountSnapshot,
    RelinkCandidate,
    RelinkMatcher,
    SubAccountSnapshot,
)

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_SKIPPED_SAME = "skipped_same"


@dataclass
class RelinkPairResult:
    sub_account_id: str
    account_id: str
    status: str
    moved_entries: int = 0
    moved_holdings: int = 0
    deleted_holdings: int = 0
    deleted_account_id: Optional[str] = None


@dataclass
class RelinkResult:
    results: list[RelinkPairResult] = field(default_factory=list)
    unlinked_count: int = 0
    pending_account_setup: bool = False


class RelinkService:
    """Suggests and applies links between a connection's sub-accounts and accounts."""

    def __init__(self, db: Session, matcher: Optional[RelinkMatcher] = None):
        self.db = db
        self.matcher = matcher or RelinkMatcher(
            last4_balance_tolerance=settings.RELINK_LAST4_BALANCE_TOLERANCE,
            balance_epsilon=settings.RELINK_BALANCE_EPSILON,
        )

    # -- suggestions -----------------------------------------------------

    def unlinked_sub_accounts(self, connection: Connection) -> list[ExternalAccount]:
        return (
            self.db.query(ExternalAccount)
            .outerjoin(AccountProvider, AccountProvider.external_account_id == ExternalAccount.id)
            .filter(
                ExternalAccount.connection_id == connection.id,
                AccountProvider.id.is_(None),
            )
            .order_by(ExternalAccount.created_at, ExternalAccount.id)
            .all()
        )

    def unlinked_accounts(self) -> list[Account]:
        return (
            self.db.query(Account)
            .outerjoin(AccountProvider, AccountProvider.account_id == Account.id)
            .filter(AccountProvider.id.is_(None), Account.is_active.is_(True))
            .order_by(Account.created_at, Account.id)
            .all()
        )

    def candidates_for(self, connection: Connection) -> list[RelinkCandidate]:
        subs = [
            SubAccountSnapshot(
                id=ea.id,
                name=ea.name,
                last4=ea.last4,
                current_balance=ea.current_balance,
                available_balance=ea.available_balance,
            )
            for ea in self.unlinked_sub_accounts(connection)
        ]
        manuals = [
            ManualAccountSnapshot(
                id=acc.id,
                name=acc.name,
                last4=acc.last4,
                balance_value=acc.balance,
                cash_balance=acc.cash_balance,
            )
            for acc in self.unlinked_accounts()
        ]
        return self.matcher.compute_candidates(subs, manuals)

    # -- applying --------------------------------------------------------

    def apply(self, connection: Connection, pairs: Iterable[tuple[str, str]]) -> RelinkResult:
        """Link each (sub_account_id, account_id) pair the user confirmed.

        All pairs run in one transaction: any failure rolls back every pair.

        Raises:
            ValidationError: If a sub-account or account does not exist.
            LinkIntegrityError: If the target account is linked to a
                different sub-account.
        """
        result = RelinkResult()
        try:
            for sub_account_id, account_id in pairs:
                result.results.append(self._apply_pair(connection, sub_account_id, account_id))

            result.unlinked_count = len(self.unlinked_sub_accounts(connection))
            if result.unlinked_count == 0 and connection.pending_account_setup:
                connection.pending_account_setup = False
                logger.info("Connection %s has no unlinked sub-accounts left", connection.id)
            result.pending_account_setup = bool(connection.pending_account_setup)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def _apply_pair(
        self, connection: Connection, sub_account_id: str, account_id: str
    ) -> RelinkPairResult:
        sub = (
            self.db.query(ExternalAccount)
            .filter_by(id=sub_account_id, connection_id=connection.id)
            .first()
        )
        if sub is None:
            raise ValidationError(f"Sub-account {sub_account_id} not found on connection {connection.id}")
        target = self.db.get(Account, account_id)
        if target is None:
            raise ValidationError(f"Account {account_id} not found")

        pair = RelinkPairResult(sub_account_id=sub.id, account_id=target.id, status=STATUS_OK)
        old_link = sub.link
        if old_link is not None and old_link.account_id == target.id:
            pair.status = STATUS_SKIPPED_SAME
            return pair

        target_link = target.account_provider
        if target_link is not None and target_link.external_account_id != sub.id:
            raise LinkIntegrityError(
                f"Account {target.id} is already linked to sub-account "
                f"{target_link.external_account_id}"
            )

        if old_link is not None:
            self._sever(old_link, target, pair)

        self.db.expire(sub, ["link"])
        self.db.expire(target, ["account_provider"])
        self.db.add(AccountProvider(account_id=target.id, external_account_id=sub.id))
        self.db.flush()
        logger.info("Linked sub-account %s to account %s", sub.id, target.id)
        return pair

    def _sever(self, old_link: AccountProvider, target: Account, pair: RelinkPairResult) -> None:
        """Move the old account's ledger onto ``target`` and drop the old link and account."""
        old_account = old_link.account

        # (external_id, source) is globally unique, so entries can never collide
        pair.moved_entries = (
            self.db.query(Entry)
            .filter(Entry.account_id == old_account.id)
            .update({Entry.account_id: target.id}, synchronize_session="fetch")
        )

        existing = {
            (security_id, held_on)
            for security_id, held_on in self.db.query(Holding.security_id, Holding.date)
            .filter(Holding.account_id == target.id)
        }
        for holding in self.db.query(Holding).filter(Holding.account_id == old_account.id).all():
            if (holding.security_id, holding.date) in existing:
                self.db.delete(holding)
                pair.deleted_holdings += 1
            else:
                holding.account_id = target.id
                pair.moved_holdings += 1
        self.db.flush()

        self.db.query(Holding).filter(
            Holding.account_provider_id == old_link.id
        ).update({Holding.account_provider_id: None}, synchronize_session="fetch")

        self.db.delete(old_link)
        self.db.flush()

        self.db.expire(old_account)
        pair.deleted_account_id = old_account.id
        self.db.delete(old_account)
        self.db.flush()
        logger.info(
            "Severed link %s: moved %d entries and %d holdings to account %s, "
            "dropped %d colliding holdings and account %s",
            old_link.id, pair.moved_entries, pair.moved_holdings, target.id,
            pair.deleted_holdings, pair.deleted_account_id,
        )
