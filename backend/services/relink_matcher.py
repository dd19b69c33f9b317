"""Heuristic matching of provider sub-accounts to manual accounts.

The matcher is advisory: it only proposes pairs, and writes nothing.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

MATCH_LAST4 = "last4"
MATCH_BALANCE = "balance"
MATCH_NAME = "name"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SubAccountSnapshot:
    id: str
    name: Optional[str]
    last4: Optional[str] = None
    current_balance: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None

    @property
    def balance(self) -> Decimal:
        if self.current_balance is not None:
            return Decimal(self.current_balance)
        if self.available_balance is not None:
            return Decimal(self.available_balance)
        return Decimal("0")


@dataclass(frozen=True)
class ManualAccountSnapshot:
    id: str
    name: Optional[str]
    last4: Optional[str] = None
    balance_value: Optional[Decimal] = None
    cash_balance: Optional[Decimal] = None

    @property
    def balance(self) -> Decimal:
        if self.balance_value is not None:
            return Decimal(self.balance_value)
        if self.cash_balance is not None:
            return Decimal(self.cash_balance)
        return Decimal("0")


@dataclass(frozen=True)
class RelinkCandidate:
    sub_account_id: str
    sub_account_name: str
    manual_account_id: str
    manual_account_name: str
    match_reason: str


def normalize_name(name: Optional[str]) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", (name or "").strip().lower())


def _clean_last4(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class RelinkMatcher:
    """Proposes (sub-account, manual account) pairs in strict priority order.

    Last-4 digits first (confirmed by balance when both balances are known),
    then a unique balance within ``balance_epsilon``, then a unique exact
    normalized name. Every accepted pair consumes its manual account, so
    results depend on the order of ``sub_accounts``.
    """

    def __init__(
        self,
        last4_balance_tolerance: Decimal = Decimal("1.00"),
        balance_epsilon: Decimal = Decimal("0.01"),
    ):
        self.last4_balance_tolerance = Decimal(last4_balance_tolerance)
        self.balance_epsilon = Decimal(balance_epsilon)

    def compute_candidates(
        self,
        sub_accounts: Iterable[SubAccountSnapshot],
        manual_accounts: Iterable[ManualAccountSnapshot],
    ) -> list[RelinkCandidate]:
        manual_accounts = list(manual_accounts)
        used: set[str] = set()
        candidates: list[RelinkCandidate] = []

        for sub in sub_accounts:
            if not (sub.name and sub.name.strip()):
                continue
            available = [m for m in manual_accounts if m.id not in used]

            match, reason = self._match_last4(sub, available), MATCH_LAST4
            if match is None:
                match, reason = self._match_balance(sub, available), MATCH_BALANCE
            if match is None:
                match, reason = self._match_name(sub, available), MATCH_NAME
            if match is None:
                continue

            used.add(match.id)
            candidates.append(
                RelinkCandidate(
                    sub_account_id=sub.id,
                    sub_account_name=sub.name or "",
                    manual_account_id=match.id,
                    manual_account_name=match.name or "",
                    match_reason=reason,
                )
            )

        logger.debug("Relink matcher proposed %d candidates", len(candidates))
        return candidates

    def _match_last4(
        self, sub: SubAccountSnapshot, available: list[ManualAccountSnapshot]
    ) -> Optional[ManualAccountSnapshot]:
        sub_last4 = _clean_last4(sub.last4)
        if sub_last4 is None:
            return None
        matches = [m for m in available if _clean_last4(m.last4) == sub_last4]
        if len(matches) != 1:
            return None
        match = matches[0]

        sub_balance, manual_balance = sub.balance, match.balance
        if sub_balance != 0 and manual_balance != 0:
            if abs(sub_balance - manual_balance) > self.last4_balance_tolerance:
                return None
        return match

    def _match_balance(
        self, sub: SubAccountSnapshot, available: list[ManualAccountSnapshot]
    ) -> Optional[ManualAccountSnapshot]:
        sub_balance = sub.balance
        if sub_balance == 0:
            return None
        matches = [
            m for m in available
            if abs(m.balance - sub_balance) <= self.balance_epsilon
        ]
        return matches[0] if len(matches) == 1 else None

    def _match_name(
        self, sub: SubAccountSnapshot, available: list[ManualAccountSnapshot]
    ) -> Optional[ManualAccountSnapshot]:
        target = normalize_name(sub.name)
        matches = [m for m in available if normalize_name(m.name) == target]
        return matches[0] if len(matches) == 1 else None
