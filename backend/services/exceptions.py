"""Exceptions raised by the ledger services."""


class LedgerError(Exception):
    """Base exception for ledger-side failures."""

    pass


class ValidationError(LedgerError):
    """A record is missing a mandatory key or carries unusable values."""

    pass


class LinkIntegrityError(LedgerError):
    """Ledger processing was attempted on a sub-account without a link."""

    pass


class SyncInProgressError(LedgerError):
    """Another pass is already running for the same connection."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Sync already in progress for connection {connection_id}")


class InvalidSyncTransition(LedgerError):
    """The orchestrator attempted a phase change the state machine forbids."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition sync from {current!r} to {target!r}")
