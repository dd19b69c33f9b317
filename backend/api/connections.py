"""Connection API endpoints: sync passes and relinking."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from integrations.exceptions import ProviderError
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from models import Connection
from schemas import (
    RelinkCandidateResponse,
    RelinkRequest,
    RelinkResponse,
    SyncRequest,
    SyncResponse,
)
from services.exceptions import LinkIntegrityError, SyncInProgressError, ValidationError
from services.plan_restriction_tracker import get_plan_restriction_tracker
from services.relink_service import RelinkService
from services.sync_orchestrator import SyncOrchestrator
from services.sync_scheduler import InlineAccountSyncScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


def get_registry() -> ProviderRegistry:
    """Get the provider registry (dependency for injection in tests)."""
    return get_provider_registry()


def get_sync_orchestrator(
    db: Session = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
) -> SyncOrchestrator:
    scheduler = InlineAccountSyncScheduler(db, plan_restrictions=get_plan_restriction_tracker())
    return SyncOrchestrator(db, registry=registry, scheduler=scheduler)


@router.post("/{connection_id}/sync", response_model=SyncResponse)
def trigger_sync(
    connection_id: str,
    body: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Run one sync pass for a connection.

    Auth failures come back as a 200 with a failed sync and the connection
    flagged ``requires_update``.

    Raises:
        HTTPException:
            - 404 Not Found: Unknown connection
            - 409 Conflict: A pass is already running for the connection
            - 502 Bad Gateway: Provider error (the failed sync is kept)
            - 500 Internal Server Error: Unexpected sync error
    """
    connection = get_or_404(db, Connection, connection_id, "Connection not found")
    body = body or SyncRequest()

    try:
        return orchestrator.sync_connection(connection, body.window_start, body.window_end)
    except SyncInProgressError:
        raise HTTPException(
            status_code=409,
            detail="Sync already in progress for this connection.",
        )
    except ProviderError as e:
        logger.warning("Provider error during sync of connection %s: %s", connection_id, e)
        raise HTTPException(
            status_code=502,
            detail="A provider error occurred during sync. Check the logs for details.",
        )
    except Exception:
        # Never expose str(e)
        logger.error("Unexpected error during sync of connection %s", connection_id, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred during sync.",
        )


@router.get("/{connection_id}/relink-candidates", response_model=list[RelinkCandidateResponse])
def relink_candidates(connection_id: str, db: Session = Depends(get_db)):
    """Suggest links between unlinked sub-accounts and unlinked accounts."""
    connection = get_or_404(db, Connection, connection_id, "Connection not found")
    return RelinkService(db).candidates_for(connection)


@router.post("/{connection_id}/relink", response_model=RelinkResponse)
def apply_relink(connection_id: str, body: RelinkRequest, db: Session = Depends(get_db)):
    """Apply user-confirmed (sub-account, account) pairs."""
    connection = get_or_404(db, Connection, connection_id, "Connection not found")
    pairs = [(p.sub_account_id, p.account_id) for p in body.pairs]
    try:
        return RelinkService(db).apply(connection, pairs)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LinkIntegrityError as e:
        raise HTTPException(status_code=409, detail=str(e))
