"""Per-user application state sync API routes."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.schemas.sync import SyncedState, SyncLoadResponse, SyncSaveRequest, SyncSaveResponse
from app.core.auth import AuthenticatedUser, get_current_user
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.user_data_service import load_user_data, save_user_data

router = APIRouter()


@router.get("/sync", response_model=SyncLoadResponse, tags=["sync"])
def load_state(
    http_request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SyncLoadResponse:
    """Return the caller's last synced state, or `data: null` for a new user."""
    request_id = getattr(http_request.state, "request_id", None)
    user_id = str(user.id)

    with trace(
        "sync.load",
        metadata={"route": "/sync", "method": "GET", "request_id": request_id},
        user_id=user_id,
        request_id=request_id,
    ):
        row = load_user_data(db, user.id)

    found = row is not None
    log_metric("sync.load.success", 1, metadata={"user_id": user_id})
    log_metric("sync.load.found", 1 if found else 0, metadata={"user_id": user_id})

    if row is None:
        return SyncLoadResponse(data=None, request_id=request_id or "")

    return SyncLoadResponse(
        data=SyncedState(state=row.state or {}, version=row.version, updated_at=row.updated_at),
        request_id=request_id or "",
    )


@router.post("/sync", response_model=SyncSaveResponse, tags=["sync"])
def save_state(
    payload: SyncSaveRequest,
    http_request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SyncSaveResponse:
    """Upsert the caller's state blob keyed by user identity."""
    request_id = getattr(http_request.state, "request_id", None)
    user_id = str(user.id)
    metadata: Dict[str, Any] = {
        "route": "/sync",
        "method": "POST",
        "key_count": len(payload.state),
        "client_version": payload.version,
        "request_id": request_id,
    }

    start = perf_counter()
    try:
        with trace("sync.save", metadata=metadata, user_id=user_id, request_id=request_id):
            result = save_user_data(
                db,
                user.id,
                payload.state,
                version=payload.version,
                email=user.email,
            )
    except HTTPException:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        log_metric("sync.save.success", 0, metadata={"user_id": user_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save user data",
        ) from exc

    latency_ms = (perf_counter() - start) * 1000
    log_metric("sync.save.success", 1, metadata={"user_id": user_id, "created": result.created})
    log_metric("sync.save.version", result.version, metadata={"user_id": user_id})
    log_metric("sync.save.latency_ms", latency_ms, metadata={"user_id": user_id})

    return SyncSaveResponse(success=True, version=result.version, request_id=request_id or "")
