"""Backup relay endpoints.

These endpoints are the trigger surface for the relay pipeline: one POST runs
one full fetch-verify-publish-retain cycle and returns its outcome.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Security, status
from fastapi.responses import JSONResponse

from api.schemas.relay import ArtifactMetaResponse, RelayStatusResponse, RunOutcomeResponse
from api.security import admin_key_header, enforce_run_budget, is_admin_key, verify_admin_key
from api.settings import settings
from backend.services.relay.config import relay_config_from_settings
from backend.services.relay.errors import ConfigurationError, NoArtifactFound, RunInProgressError, TransferError
from backend.services.relay.notification_service import NotificationService
from backend.services.relay.relay_service import RelayService
from backend.services.relay.serializers import artifact_to_dict, outcome_summary_to_dict, outcome_to_dict


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/relay", tags=["Relay"])

_relay_service: Optional[RelayService] = None


def get_relay_service() -> RelayService:
    """Return the process-wide relay service, building it on first use.

    Raises:
        HTTPException: 503 when the relay configuration is invalid.
    """

    global _relay_service
    if _relay_service is None:
        resolved = settings.resolved()
        try:
            config = relay_config_from_settings(resolved)
        except ConfigurationError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        _relay_service = RelayService(config, notifier=NotificationService.from_settings(resolved))
    return _relay_service


@router.post("/run", response_model=RunOutcomeResponse, dependencies=[Depends(verify_admin_key)])
async def run_relay(request: Request, service: RelayService = Depends(get_relay_service)):
    """Execute one relay run and return its outcome.

    Returns 200 for a successful run (check `cleanup_complete` and `warnings`
    for retention problems), 500 for a failed one, 409 when a run is already
    in flight.
    """

    enforce_run_budget(request)
    try:
        outcome = await service.run_once()
    except RunInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    payload = outcome_to_dict(outcome)
    return JSONResponse(status_code=200 if outcome.succeeded else 500, content=payload)


@router.get("/meta", response_model=ArtifactMetaResponse, dependencies=[Depends(verify_admin_key)])
async def get_latest_artifact(service: RelayService = Depends(get_relay_service)):
    """Return metadata of the artifact the next run would relay."""

    try:
        artifact = await service.describe_latest()
    except NoArtifactFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TransferError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return artifact_to_dict(artifact)


@router.get("/status", response_model=RelayStatusResponse)
async def get_status(
    service: RelayService = Depends(get_relay_service),
    admin_key: Optional[str] = Security(admin_key_header),
):
    """Return whether a run is in flight and a summary of the last outcome.

    Error messages can name hosts and paths, so the full outcome is only
    included for callers presenting the admin key.
    """

    last = service.last_outcome
    return {
        "running": service.running,
        "last_outcome": outcome_summary_to_dict(last) if last else None,
        "last_outcome_detail": outcome_to_dict(last) if last and is_admin_key(admin_key) else None,
    }
