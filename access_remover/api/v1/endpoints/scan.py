import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel

from access_remover.auth import authenticate_and_get_service
from access_remover.config import ConfigurationError, Settings, settings as default_settings, validate_target_emails
from access_remover.controller import build_state, run_preview, run_start, run_status, run_stop
from access_remover.models import ScanStatus
from access_remover.state_store import JsonFileStateStore

router = APIRouter()


class RunAccepted(BaseModel):
    status: str
    target_emails: List[str]


class PreviewFile(BaseModel):
    id: str
    name: Optional[str] = None
    file_type: str
    role: Optional[str] = None


class PreviewResult(BaseModel):
    email: str
    file_count: int
    files: List[PreviewFile]


def get_settings() -> Settings:
    return default_settings


def get_state_store(settings: Settings = Depends(get_settings)):
    return JsonFileStateStore(settings.STATE_FILE)


def get_drive_session(settings: Settings = Depends(get_settings)):
    """Returns (drive_service, acting_email) for the authenticated account."""
    service, acting_email = authenticate_and_get_service(settings.CREDENTIALS_DIR)
    if not service:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google Drive authentication failed.")
    return service, acting_email


def get_drive_service(session=Depends(get_drive_session)):
    return session[0]


def _start_in_background(settings, store, drive_service, acting_email):
    try:
        run_start(settings=settings, drive_service=drive_service, acting_email=acting_email, store=store)
    except ConfigurationError:
        # Already logged by the controller; the run never began.
        pass


@router.get("/status", response_model=ScanStatus, summary="Get the Progress of the Current Run")
def get_scan_status(settings: Settings = Depends(get_settings), store=Depends(get_state_store)):
    return run_status(settings=settings, store=store)


@router.post("/start", response_model=RunAccepted, status_code=status.HTTP_202_ACCEPTED, summary="Start a Cleanup Run")
def start_scan(background_tasks: BackgroundTasks, settings: Settings = Depends(get_settings),
               store=Depends(get_state_store), session=Depends(get_drive_session)):
    """
    Validates the configuration against the authenticated account and starts the run in the background.
    """
    drive_service, acting_email = session
    try:
        validate_target_emails(settings.TARGET_EMAILS, acting_email)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if build_state(settings, store=store).is_running():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A cleanup run is already in progress.")

    background_tasks.add_task(_start_in_background, settings, store, drive_service, acting_email)
    logging.info("Cleanup run accepted from API request.")
    return RunAccepted(status="accepted", target_emails=settings.TARGET_EMAILS)


@router.post("/stop", response_model=ScanStatus, summary="Stop the Current Run")
def stop_scan(settings: Settings = Depends(get_settings), store=Depends(get_state_store)):
    run_stop(settings=settings, store=store)
    return ScanStatus(is_running=False)


@router.get("/preview", response_model=PreviewResult, summary="Dry-Run Search for One Target Email")
def preview_scan(email: Optional[str] = None, limit: int = 10, settings: Settings = Depends(get_settings),
                 drive_service=Depends(get_drive_service)):
    result = run_preview(email=email, settings=settings, drive_service=drive_service, page_size=limit)
    if result is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No email given and no target emails configured.")
    if not result.get('success'):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.get('error', 'Search failed.'))
    return PreviewResult(email=result['email'], file_count=result['file_count'], files=result['files'])
