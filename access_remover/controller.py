import logging
from datetime import datetime, timezone

from access_remover.auth import authenticate_and_get_service, reset_authentication
from access_remover.config import ConfigurationError, settings as default_settings, validate_target_emails
from access_remover.diagnostics import preview_search, run_diagnostics
from access_remover.models import ScanStatus
from access_remover.notifier import create_notifier
from access_remover.scanner import BatchScanner
from access_remover.scheduler import ContinuationScheduler
from access_remover.state_store import JsonFileStateStore, ResumableState


def build_state(settings, scheduler=None, store=None):
    store = store if store is not None else JsonFileStateStore(settings.STATE_FILE)
    return ResumableState(store, scheduler=scheduler, max_log_size=settings.MAX_LOG_SIZE)


def build_scanner(drive_service, acting_email, settings, store=None, notifier=None):
    scheduler = ContinuationScheduler(default_delay=settings.RETRY_DELAY)
    state = build_state(settings, scheduler=scheduler, store=store)
    notifier = notifier or create_notifier(settings, acting_email)
    return BatchScanner(drive_service, state, scheduler, settings, notifier)


def _authenticate(settings):
    service, user_email = authenticate_and_get_service(settings.CREDENTIALS_DIR)
    if not service:
        logging.critical("Authentication failed.")
    return service, user_email


def _validate(target_emails, acting_email=None):
    try:
        validate_target_emails(target_emails, acting_email)
    except ConfigurationError as e:
        logging.critical(f"Configuration error: {e}")
        raise


def _run_until_idle(scanner):
    """Runs the current batch and every continuation it schedules. Returns the Summary if the run completed."""
    last = {'summary': scanner.run_batch()}

    def continuation():
        last['summary'] = scanner.run_batch()

    scanner.scheduler.run_pending(continuation)
    return last['summary']


def run_start(settings=None, drive_service=None, acting_email=None, store=None, notifier=None):
    settings = settings or default_settings
    logging.info("--- Starting Google Drive Email Access Remover ---")
    _validate(settings.TARGET_EMAILS)

    if drive_service is None:
        drive_service, acting_email = _authenticate(settings)
        if not drive_service:
            return None
    _validate(settings.TARGET_EMAILS, acting_email)

    scanner = build_scanner(drive_service, acting_email, settings, store=store, notifier=notifier)
    if not scanner.state.initialize(settings.TARGET_EMAILS[0]):
        return None

    logging.info(f"Target emails: {', '.join(settings.TARGET_EMAILS)}")
    logging.info("Starting batch processing...")
    return _run_until_idle(scanner)


def run_resume(settings=None, drive_service=None, acting_email=None, store=None, notifier=None):
    settings = settings or default_settings
    state = build_state(settings, store=store)
    cursor = state.load()
    if cursor is None:
        logging.info("No saved run to resume. Use the start command to begin cleanup.")
        return None

    _validate(settings.TARGET_EMAILS)
    if drive_service is None:
        drive_service, acting_email = _authenticate(settings)
        if not drive_service:
            return None
    _validate(settings.TARGET_EMAILS, acting_email)

    if cursor.is_running:
        logging.warning("Resuming a run that is marked as running; make sure no other process is working on it.")
    else:
        logging.info("Resuming a stopped run from its saved cursor.")
        state.mark_running()

    scanner = build_scanner(drive_service, acting_email, settings, store=store, notifier=notifier)
    return _run_until_idle(scanner)


def run_status(settings=None, store=None):
    settings = settings or default_settings
    cursor = build_state(settings, store=store).load()

    if cursor is None or not cursor.is_running:
        if cursor is not None:
            logging.warning(f"A stopped run is saved at {settings.STATE_FILE}. Use 'resume' to continue it or 'stop' to discard it.")
        else:
            logging.info("No process currently running. Use the start command to begin cleanup.")
        return ScanStatus(is_running=False, files_processed=cursor.processed_count if cursor else 0)

    running_minutes = round((datetime.now(timezone.utc) - cursor.start_time).total_seconds() / 60)
    total = len(settings.TARGET_EMAILS)
    logging.info("Process Status:")
    logging.info(f"   Current email: {cursor.current_email or 'None'} ({cursor.email_index + 1}/{total})")
    logging.info(f"   Files processed: {cursor.processed_count}")
    logging.info(f"   Started: {cursor.start_time.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
    logging.info(f"   Running time: {running_minutes} minutes")

    return ScanStatus(
        is_running=True,
        current_email=cursor.current_email or None,
        current_email_index=cursor.email_index + 1,
        total_emails=total,
        files_processed=cursor.processed_count,
        start_time=cursor.start_time,
        running_minutes=running_minutes,
    )


def run_stop(settings=None, store=None):
    settings = settings or default_settings
    build_state(settings, store=store).clear()
    logging.info("Process manually stopped. Run the start command to restart if needed.")
    return True


def run_diagnostics_check(settings=None, drive_service=None):
    settings = settings or default_settings
    logging.info("--- Running full diagnostics ---")
    if drive_service is None:
        drive_service, _ = _authenticate(settings)
        if not drive_service:
            return None
    return run_diagnostics(drive_service, settings.TARGET_EMAILS, include_all_drives=settings.INCLUDE_ALL_DRIVES)


def run_preview(email=None, settings=None, drive_service=None, page_size=10):
    settings = settings or default_settings
    email = email or (settings.TARGET_EMAILS[0] if settings.TARGET_EMAILS else None)
    if not email:
        logging.error("No email given and no target emails configured.")
        return None
    if drive_service is None:
        drive_service, _ = _authenticate(settings)
        if not drive_service:
            return None
    return preview_search(drive_service, email, page_size=page_size, include_all_drives=settings.INCLUDE_ALL_DRIVES)


def run_reset_auth(settings=None):
    settings = settings or default_settings
    return reset_authentication(settings.CREDENTIALS_DIR)
