import logging
import time

from access_remover.models import DriveItem
from access_remover.permission_manager import process_file
from access_remover.report_generator import generate_summary
from access_remover.spreadsheet_handler import save_run_reports

SEARCH_FIELDS = 'nextPageToken, files(id, name, mimeType, owners(emailAddress))'


def _quote(value):
    return value.replace('\\', '\\\\').replace("'", "\\'")


def build_search_query(email):
    """Drive query for files where the address is a reader, writer or owner."""
    quoted = _quote(email)
    return f"'{quoted}' in readers or '{quoted}' in writers or '{quoted}' in owners"


class BatchScanner:
    """
    Runs one bounded batch per call: one page of search results for the current target,
    cut short when the time ceiling is reached. All position data lives in the state store.
    """

    def __init__(self, drive_service, state, scheduler, settings, notifier, target_emails=None, clock=time.monotonic,
                 run_id=None):
        self.drive_service = drive_service
        self.state = state
        self.scheduler = scheduler
        self.settings = settings
        self.notifier = notifier
        self.target_emails = list(target_emails if target_emails is not None else settings.TARGET_EMAILS)
        self._clock = clock
        # Adopted from the cursor on the first batch; later batches only touch that run.
        self.run_id = run_id

    def run_batch(self):
        """Processes one batch. Returns the Summary when this batch finished the run, otherwise None."""
        started = self._clock()
        try:
            cursor = self.state.load()
            if cursor is None or not cursor.is_running:
                logging.info("No active run; nothing to do.")
                return None
            if self.run_id is None:
                self.run_id = cursor.run_id
            elif cursor.run_id != self.run_id:
                logging.info("The active run was started by another scan; this continuation stops here.")
                return None

            if cursor.email_index >= len(self.target_emails):
                return self._complete()

            email = self.target_emails[cursor.email_index]
            logging.info(f"Processing: {email} ({cursor.email_index + 1}/{len(self.target_emails)})")

            response = self._search_page(email, cursor.page_token)
            files = response.get('files', [])
            logging.info(f"Found {len(files)} files shared with {email}")

            outcomes = []
            timed_out = False
            for item in files:
                if self._clock() - started > self.settings.MAX_EXECUTION_TIME:
                    logging.warning("Approaching execution time limit, stopping batch")
                    timed_out = True
                    break
                outcomes.append(process_file(self.drive_service, DriveItem.from_api(item), email,
                                             supports_all_drives=self.settings.INCLUDE_ALL_DRIVES))

            next_page_token = cursor.page_token if timed_out else response.get('nextPageToken')
            if not self.state.update(next_page_token, cursor.processed_count + len(outcomes), outcomes,
                                     cursor.email_index, email, run_id=self.run_id):
                return None

            if timed_out or next_page_token:
                self.scheduler.schedule_continuation(self.settings.RETRY_DELAY)
                return None
            return self._move_to_next_email(cursor.email_index)

        except Exception as e:
            logging.exception(f"Error in run_batch: {e}")
            self._handle_process_error(e)
            return None

    def _search_page(self, email, page_token):
        params = {
            'q': build_search_query(email),
            'pageSize': self.settings.BATCH_SIZE,
            'fields': SEARCH_FIELDS,
        }
        if page_token:
            params['pageToken'] = page_token
        if self.settings.INCLUDE_ALL_DRIVES:
            params['includeItemsFromAllDrives'] = True
            params['supportsAllDrives'] = True
        return self.drive_service.files().list(**params).execute()

    def _move_to_next_email(self, email_index):
        next_index = email_index + 1
        if next_index >= len(self.target_emails):
            return self._complete()

        next_email = self.target_emails[next_index]
        if not self.state.advance(next_index, next_email, run_id=self.run_id):
            return None
        logging.info(f"Moving to next email: {next_email}")
        self.scheduler.schedule_continuation(self.settings.RETRY_DELAY)
        return None

    def _complete(self):
        logging.info("All emails processed! Generating summary...")
        cursor = self.state.load()
        if cursor is None or cursor.run_id != self.run_id:
            logging.warning("Run cursor was cleared or replaced before completion; no summary sent.")
            return None
        summary = generate_summary(cursor.outcomes, cursor.processed_count, cursor.start_time, self.target_emails)

        save_run_reports(cursor.outcomes, self.settings.REPORTS_DIR, self.settings.ARCHIVES_DIR)
        self.notifier.send_summary(summary)

        self.state.clear()
        self.run_id = None
        logging.info("Cleanup process completed successfully!")
        return summary

    def _handle_process_error(self, error):
        logging.critical(f"Critical error occurred, the run has been stopped: {error}")
        try:
            self.state.mark_failed(run_id=self.run_id)
        except Exception as e:
            logging.error(f"Could not mark the run as failed: {e}")
        self.notifier.send_error(error)
