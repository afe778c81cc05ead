import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from access_remover.models import OutcomeLog, ScanCursor

STATE_KEYS = {
    'CURRENT_EMAIL_INDEX': 'current_email_index',
    'NEXT_PAGE_TOKEN': 'next_page_token',
    'PROCESSED_COUNT': 'processed_count',
    'LOGS': 'process_logs',
    'START_TIME': 'start_time',
    'IS_RUNNING': 'is_running',
    'CURRENT_EMAIL': 'current_email',
    'RUN_ID': 'run_id'
}

# Share of the newest log entries kept when the serialized log outgrows its ceiling.
LOG_KEEP_RATIO = 0.7


class StateStore(ABC):
    """Persists the run cursor as a flat map of string keys to string values."""

    @abstractmethod
    def load(self) -> Optional[Dict[str, str]]:
        ...

    @abstractmethod
    def save(self, properties: Dict[str, str]) -> None:
        ...

    @abstractmethod
    def delete(self) -> None:
        ...


class MemoryStateStore(StateStore):

    def __init__(self):
        self._properties = None

    def load(self):
        return dict(self._properties) if self._properties is not None else None

    def save(self, properties):
        self._properties = dict(properties)

    def delete(self):
        self._properties = None


class JsonFileStateStore(StateStore):
    """Keeps the cursor in a JSON file so a run survives process restarts."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self):
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logging.error(f"Could not read state file '{self.path}': {e}")
            raise

    def save(self, properties):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.state-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(properties, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self):
        if self.path.exists():
            self.path.unlink()


class ResumableState:
    """
    The single active run cursor, backed by a StateStore.

    initialize() refuses to start while another run is marked as running and stamps the new
    cursor with a run id. Writes that pass a run_id only land on the cursor carrying that id,
    so a stopped or replaced run cannot write into its successor.
    """

    def __init__(self, store: StateStore, scheduler=None, max_log_size=8000):
        self.store = store
        self.scheduler = scheduler
        self.max_log_size = max_log_size

    def _properties(self):
        return self.store.load() or {}

    def is_running(self):
        return self._properties().get(STATE_KEYS['IS_RUNNING']) == 'true'

    def load(self) -> Optional[ScanCursor]:
        props = self.store.load()
        if not props:
            return None
        return ScanCursor(
            is_running=props.get(STATE_KEYS['IS_RUNNING']) == 'true',
            email_index=int(props.get(STATE_KEYS['CURRENT_EMAIL_INDEX']) or 0),
            page_token=props.get(STATE_KEYS['NEXT_PAGE_TOKEN']) or None,
            processed_count=int(props.get(STATE_KEYS['PROCESSED_COUNT']) or 0),
            start_time=props.get(STATE_KEYS['START_TIME']) or datetime.now(timezone.utc),
            current_email=props.get(STATE_KEYS['CURRENT_EMAIL']) or '',
            run_id=props.get(STATE_KEYS['RUN_ID']) or '',
            outcomes=self._decode_logs(props.get(STATE_KEYS['LOGS'])),
        )

    def _owned_properties(self, run_id):
        """The stored properties, or None when the cursor is gone or belongs to another run."""
        props = self.store.load()
        if not props:
            return None
        if run_id is not None and (props.get(STATE_KEYS['RUN_ID']) or '') != run_id:
            return None
        return props

    def initialize(self, first_email):
        """Creates a fresh cursor. Returns False, leaving the active cursor untouched, if a run is in progress."""
        if self.is_running():
            logging.warning("Process is already running. Use the status command to monitor progress.")
            return False
        if self.store.load():
            logging.warning("Discarding the cursor of a previous failed run.")

        self.store.save({
            STATE_KEYS['CURRENT_EMAIL_INDEX']: '0',
            STATE_KEYS['NEXT_PAGE_TOKEN']: '',
            STATE_KEYS['PROCESSED_COUNT']: '0',
            STATE_KEYS['LOGS']: json.dumps([]),
            STATE_KEYS['START_TIME']: datetime.now(timezone.utc).isoformat(),
            STATE_KEYS['IS_RUNNING']: 'true',
            STATE_KEYS['CURRENT_EMAIL']: first_email,
            STATE_KEYS['RUN_ID']: uuid.uuid4().hex
        })
        return True

    def update(self, page_token, processed_count, new_outcomes, email_index, current_email, run_id=None):
        """
        Appends a batch's outcomes and moves the cursor.
        Returns False without writing when the cursor was cleared or replaced by another run.
        """
        props = self._owned_properties(run_id)
        if props is None:
            logging.warning("Run cursor was cleared or replaced; discarding this batch's results.")
            return False

        logs = self._decode_logs(props.get(STATE_KEYS['LOGS'])) + list(new_outcomes)
        logs_json = OutcomeLog.dump_json(logs).decode('utf-8')
        if len(logs_json) > self.max_log_size:
            keep = int(len(logs) * LOG_KEEP_RATIO)
            logs = logs[len(logs) - keep:]
            logs_json = OutcomeLog.dump_json(logs).decode('utf-8')
            logging.info(f"Outcome log exceeded {self.max_log_size} characters, kept the newest {keep} entries.")

        props.update({
            STATE_KEYS['LOGS']: logs_json,
            STATE_KEYS['NEXT_PAGE_TOKEN']: page_token or '',
            STATE_KEYS['PROCESSED_COUNT']: str(processed_count),
            STATE_KEYS['CURRENT_EMAIL_INDEX']: str(email_index),
            STATE_KEYS['CURRENT_EMAIL']: current_email
        })
        self.store.save(props)
        return True

    def advance(self, email_index, current_email, run_id=None):
        props = self._owned_properties(run_id)
        if props is None:
            logging.warning("Run cursor was cleared or replaced; not advancing.")
            return False
        props.update({
            STATE_KEYS['CURRENT_EMAIL_INDEX']: str(email_index),
            STATE_KEYS['NEXT_PAGE_TOKEN']: '',
            STATE_KEYS['CURRENT_EMAIL']: current_email
        })
        self.store.save(props)
        return True

    def mark_running(self):
        props = self._properties()
        if not props:
            return False
        props[STATE_KEYS['IS_RUNNING']] = 'true'
        self.store.save(props)
        return True

    def mark_failed(self, run_id=None):
        props = self._owned_properties(run_id)
        if props:
            props[STATE_KEYS['IS_RUNNING']] = 'false'
            self.store.save(props)

    def clear(self):
        self.store.delete()
        if self.scheduler is not None:
            self.scheduler.cancel()

    @staticmethod
    def _decode_logs(logs_json):
        if not logs_json:
            return []
        try:
            return OutcomeLog.validate_json(logs_json)
        except ValidationError:
            logging.warning("Could not parse existing logs, starting fresh")
            return []
