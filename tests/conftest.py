"""Shared fixtures: an in-memory stand-in for the Drive v3 service and test settings."""

import re

import httplib2
import pytest
from googleapiclient.errors import HttpError

from access_remover.config import Settings
from access_remover.scanner import BatchScanner
from access_remover.scheduler import ContinuationScheduler
from access_remover.state_store import MemoryStateStore, ResumableState

EMAIL_IN_QUERY = re.compile(r"^'((?:[^'\\]|\\.)+)' in readers")


def make_http_error(status, message="error"):
    content = ('{"error": {"code": %d, "message": "%s"}}' % (status, message)).encode('utf-8')
    return HttpError(httplib2.Response({'status': status}), content)


class FakeRequest:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeFilesResource:
    def __init__(self, drive):
        self.drive = drive

    def list(self, **kwargs):
        self.drive.list_calls.append(kwargs)
        return FakeRequest(lambda: self.drive.search(**kwargs))


class FakePermissionsResource:
    def __init__(self, drive):
        self.drive = drive

    def list(self, fileId, **kwargs):
        def run():
            if fileId in self.drive.list_errors:
                raise self.drive.list_errors[fileId]
            return {'permissions': [dict(p) for p in self.drive.permissions_by_file.get(fileId, [])]}
        return FakeRequest(run)

    def delete(self, fileId, permissionId, **kwargs):
        def run():
            self.drive.delete_calls.append((fileId, permissionId))
            if fileId in self.drive.delete_errors:
                raise self.drive.delete_errors[fileId]
            perms = self.drive.permissions_by_file.get(fileId, [])
            self.drive.permissions_by_file[fileId] = [p for p in perms if p['id'] != permissionId]
            return ''
        return FakeRequest(run)


class FakeDriveService:
    """
    Mimics the chained googleapiclient resources used by the scanner.

    Search results are snapshotted when a query is first asked for without a page token,
    so later pages stay stable while permissions are being removed.
    """

    def __init__(self):
        self.files_by_id = {}
        self.permissions_by_file = {}
        self.list_errors = {}
        self.delete_errors = {}
        self.search_error = None
        self.list_calls = []
        self.delete_calls = []
        self._snapshots = {}

    def add_file(self, file_id, name=None, mime_type='application/vnd.google-apps.document',
                 shared_with=(), role='writer', owner='owner@example.com'):
        self.files_by_id[file_id] = {'id': file_id, 'name': name or file_id, 'mimeType': mime_type,
                                     'owners': [{'emailAddress': owner}]}
        perms = [{'id': f'perm-owner-{file_id}', 'type': 'user', 'role': 'owner', 'emailAddress': owner}]
        for i, email in enumerate(shared_with):
            perms.append({'id': f'perm-{i}-{file_id}', 'type': 'user', 'role': role, 'emailAddress': email})
        self.permissions_by_file[file_id] = perms

    def files(self):
        return FakeFilesResource(self)

    def permissions(self):
        return FakePermissionsResource(self)

    def search(self, q=None, pageSize=100, pageToken=None, **kwargs):
        if self.search_error is not None:
            raise self.search_error
        if pageToken is None or q not in self._snapshots:
            email = EMAIL_IN_QUERY.match(q).group(1).replace("\\'", "'") if q else None
            self._snapshots[q] = [
                dict(f) for fid, f in self.files_by_id.items()
                if email is None or any(p.get('emailAddress') == email for p in self.permissions_by_file.get(fid, []))
            ]
        results = self._snapshots[q]
        offset = int(pageToken or 0)
        page = results[offset:offset + pageSize]
        if 'permissions(' in kwargs.get('fields', ''):
            page = [dict(f, permissions=[dict(p) for p in self.permissions_by_file.get(f['id'], [])]) for f in page]
        response = {'files': page}
        if offset + pageSize < len(results):
            response['nextPageToken'] = str(offset + pageSize)
        return response


class RecordingNotifier:
    def __init__(self):
        self.summaries = []
        self.errors = []

    def send_summary(self, summary):
        self.summaries.append(summary)
        return True

    def send_error(self, error):
        self.errors.append(error)
        return True


@pytest.fixture
def drive():
    return FakeDriveService()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_settings(tmp_path):
    def factory(**overrides):
        values = {
            'TARGET_EMAILS': ['alice@example.com'],
            'RETRY_DELAY': 0,
            'STATE_FILE': str(tmp_path / 'state' / 'scan_state.json'),
            'REPORTS_DIR': str(tmp_path / 'reports'),
            'ARCHIVES_DIR': str(tmp_path / 'archives'),
            'CREDENTIALS_DIR': str(tmp_path / 'credentials'),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return factory


@pytest.fixture
def make_scanner(drive, notifier, make_settings):
    """Builds a scanner wired to an in-memory state store, returning (scanner, state, scheduler)."""
    def factory(clock=None, **setting_overrides):
        settings = make_settings(**setting_overrides)
        scheduler = ContinuationScheduler(default_delay=settings.RETRY_DELAY)
        state = ResumableState(MemoryStateStore(), scheduler=scheduler, max_log_size=settings.MAX_LOG_SIZE)
        kwargs = {'clock': clock} if clock is not None else {}
        scanner = BatchScanner(drive, state, scheduler, settings, notifier, **kwargs)
        return scanner, state, scheduler
    return factory
