import pytest

from access_remover import controller
from access_remover.config import ConfigurationError
from access_remover.state_store import MemoryStateStore, ResumableState

ALICE = 'alice@example.com'


def test_run_start_completes_and_clears_state(drive, notifier, make_settings):
    drive.add_file('f1', shared_with=[ALICE])
    drive.add_file('f2', shared_with=[ALICE])
    store = MemoryStateStore()

    summary = controller.run_start(settings=make_settings(), drive_service=drive, acting_email='me@example.com',
                                   store=store, notifier=notifier)

    assert summary.total_removals == 2
    assert notifier.summaries == [summary]
    assert store.load() is None
    assert not controller.run_status(settings=make_settings(), store=store).is_running


def test_run_start_rejects_acting_account_as_target(drive, notifier, make_settings):
    settings = make_settings(TARGET_EMAILS=['me@example.com'])

    with pytest.raises(ConfigurationError):
        controller.run_start(settings=settings, drive_service=drive, acting_email='ME@example.com',
                             store=MemoryStateStore(), notifier=notifier)
    assert drive.list_calls == []


def test_run_start_rejects_empty_targets(drive, make_settings):
    with pytest.raises(ConfigurationError):
        controller.run_start(settings=make_settings(TARGET_EMAILS=[]), drive_service=drive, store=MemoryStateStore())


def test_run_start_refuses_while_running(drive, notifier, make_settings):
    store = MemoryStateStore()
    ResumableState(store).initialize(ALICE)

    assert controller.run_start(settings=make_settings(), drive_service=drive, store=store, notifier=notifier) is None
    assert drive.list_calls == []


def test_run_status_reports_progress(make_settings):
    store = MemoryStateStore()
    state = ResumableState(store)
    state.initialize(ALICE)
    state.update('15', 15, [], 0, ALICE)

    status = controller.run_status(settings=make_settings(TARGET_EMAILS=[ALICE, 'bob@example.com']), store=store)

    assert status.is_running
    assert status.current_email == ALICE
    assert status.current_email_index == 1
    assert status.total_emails == 2
    assert status.files_processed == 15
    assert status.running_minutes == 0


def test_run_stop_discards_the_cursor(make_settings):
    store = MemoryStateStore()
    ResumableState(store).initialize(ALICE)

    assert controller.run_stop(settings=make_settings(), store=store) is True
    assert store.load() is None


def test_run_resume_continues_a_failed_run(drive, notifier, make_settings):
    for n in range(3):
        drive.add_file(f'f{n}', shared_with=[ALICE])
    store = MemoryStateStore()
    state = ResumableState(store)
    state.initialize(ALICE)
    state.mark_failed()

    summary = controller.run_resume(settings=make_settings(), drive_service=drive, acting_email='me@example.com',
                                    store=store, notifier=notifier)

    assert summary.total_removals == 3
    assert store.load() is None


def test_run_resume_without_saved_run(drive, make_settings):
    assert controller.run_resume(settings=make_settings(), drive_service=drive, store=MemoryStateStore()) is None


def test_run_preview_defaults_to_first_target(drive, make_settings):
    drive.add_file('f1', name='Roadmap', shared_with=[ALICE], role='commenter')

    result = controller.run_preview(settings=make_settings(), drive_service=drive)

    assert result['email'] == ALICE
    assert result['files'] == [{'id': 'f1', 'name': 'Roadmap', 'file_type': 'Google Docs', 'role': 'commenter'}]
    assert drive.delete_calls == []


def test_run_start_authenticates_when_no_service_given(drive, notifier, make_settings, monkeypatch):
    monkeypatch.setattr(controller, 'authenticate_and_get_service', lambda credentials_dir: (drive, 'me@example.com'))

    summary = controller.run_start(settings=make_settings(), store=MemoryStateStore(), notifier=notifier)

    assert summary.total_files == 0


def test_run_start_stops_when_authentication_fails(make_settings, monkeypatch):
    monkeypatch.setattr(controller, 'authenticate_and_get_service', lambda credentials_dir: (None, None))

    assert controller.run_start(settings=make_settings(), store=MemoryStateStore()) is None
