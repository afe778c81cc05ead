from access_remover.controller import build_scanner, run_stop
from access_remover.scanner import build_search_query
from access_remover.state_store import MemoryStateStore
from conftest import make_http_error

ALICE = 'alice@example.com'
BOB = 'bob@example.com'


def _run(scanner, scheduler):
    """Runs a batch and all its continuations. Returns (invocations, last result)."""
    results = [scanner.run_batch()]
    invocations = 1 + scheduler.run_pending(lambda: results.append(scanner.run_batch()))
    return invocations, results[-1]


class StepClock:
    def __init__(self, step):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


def test_search_query_covers_readers_writers_and_owners():
    assert build_search_query(ALICE) == (
        "'alice@example.com' in readers or 'alice@example.com' in writers or 'alice@example.com' in owners"
    )


def test_search_query_escapes_quotes():
    assert build_search_query("o'neil@example.com").startswith("'o\\'neil@example.com' in readers")


def test_thirty_seven_files_take_three_batches(drive, notifier, make_scanner):
    for n in range(37):
        drive.add_file(f'f{n:02d}', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner(BATCH_SIZE=15)
    state.initialize(ALICE)

    invocations, summary = _run(scanner, scheduler)

    assert invocations == 3
    page_sizes = [c['pageSize'] for c in drive.list_calls]
    assert page_sizes == [15, 15, 15]
    assert [c.get('pageToken') for c in drive.list_calls] == [None, '15', '30']
    assert summary.total_files == 37
    assert notifier.summaries == [summary]
    assert state.load() is None
    # The default log ceiling drops the oldest outcomes, so the summary undercounts removals here.
    assert summary.total_removals < 37
    assert not any(p['emailAddress'] == ALICE for perms in drive.permissions_by_file.values() for p in perms)


def test_summary_counts_every_removal_when_the_log_fits(drive, make_scanner):
    for n in range(37):
        drive.add_file(f'f{n:02d}', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner(BATCH_SIZE=15, MAX_LOG_SIZE=1_000_000)
    state.initialize(ALICE)

    _, summary = _run(scanner, scheduler)

    assert summary.total_removals == 37
    assert summary.by_email[ALICE].files_found == 37


def test_page_with_next_token_keeps_address_and_persists_cursor(drive, make_scanner):
    for n in range(20):
        drive.add_file(f'f{n:02d}', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner(BATCH_SIZE=15)
    state.initialize(ALICE)

    assert scanner.run_batch() is None

    cursor = state.load()
    assert cursor.email_index == 0
    assert cursor.page_token == '15'
    assert cursor.processed_count == 15
    assert len(cursor.outcomes) == 15
    assert scheduler.has_pending


def test_summary_counts_files_per_address(drive, notifier, make_scanner):
    drive.add_file('shared', shared_with=[BOB])
    drive.add_file('unrelated', shared_with=['carol@example.com'])
    scanner, state, scheduler = make_scanner(TARGET_EMAILS=[ALICE, BOB])
    state.initialize(ALICE)

    invocations, summary = _run(scanner, scheduler)

    assert invocations == 2
    assert summary.by_email[ALICE].files_found == 0
    assert summary.by_email[BOB].files_found == 1
    assert summary.by_email[BOB].removals == 1


def test_blocked_delete_is_grouped_for_manual_review(drive, make_scanner):
    drive.add_file('locked', name='Board Minutes', shared_with=[ALICE], role='writer', owner='ceo@example.com')
    drive.delete_errors['locked'] = make_http_error(403, 'Insufficient permissions')
    scanner, state, scheduler = make_scanner()
    state.initialize(ALICE)

    _, summary = _run(scanner, scheduler)

    assert summary.total_found_but_blocked == 1
    review = summary.by_email[ALICE].needs_manual_review
    assert len(review) == 1
    assert review[0].role == 'writer'
    assert review[0].link == 'https://drive.google.com/file/d/locked/view'
    assert review[0].owner_email == 'ceo@example.com'
    assert summary.files_needing_manual_review[0].email == ALICE


def test_second_run_removes_nothing(drive, make_scanner):
    for n in range(4):
        drive.add_file(f'f{n}', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner()

    state.initialize(ALICE)
    _, first = _run(scanner, scheduler)
    state.initialize(ALICE)
    _, second = _run(scanner, scheduler)

    assert first.total_removals == 4
    assert second.total_removals == 0
    assert second.total_files == 0


def test_time_ceiling_pauses_on_the_same_page(drive, make_scanner):
    for n in range(5):
        drive.add_file(f'f{n}', shared_with=[ALICE])
    # Every clock read advances 100s: two files fit under a 250s ceiling.
    scanner, state, scheduler = make_scanner(clock=StepClock(100), MAX_EXECUTION_TIME=250)
    state.initialize(ALICE)

    assert scanner.run_batch() is None

    cursor = state.load()
    assert cursor.processed_count == 2
    assert cursor.page_token is None
    assert cursor.email_index == 0
    assert scheduler.has_pending

    invocations, summary = _run(scanner, scheduler)

    assert all(c.get('pageToken') is None for c in drive.list_calls)
    assert summary.total_removals == 5
    assert summary.total_errors == 0


def test_unexpected_failure_stops_the_run(drive, notifier, make_scanner):
    drive.add_file('f1', shared_with=[ALICE])
    drive.search_error = make_http_error(500, 'Backend Error')
    scanner, state, scheduler = make_scanner()
    state.initialize(ALICE)

    assert scanner.run_batch() is None

    cursor = state.load()
    assert cursor is not None
    assert not cursor.is_running
    assert not scheduler.has_pending
    assert len(notifier.errors) == 1
    assert 'Backend Error' in str(notifier.errors[0])


def test_stopped_run_is_not_processed(drive, make_scanner):
    drive.add_file('f1', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner()
    state.initialize(ALICE)
    state.clear()

    assert scanner.run_batch() is None
    assert drive.list_calls == []
    assert not scheduler.has_pending


def test_completion_writes_report_files(drive, make_scanner, tmp_path):
    drive.add_file('f1', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner()
    state.initialize(ALICE)

    _run(scanner, scheduler)

    assert list((tmp_path / 'archives').glob('*_cleanup_outcomes.csv'))
    assert list((tmp_path / 'reports').glob('*_manual_review.xlsx'))


def test_stopped_loop_does_not_drive_the_next_run(drive, notifier, make_settings):
    for n in range(12):
        drive.add_file(f'f{n:02d}', shared_with=[ALICE])
    settings = make_settings(BATCH_SIZE=5)
    store = MemoryStateStore()
    first = build_scanner(drive, 'me@example.com', settings, store=store, notifier=notifier)
    first.state.initialize(ALICE)
    first.run_batch()
    assert first.scheduler.has_pending

    run_stop(settings=settings, store=store)
    second = build_scanner(drive, 'me@example.com', settings, store=store, notifier=notifier)
    second.state.initialize(ALICE)
    second.run_batch()
    searches_before = len(drive.list_calls)

    assert first.scheduler.run_pending(first.run_batch) == 1
    assert len(drive.list_calls) == searches_before
    assert not first.scheduler.has_pending
    assert store.load().run_id == second.run_id

    second.scheduler.run_pending(second.run_batch)
    assert len(notifier.summaries) == 1
    assert store.load() is None


def _clear_on_first_permission_call(drive, state):
    permissions = drive.permissions

    def clearing_permissions():
        state.clear()
        return permissions()

    drive.permissions = clearing_permissions


def test_stop_during_a_batch_discards_its_results(drive, notifier, make_scanner):
    drive.add_file('f1', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner(TARGET_EMAILS=[ALICE, BOB])
    state.initialize(ALICE)
    _clear_on_first_permission_call(drive, state)

    assert scanner.run_batch() is None

    assert state.load() is None
    assert not scheduler.has_pending
    assert notifier.summaries == []


def test_stop_during_the_last_batch_sends_no_summary(drive, notifier, make_scanner, tmp_path):
    drive.add_file('f1', shared_with=[ALICE])
    scanner, state, scheduler = make_scanner()
    state.initialize(ALICE)
    _clear_on_first_permission_call(drive, state)

    assert scanner.run_batch() is None

    assert state.load() is None
    assert notifier.summaries == []
    assert not (tmp_path / 'archives').exists()
