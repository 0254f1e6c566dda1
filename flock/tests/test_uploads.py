import pytest
from dataclasses import replace

from flock import uploads
from flock.errors import DbError, NotFoundError, ValidationError
from flock.uploads import (
    MiB,
    MOMENT_POLICY,
    PendingFile,
    UnitState,
    backoff_delay,
    make_key,
    upload_batch,
    upload_unit,
    validate,
)

POLICY = replace(MOMENT_POLICY, bucket='moments', max_size=10 * MiB)


def jpeg(name='photo.jpg', size=2 * MiB):
    return PendingFile(name=name, content_type='image/jpeg', data=b'\xff' * size)


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def registry(fail_times=0):
    """Registration step that fails `fail_times` times, then records rows in memory"""
    rows = []
    state = {'failures': fail_times}

    async def register(ctx, file, key, bucket):
        if state['failures']:
            state['failures'] -= 1
            raise DbError('insert failed')
        row = {'key': key, 'name': file.name, 'size': file.size, 'type': file.content_type, 'bucket': bucket}
        rows.append(row)
        return row

    register.rows = rows
    return register


def test_validate_rejects_oversize_with_limit_in_message():
    with pytest.raises(ValidationError) as exc:
        validate(jpeg('big.jpg', 11 * MiB), POLICY)
    assert exc.value.code == 'FILE_TOO_LARGE'
    assert exc.value.status == 413
    assert 'big.jpg is too large. Maximum size is 10MB' == exc.value.message


def test_validate_rejects_non_images_and_empty_files():
    with pytest.raises(ValidationError) as exc:
        validate(PendingFile('notes.pdf', 'application/pdf', b'%PDF'), POLICY)
    assert exc.value.code == 'UNSUPPORTED_TYPE'

    with pytest.raises(ValidationError):
        validate(PendingFile('empty.png', 'image/png', b''), POLICY)


def test_validate_accepts_file_at_the_limit():
    validate(jpeg(size=10 * MiB), POLICY)


def test_make_key_keeps_filename_and_is_unique():
    keys = {make_key('dir/holiday.jpg') for _ in range(50)}
    assert len(keys) == 50
    assert all(k.startswith('holiday.jpg-') for k in keys)


def test_backoff_is_linear():
    assert [backoff_delay(n, 1.0) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]
    assert backoff_delay(2, 0.5) == 1.0


@pytest.mark.asyncio
async def test_oversize_file_never_reaches_storage(storage, ctx):
    register = registry()
    result = await upload_batch(ctx, storage, [jpeg('huge.jpg', 11 * MiB)], POLICY, register, sleep=Recorder())

    assert result.success_count == 0
    assert result.pending == []
    assert [r.error.code for r in result.rejected] == ['FILE_TOO_LARGE']
    assert storage.calls == []
    assert register.rows == []


@pytest.mark.asyncio
async def test_storage_recovers_on_third_attempt(storage, ctx):
    storage.put_failures = 2
    sleep = Recorder()
    register = registry()

    result = await upload_unit(ctx, storage, jpeg(), POLICY, register, sleep=sleep)

    assert result.ok
    assert result.state is UnitState.REGISTERED
    assert result.attempts == 3
    assert sleep.delays == [1.0, 2.0]
    assert sum(sleep.delays) >= 3.0
    puts = [c for c in storage.calls if c[0] == 'put']
    # every attempt rewrites the same key
    assert len(puts) == 3 and len({c[2] for c in puts}) == 1
    assert register.rows[0]['key'] == result.key


@pytest.mark.asyncio
async def test_exhausted_storage_failures_mark_unit_failed(storage, ctx):
    storage.put_failures = 5
    sleep = Recorder()

    result = await upload_unit(ctx, storage, jpeg(), POLICY, registry(), sleep=sleep)

    assert result.state is UnitState.FAILED
    assert result.attempts == POLICY.max_attempts
    assert result.error.code == 'InternalError'
    assert len(sleep.delays) == POLICY.max_attempts - 1


@pytest.mark.asyncio
async def test_non_200_put_is_a_storage_fault(storage, ctx):
    storage.put_status = 503
    result = await upload_unit(ctx, storage, jpeg(), POLICY, registry(), sleep=Recorder())
    assert result.state is UnitState.FAILED
    assert result.error.code == 'UPLOAD_REJECTED'


@pytest.mark.asyncio
async def test_registration_failure_compensates_before_retry(storage, ctx):
    register = registry(fail_times=1)

    result = await upload_unit(ctx, storage, jpeg(), POLICY, register, sleep=Recorder())

    assert result.ok and result.attempts == 2
    ops = [c[0] for c in storage.calls]
    assert ops == ['put', 'delete', 'put']
    assert storage.keys('moments') == [result.key]


@pytest.mark.asyncio
async def test_exhausted_registration_leaves_no_orphan_object(storage, ctx):
    register = registry(fail_times=10)

    result = await upload_unit(ctx, storage, jpeg(), POLICY, register, sleep=Recorder())

    assert result.state is UnitState.FAILED
    assert result.error.code == 'DB_ERROR'
    assert storage.keys('moments') == []
    assert [c[0] for c in storage.calls].count('delete') == POLICY.max_attempts


@pytest.mark.asyncio
async def test_failed_compensation_does_not_change_outcome(storage, ctx, monkeypatch):
    monkeypatch.setattr(uploads, 'make_key', lambda name: 'fixed-key')
    storage.delete_failures.add('fixed-key')
    register = registry(fail_times=1)

    result = await upload_unit(ctx, storage, jpeg(), POLICY, register, sleep=Recorder())

    assert result.ok
    assert result.key == 'fixed-key'


@pytest.mark.asyncio
async def test_crashing_compensation_does_not_abort_batch(storage, ctx, monkeypatch):
    async def crash(ctx, bucket, key):
        raise RuntimeError('connection pool closed')

    monkeypatch.setattr(storage, 'delete_object', crash)
    failed_once = set()

    async def register(ctx, file, key, bucket):
        if file.name == 'b.jpg' and file.name not in failed_once:
            failed_once.add(file.name)
            raise DbError('insert failed')
        return {'key': key}

    files = [jpeg('a.jpg', 10), jpeg('b.jpg', 10), jpeg('c.jpg', 10)]
    result = await upload_batch(ctx, storage, files, POLICY, register, sleep=Recorder())

    assert result.success_count == 3
    assert [r.attempts for r in result.results] == [1, 2, 1]
    assert result.pending == []


@pytest.mark.asyncio
async def test_batch_pending_is_exactly_the_exhausted_units(storage, ctx, monkeypatch):
    files = [jpeg('a.jpg'), jpeg('b.jpg'), jpeg('huge.jpg', 11 * MiB), jpeg('c.jpg')]

    async def register(ctx, file, key, bucket):
        if file.name == 'b.jpg':
            raise DbError('insert failed')
        return {'key': key}

    progress = []
    result = await upload_batch(ctx, storage, files, POLICY, register,
                                on_progress=lambda done, total: progress.append((done, total)), sleep=Recorder())

    assert result.total == 4
    assert result.success_count == 2
    assert [f.name for f in result.pending] == ['b.jpg']
    assert [r.file.name for r in result.rejected] == ['huge.jpg']
    assert [r.file.name for r in result.results] == ['a.jpg', 'b.jpg', 'huge.jpg', 'c.jpg']
    assert progress == [(1, 4), (2, 4)]
    assert result.progress == 0.5


@pytest.mark.asyncio
async def test_sequential_batch_runs_units_in_order(storage, ctx):
    policy = replace(POLICY, concurrent=False)
    files = [jpeg(f'{n}.jpg', 10) for n in range(4)]

    result = await upload_batch(ctx, storage, files, policy, registry(), sleep=Recorder())

    assert result.success_count == 4
    put_names = [c[2].split('-')[0] for c in storage.calls if c[0] == 'put']
    assert put_names == ['0.jpg', '1.jpg', '2.jpg', '3.jpg']


@pytest.mark.asyncio
async def test_empty_batch_reports_complete(storage, ctx):
    result = await upload_batch(ctx, storage, [], POLICY, registry())
    assert result.total == 0 and result.progress == 1.0


@pytest.mark.asyncio
async def test_upload_moments_requires_owned_event(db, storage, ctx):
    with pytest.raises(NotFoundError):
        await uploads.upload_moments(ctx, storage, 999, [jpeg()], policy=POLICY, sleep=Recorder())
