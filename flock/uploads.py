"""
Upload Orchestrator
Drives user-selected files through storage write + metadata registration.

Each file is an Upload Unit moving through Validated -> Stored -> Registered.
A registration failure after a successful write issues a compensating delete
(Stored -> Validated) before the next attempt, so exhausted units do not leave
unreferenced objects behind.
"""

import os
import uuid
import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from . import crud
from .auth import RequestContext
from .cache import invalidate_event
from .core import UPLOAD_ATTEMPTS, UPLOAD_OUTCOMES, COMPENSATIONS
from .errors import ServiceError, ValidationError, NotFoundError
from .storage import StorageGateway, MEDIA_BUCKET, COVER_BUCKET

logger = logging.getLogger(__name__)

MiB = 1024 * 1024

# Upload Configuration
MAX_MOMENT_SIZE = int(os.getenv('FLOCK_MAX_MOMENT_SIZE', str(10 * MiB)))
MAX_COVER_SIZE = int(os.getenv('FLOCK_MAX_COVER_SIZE', str(5 * MiB)))
MAX_ATTEMPTS = 3
RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number
UPLOAD_CONCURRENT = os.getenv('FLOCK_UPLOAD_CONCURRENT', 'true').lower() not in ('0', 'false', 'no')


@dataclass(frozen=True)
class UploadPolicy:
    bucket: str
    max_size: int
    accept: tuple = ('image/',)
    max_attempts: int = MAX_ATTEMPTS
    retry_delay: float = RETRY_DELAY
    concurrent: bool = True


MOMENT_POLICY = UploadPolicy(bucket=MEDIA_BUCKET, max_size=MAX_MOMENT_SIZE, concurrent=UPLOAD_CONCURRENT)
COVER_POLICY = UploadPolicy(bucket=COVER_BUCKET, max_size=MAX_COVER_SIZE, concurrent=False)


@dataclass(frozen=True)
class PendingFile:
    name: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


class UnitState(Enum):
    VALIDATED = 'validated'
    STORED = 'stored'
    REGISTERED = 'registered'
    FAILED = 'failed'
    REJECTED = 'rejected'


@dataclass(frozen=True)
class UnitResult:
    file: PendingFile
    state: UnitState
    key: Optional[str] = None
    attempts: int = 0
    error: Optional[ServiceError] = None
    record: Any = None

    @property
    def ok(self) -> bool:
        return self.state is UnitState.REGISTERED


@dataclass(frozen=True)
class BatchResult:
    total: int
    success_count: int
    results: List[UnitResult]
    # exhausted-retry units only; the user can resubmit these
    pending: List[PendingFile]
    rejected: List[UnitResult]

    @property
    def progress(self) -> float:
        return self.success_count / self.total if self.total else 1.0


# register(ctx, file, key, bucket) -> record; raises ServiceError on failure
Register = Callable[[RequestContext, PendingFile, str, str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


def _mb(size: int) -> str:
    return f"{size // MiB}MB" if size % MiB == 0 else f"{size} bytes"


def validate(file: PendingFile, policy: UploadPolicy) -> None:
    """Client-side checks; a failure here is terminal and never reaches storage"""
    if file.size == 0:
        raise ValidationError(f"{file.name} is empty")
    if file.size > policy.max_size:
        raise ValidationError(
            f"{file.name} is too large. Maximum size is {_mb(policy.max_size)}",
            code='FILE_TOO_LARGE',
            status=413,
        )
    if policy.accept and not (file.content_type or '').startswith(tuple(policy.accept)):
        raise ValidationError(f"{file.name} has an unsupported type: {file.content_type or 'unknown'}",
                              code='UNSUPPORTED_TYPE', status=415)


def make_key(filename: str) -> str:
    """Unique storage key; the readable name is kept separately in metadata"""
    base = os.path.basename(filename or '') or 'file'
    return f"{base}-{uuid.uuid4()}"


def backoff_delay(attempt: int, base: float = RETRY_DELAY) -> float:
    """Linear backoff: wait base * attempt after the given failed attempt"""
    return base * attempt


async def _compensate(ctx: RequestContext, storage: StorageGateway, bucket: str, key: str) -> None:
    try:
        await storage.delete_object(ctx, bucket, key)
        COMPENSATIONS.labels(bucket, 'deleted').inc()
    except ServiceError as e:
        COMPENSATIONS.labels(bucket, 'failed').inc()
        logger.error({'msg': 'compensating_delete_failed', 'bucket': bucket, 'key': key, 'error': e.message})
    except Exception:
        COMPENSATIONS.labels(bucket, 'failed').inc()
        logger.exception({'msg': 'compensating_delete_crashed', 'bucket': bucket, 'key': key})


async def attempt_upload(ctx: RequestContext, storage: StorageGateway, file: PendingFile, key: str,
                         policy: UploadPolicy, register: Register, attempt: int) -> UnitResult:
    """One pass of the unit. Faults are returned as a result, never raised."""
    UPLOAD_ATTEMPTS.labels(policy.bucket).inc()
    try:
        await storage.put_object(ctx, policy.bucket, key, file.data, file.content_type)
    except ServiceError as e:
        logger.warning({'msg': 'upload_store_failed', 'key': key, 'attempt': attempt, 'error': e.message})
        return UnitResult(file, UnitState.VALIDATED, key, attempt, error=e)
    except Exception as e:
        logger.exception({'msg': 'upload_store_crashed', 'key': key, 'attempt': attempt})
        return UnitResult(file, UnitState.VALIDATED, key, attempt, error=ServiceError(str(e)))

    try:
        record = await register(ctx, file, key, policy.bucket)
    except Exception as e:
        error = e if isinstance(e, ServiceError) else ServiceError(str(e))
        logger.warning({'msg': 'upload_register_failed', 'key': key, 'attempt': attempt, 'error': error.message})
        await _compensate(ctx, storage, policy.bucket, key)
        return UnitResult(file, UnitState.VALIDATED, key, attempt, error=error)

    return UnitResult(file, UnitState.REGISTERED, key, attempt, record=record)


async def upload_unit(ctx: RequestContext, storage: StorageGateway, file: PendingFile, policy: UploadPolicy,
                      register: Register, sleep: Sleep = asyncio.sleep) -> UnitResult:
    try:
        validate(file, policy)
    except ValidationError as e:
        logger.info({'msg': 'upload_rejected', 'file': file.name, 'size': file.size, 'error': e.message})
        UPLOAD_OUTCOMES.labels(policy.bucket, 'rejected').inc()
        return UnitResult(file, UnitState.REJECTED, error=e)

    key = make_key(file.name)
    result = None
    for attempt in range(1, policy.max_attempts + 1):
        result = await attempt_upload(ctx, storage, file, key, policy, register, attempt)
        if result.ok:
            UPLOAD_OUTCOMES.labels(policy.bucket, 'registered').inc()
            return result
        if attempt < policy.max_attempts:
            delay = backoff_delay(attempt, policy.retry_delay)
            logger.info({'msg': 'upload_retry', 'key': key, 'attempt': attempt, 'delay': delay})
            await sleep(delay)

    logger.error({'msg': 'upload_exhausted', 'key': key, 'attempts': policy.max_attempts,
                  'error': result.error.message if result.error else None})
    UPLOAD_OUTCOMES.labels(policy.bucket, 'failed').inc()
    return replace(result, state=UnitState.FAILED)


async def upload_batch(ctx: RequestContext, storage: StorageGateway, files: List[PendingFile], policy: UploadPolicy,
                       register: Register, on_progress: Optional[Callable[[int, int], Any]] = None,
                       sleep: Sleep = asyncio.sleep) -> BatchResult:
    """Run every unit to a terminal state. Units are independent; nothing fails fast."""
    total = len(files)

    async def run(index: int, file: PendingFile):
        return index, await upload_unit(ctx, storage, file, policy, register, sleep=sleep)

    units = [run(i, f) for i, f in enumerate(files)]
    ordered: List[Optional[UnitResult]] = [None] * total
    success_count = 0

    completions = asyncio.as_completed(units) if policy.concurrent else units
    for pending_unit in completions:
        index, result = await pending_unit
        ordered[index] = result
        if result.ok:
            success_count += 1
            if on_progress:
                on_progress(success_count, total)

    results = [r for r in ordered if r is not None]
    return BatchResult(
        total=total,
        success_count=success_count,
        results=results,
        pending=[r.file for r in results if r.state is UnitState.FAILED],
        rejected=[r for r in results if r.state is UnitState.REJECTED],
    )


def register_moment(storage: StorageGateway, event_id: int) -> Register:
    """Registration step for gallery moments: one row per stored object"""
    async def register(ctx: RequestContext, file: PendingFile, key: str, bucket: str):
        return await crud.insert_moment(
            ctx,
            key=key,
            name=file.name,
            event_id=event_id,
            size=file.size,
            type=file.content_type,
            bucket=bucket,
            file_path=storage.public_path(bucket, key),
        )
    return register


async def upload_moments(ctx: RequestContext, storage: StorageGateway, event_id: int, files: List[PendingFile],
                         policy: UploadPolicy = MOMENT_POLICY, on_progress=None,
                         sleep: Sleep = asyncio.sleep) -> BatchResult:
    event = await crud.get_event(ctx, event_id)
    if not event:
        raise NotFoundError('Event not found')

    result = await upload_batch(ctx, storage, files, policy, register_moment(storage, event_id),
                                on_progress=on_progress, sleep=sleep)
    logger.info({'msg': 'upload_batch_done', 'event_id': event_id, 'total': result.total,
                 'success_count': result.success_count, 'pending': len(result.pending),
                 'rejected': len(result.rejected)})
    if result.success_count:
        await invalidate_event(ctx.user_id, event_id)
    return result
