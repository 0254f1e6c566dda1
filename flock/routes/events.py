from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, UploadFile
from .. import uploads
from ..auth import RequestContext, get_current_user
from ..cache import check_rate_limit
from ..crud import get_event, list_events
from ..errors import ok, NotFoundError, ServiceError
from ..events import (
    create_event,
    update_event,
    delete_event,
    get_event_detail,
    set_cover,
    event_dict,
    validate_update,
)
from ..gallery import load_page, PAGE_SIZE
from ..schemas.events import EventCreateIn, EventUpdateIn, EventDeleteOut, CohostOut
from ..schemas.moments import MomentOut, GalleryImageOut, MomentPageOut, UploadBatchOut, UploadFailureOut
from ..storage import StorageGateway, get_storage

router = APIRouter()

UPLOAD_RATE_LIMIT = 500  # files per user per hour


async def _pending(files: List[UploadFile]) -> List[uploads.PendingFile]:
    pending = []
    for f in files:
        data = await f.read()
        pending.append(uploads.PendingFile(name=f.filename or 'file', content_type=f.content_type or '', data=data))
    return pending


def _failure(result: uploads.UnitResult) -> UploadFailureOut:
    err = result.error
    return UploadFailureOut(
        name=result.file.name,
        code=err.code if err else 'UNKNOWN_ERROR',
        message=err.message if err else 'Upload failed',
        attempts=result.attempts,
    )


@router.post('', status_code=201)
async def create(payload: EventCreateIn, ctx: RequestContext = Depends(get_current_user)):
    event, cohosts = await create_event(ctx, payload)
    data = event_dict(event)
    data['cohosts'] = [CohostOut.model_validate(c).model_dump(mode='json') for c in cohosts]
    return ok(data)


@router.get('')
async def list_own(ctx: RequestContext = Depends(get_current_user)):
    events = await list_events(ctx)
    return ok([event_dict(e) for e in events])


@router.get('/{event_id}')
async def detail(
    event_id: int,
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    return ok(await get_event_detail(ctx, storage, event_id))


@router.patch('/{event_id}')
async def update(event_id: int, payload: EventUpdateIn, ctx: RequestContext = Depends(get_current_user)):
    fields = validate_update(payload.model_dump(exclude_unset=True))
    event = await update_event(ctx, event_id, **fields)
    return ok(event_dict(event))


@router.delete('/{event_id}')
async def delete(
    event_id: int,
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    result = await delete_event(ctx, storage, event_id)
    return ok(EventDeleteOut(**result).model_dump())


@router.post('/{event_id}/cover')
async def cover(
    event_id: int,
    file: UploadFile = File(...),
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    [pending] = await _pending([file])
    result = await set_cover(ctx, storage, event_id, pending, policy=uploads.COVER_POLICY)
    return ok(event_dict(result.record))


@router.post('/{event_id}/moments')
async def upload(
    event_id: int,
    files: List[UploadFile] = File(...),
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    if not await check_rate_limit(ctx.user_id, 'upload', limit=UPLOAD_RATE_LIMIT, amount=len(files)):
        raise ServiceError('Too many uploads, try again later', code='RATE_LIMITED', status=429)

    pending = await _pending(files)
    result = await uploads.upload_moments(ctx, storage, event_id, pending, policy=uploads.MOMENT_POLICY)
    batch = UploadBatchOut(
        total=result.total,
        success_count=result.success_count,
        progress=result.progress,
        uploaded=[MomentOut.model_validate(r.record) for r in result.results if r.ok],
        failed=[_failure(r) for r in result.results if r.state is uploads.UnitState.FAILED],
        rejected=[_failure(r) for r in result.rejected],
    )
    return ok(batch.model_dump(mode='json'))


@router.get('/{event_id}/moments')
async def page(
    event_id: int,
    cursor: Optional[int] = Query(None),
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    if not await get_event(ctx, event_id):
        raise NotFoundError('Event not found')
    images = await load_page(ctx, storage, event_id, cursor=cursor, page_size=limit)
    body = MomentPageOut(
        images=[GalleryImageOut(**i.to_dict()) for i in images],
        next_cursor=images[-1].id if len(images) == limit else None,
    )
    return ok(body.model_dump())
