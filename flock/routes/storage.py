from typing import Optional
from fastapi import APIRouter, Depends, Query
from ..auth import RequestContext, get_current_user
from ..errors import ok, ServiceError, StorageError, ValidationError
from ..schemas.moments import PresignedUrlOut
from ..storage import StorageGateway, get_storage, MEDIA_BUCKET

router = APIRouter()


@router.get('/presigned-url')
async def presigned_url(
    key: Optional[str] = Query(None),
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    if not key:
        raise ValidationError('Key is required')
    try:
        url = await storage.presign(ctx, MEDIA_BUCKET, key)
    except ServiceError as e:
        raise StorageError(e.message, code=e.code, status=500)
    return ok(PresignedUrlOut(url=url).model_dump())


@router.get('/storage/buckets')
async def buckets(
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    return ok({'buckets': await storage.list_buckets(ctx)})
