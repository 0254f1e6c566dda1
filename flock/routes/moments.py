from fastapi import APIRouter, Depends
from ..auth import RequestContext, get_current_user
from ..errors import ok
from ..events import delete_moment
from ..schemas.moments import MomentOut
from ..storage import StorageGateway, get_storage

router = APIRouter()


@router.delete('/{moment_id}')
async def delete(
    moment_id: int,
    ctx: RequestContext = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    moment = await delete_moment(ctx, storage, moment_id)
    return ok(MomentOut.model_validate(moment).model_dump(mode='json'))
