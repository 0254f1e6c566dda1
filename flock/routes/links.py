from typing import Optional
from fastapi import APIRouter, Depends, Query
from ..auth import RequestContext, get_current_user
from ..crud import list_share_links, get_event
from ..errors import ok, NotFoundError
from ..events import create_share_link, deactivate_share_link, resolve_share_link, link_dict
from ..schemas.links import ShareLinkIn, SharedAccessOut

router = APIRouter()


@router.post('/events/{event_id}/links', status_code=201)
async def create(event_id: int, payload: ShareLinkIn, ctx: RequestContext = Depends(get_current_user)):
    link = await create_share_link(ctx, event_id, payload)
    return ok(link_dict(link))


@router.get('/events/{event_id}/links')
async def list_links(event_id: int, ctx: RequestContext = Depends(get_current_user)):
    if not await get_event(ctx, event_id):
        raise NotFoundError('Event not found')
    links = await list_share_links(ctx, event_id)
    return ok([link_dict(link) for link in links])


@router.delete('/links/{link_id}')
async def deactivate(link_id: int, ctx: RequestContext = Depends(get_current_user)):
    link = await deactivate_share_link(ctx, link_id)
    return ok(link_dict(link))


@router.get('/shared/{token}')
async def shared(token: str, email: Optional[str] = Query(None)):
    link = await resolve_share_link(token, email=email)
    access = SharedAccessOut(event_id=link.event_id, access_types=link.access_types or ['view'], expires_at=link.expires_at)
    return ok(access.model_dump(mode='json'))
