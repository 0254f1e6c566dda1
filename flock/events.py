"""
Event lifecycle
Create with cohosts, detail view, cover image, cascading delete and share links.
"""

import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from . import crud
from .auth import RequestContext
from .cache import cache_event_detail, get_cached_event_detail, invalidate_event
from .errors import ServiceError, NotFoundError, ValidationError, AuthError
from .gallery import first_page, PAGE_SIZE
from .schemas.events import EventCreateIn, EventOut, CohostOut
from .schemas.links import ShareLinkIn, ShareLinkOut
from .storage import StorageGateway, COVER_BUCKET
from .uploads import COVER_POLICY, PendingFile, UnitResult, upload_unit

logger = logging.getLogger(__name__)

PUBLIC_ORIGIN = os.getenv('FLOCK_PUBLIC_ORIGIN', 'http://localhost:3000').rstrip('/')


class EventDeleteIncomplete(ServiceError):
    code = 'EVENT_DELETE_INCOMPLETE'
    status = 500


class LinkGone(ServiceError):
    code = 'LINK_EXPIRED'
    status = 410


def event_dict(event) -> dict:
    return EventOut.model_validate(event).model_dump(mode='json')


async def create_event(ctx: RequestContext, payload: EventCreateIn):
    event = await crud.insert_event(
        ctx,
        name=payload.name,
        date=payload.date,
        location=payload.location,
        notes=payload.notes,
    )
    cohosts = await crud.insert_cohosts(ctx, event.id, [c.model_dump() for c in payload.cohosts])
    logger.info({'msg': 'event_created', 'event_id': event.id, 'user_id': ctx.user_id, 'cohosts': len(cohosts)})
    return event, cohosts


async def update_event(ctx: RequestContext, event_id: int, **fields):
    event = await crud.update_event(ctx, event_id, **fields)
    if not event:
        raise NotFoundError('Event not found')
    await invalidate_event(ctx.user_id, event_id)
    return event


async def get_event_detail(ctx: RequestContext, storage: StorageGateway, event_id: int) -> dict:
    """Event, cohosts and the first gallery page. Presigned URLs are cached with it for less than their ttl."""
    cached = await get_cached_event_detail(ctx.user_id, event_id)
    if cached:
        return cached

    event = await crud.get_event(ctx, event_id)
    if not event:
        raise NotFoundError('Event not found')
    cohosts = await crud.list_cohosts(ctx, event_id)
    images = await first_page(ctx, storage, event_id)

    cover_url = None
    if event.cover:
        try:
            cover_url = await storage.presign(ctx, COVER_BUCKET, event.cover)
        except ServiceError as e:
            logger.warning({'msg': 'cover_presign_failed', 'event_id': event_id, 'error': e.message})

    detail = {
        'event': event_dict(event),
        'cover_url': cover_url,
        'cohosts': [CohostOut.model_validate(c).model_dump(mode='json') for c in cohosts],
        'images': [i.to_dict() for i in images],
        'next_cursor': images[-1].id if len(images) == PAGE_SIZE else None,
    }
    await cache_event_detail(ctx.user_id, event_id, detail)
    return detail


async def delete_moment(ctx: RequestContext, storage: StorageGateway, moment_id: int):
    """Stored object first, then the metadata row.

    Object deletes are idempotent, so a failure here leaves the row in place and the
    whole call can simply be repeated.
    """
    moment = await crud.get_moment(ctx, moment_id)
    if not moment:
        raise NotFoundError('Moment not found')
    await storage.delete_object(ctx, moment.bucket, moment.key)
    if not await crud.delete_moment(ctx, moment_id):
        raise NotFoundError('Moment not found')
    await invalidate_event(ctx.user_id, moment.event_id)
    logger.info({'msg': 'moment_deleted', 'moment_id': moment_id, 'key': moment.key, 'user_id': ctx.user_id})
    return moment


async def delete_event(ctx: RequestContext, storage: StorageGateway, event_id: int) -> dict:
    """Cascade over moments and the cover, then the event row.

    The row is only removed when every child delete went through; otherwise the
    event stays so the delete can be issued again.
    """
    event = await crud.get_event(ctx, event_id)
    if not event:
        raise NotFoundError('Event not found')

    failed = []
    deleted = 0
    for moment in await crud.list_event_moments(ctx, event_id):
        try:
            await delete_moment(ctx, storage, moment.id)
            deleted += 1
        except ServiceError as e:
            logger.error({'msg': 'cascade_moment_delete_failed', 'event_id': event_id, 'moment_id': moment.id,
                          'error': e.message})
            failed.append(moment.id)

    cover_deleted = False
    if not failed and event.cover:
        try:
            await storage.delete_object(ctx, COVER_BUCKET, event.cover)
            cover_deleted = True
        except ServiceError as e:
            logger.error({'msg': 'cascade_cover_delete_failed', 'event_id': event_id, 'key': event.cover,
                          'error': e.message})
            failed.append('cover')

    await invalidate_event(ctx.user_id, event_id)
    if failed:
        raise EventDeleteIncomplete(
            f'Event {event_id} was not deleted: {len(failed)} item(s) could not be removed',
        )

    if not await crud.delete_event(ctx, event_id):
        raise NotFoundError('Event not found')
    logger.info({'msg': 'event_deleted', 'event_id': event_id, 'moments_deleted': deleted, 'user_id': ctx.user_id})
    return {'id': event_id, 'moments_deleted': deleted, 'cover_deleted': cover_deleted}


async def set_cover(ctx: RequestContext, storage: StorageGateway, event_id: int, file: PendingFile,
                    policy=COVER_POLICY, sleep=None) -> UnitResult:
    event = await crud.get_event(ctx, event_id)
    if not event:
        raise NotFoundError('Event not found')
    previous = event.cover

    async def register(ctx, file, key, bucket):
        updated = await crud.update_event(ctx, event_id, cover=key)
        if not updated:
            raise NotFoundError('Event not found')
        return updated

    kwargs = {'sleep': sleep} if sleep else {}
    result = await upload_unit(ctx, storage, file, policy, register, **kwargs)
    if not result.ok:
        raise result.error

    await invalidate_event(ctx.user_id, event_id)
    if previous and previous != result.key:
        try:
            await storage.delete_object(ctx, policy.bucket, previous)
        except ServiceError as e:
            logger.warning({'msg': 'old_cover_delete_failed', 'event_id': event_id, 'key': previous,
                            'error': e.message})
    return result


# share links

def share_url(token: str) -> str:
    return f'{PUBLIC_ORIGIN}/shared/{token}'


def link_dict(link) -> dict:
    out = ShareLinkOut(
        id=link.id,
        event_id=link.event_id,
        token=link.token,
        url=share_url(link.token),
        expires_at=link.expires_at,
        is_active=link.is_active,
        access_types=link.access_types,
        required_email=link.required_email,
    )
    return out.model_dump(mode='json')


async def create_share_link(ctx: RequestContext, event_id: int, payload: ShareLinkIn, now: Optional[datetime] = None):
    event = await crud.get_event(ctx, event_id)
    if not event:
        raise NotFoundError('Event not found')
    expires_at = None
    if payload.expires_in:
        expires_at = (now or datetime.now(timezone.utc)) + timedelta(hours=payload.expires_in)
    link = await crud.insert_share_link(
        ctx,
        event_id,
        expires_at=expires_at,
        access_types=list(dict.fromkeys(payload.access_types)) or ['view'],
        required_email=payload.required_email,
    )
    logger.info({'msg': 'share_link_created', 'event_id': event_id, 'link_id': link.id, 'expires_at': expires_at})
    return link


async def deactivate_share_link(ctx: RequestContext, link_id: int):
    link = await crud.deactivate_share_link(ctx, link_id)
    if not link:
        raise NotFoundError('Link not found')
    return link


async def resolve_share_link(token: str, email: Optional[str] = None, now: Optional[datetime] = None):
    """Guest entry point; no RequestContext since the token is the credential"""
    link = await crud.get_share_link_by_token(token)
    if not link:
        raise NotFoundError('Link not found', code='LINK_NOT_FOUND')
    if not link.is_active:
        raise LinkGone('This link has been deactivated', code='LINK_INACTIVE')
    if not link.grants_access(now):
        raise LinkGone('This link has expired')
    if link.required_email:
        if not email:
            raise AuthError('An email address is required to open this link', code='EMAIL_REQUIRED', status=403)
        if email.strip().lower() != link.required_email.strip().lower():
            raise AuthError('This link was shared with a different email address', code='EMAIL_MISMATCH', status=403)
    return link


def validate_update(fields: dict) -> dict:
    fields = {k: v for k, v in fields.items() if v is not None}
    if not fields:
        raise ValidationError('No fields to update')
    return fields
