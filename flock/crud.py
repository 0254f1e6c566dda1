from .models import AsyncSessionLocal
from .models.events import Event, Cohost
from .models.moments import Moment
from .models.links import Link
from .auth import RequestContext
from .errors import DbError
from sqlalchemy import select, delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import datetime, timezone
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def _db_error(e: SQLAlchemyError) -> DbError:
    if isinstance(e, IntegrityError):
        return DbError(str(e.orig), code='CONSTRAINT_VIOLATION', status=409)
    return DbError(str(e))


def _now():
    return datetime.now(timezone.utc)

# moments

async def insert_moment(ctx: RequestContext, *, key: str, name: str, event_id: int, size: int,
                        type: str, bucket: str, file_path: str | None = None) -> Moment:
    async with AsyncSessionLocal() as session:
        m = Moment(
            key=key,
            name=name,
            user_id=ctx.user_id,
            event_id=event_id,
            size=size,
            type=type,
            bucket=bucket,
            file_path=file_path,
            updated_at=_now(),
        )
        session.add(m)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        await session.refresh(m)
        return m

async def get_moment(ctx: RequestContext, moment_id: int) -> Optional[Moment]:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Moment).where(Moment.id == moment_id, Moment.user_id == ctx.user_id))
        return q.scalars().first()

async def delete_moment(ctx: RequestContext, moment_id: int) -> Optional[Moment]:
    """Delete a moment owned by the caller. Zero affected rows returns None."""
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Moment).where(Moment.id == moment_id, Moment.user_id == ctx.user_id))
        m = q.scalars().first()
        if not m:
            return None
        res = await session.execute(delete(Moment).where(Moment.id == moment_id, Moment.user_id == ctx.user_id))
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        # a concurrent delete may have won the race
        return m if res.rowcount else None

async def list_moments(ctx: RequestContext, event_id: int, cursor: Optional[int] = None,
                       page_size: int = DEFAULT_PAGE_SIZE) -> list[Moment]:
    """Newest first by id. The cursor is an exclusive upper bound on the same key."""
    q = select(Moment).where(Moment.event_id == event_id, Moment.user_id == ctx.user_id)
    if cursor is not None:
        q = q.where(Moment.id < cursor)
    q = q.order_by(Moment.id.desc()).limit(page_size)
    async with AsyncSessionLocal() as session:
        try:
            res = await session.execute(q)
        except SQLAlchemyError as e:
            raise _db_error(e)
        return list(res.scalars().all())

async def list_event_moments(ctx: RequestContext, event_id: int) -> list[Moment]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Moment).where(Moment.event_id == event_id, Moment.user_id == ctx.user_id).order_by(Moment.id.asc())
        )
        return list(res.scalars().all())

# events

async def insert_event(ctx: RequestContext, *, name: str, date: datetime | None = None, location: str | None = None,
                       notes: str | None = None) -> Event:
    async with AsyncSessionLocal() as session:
        e = Event(user_id=ctx.user_id, name=name, date=date, location=location, notes=notes or '')
        session.add(e)
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise _db_error(exc)
        await session.refresh(e)
        return e

async def get_event(ctx: RequestContext, event_id: int) -> Optional[Event]:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Event).where(Event.id == event_id, Event.user_id == ctx.user_id))
        return q.scalars().first()

async def list_events(ctx: RequestContext) -> list[Event]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Event).where(Event.user_id == ctx.user_id).order_by(Event.created_at.desc(), Event.id.desc())
        )
        return list(res.scalars().all())

async def update_event(ctx: RequestContext, event_id: int, **fields) -> Optional[Event]:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Event).where(Event.id == event_id, Event.user_id == ctx.user_id))
        e = q.scalars().first()
        if not e:
            return None
        for name, value in fields.items():
            setattr(e, name, value)
        e.updated_at = _now()
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise _db_error(exc)
        await session.refresh(e)
        return e

async def delete_event(ctx: RequestContext, event_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(delete(Event).where(Event.id == event_id, Event.user_id == ctx.user_id))
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        return res.rowcount > 0

# cohosts

async def insert_cohosts(ctx: RequestContext, event_id: int, cohosts: list[dict]) -> list[Cohost]:
    if not cohosts:
        return []
    async with AsyncSessionLocal() as session:
        rows = [Cohost(event_id=event_id, email=c['email'], access_level=c.get('access_level', 'view')) for c in cohosts]
        session.add_all(rows)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        for r in rows:
            await session.refresh(r)
        return rows

async def list_cohosts(ctx: RequestContext, event_id: int) -> list[Cohost]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Cohost).join(Event, Event.id == Cohost.event_id)
            .where(Cohost.event_id == event_id, Event.user_id == ctx.user_id)
            .order_by(Cohost.id.asc())
        )
        return list(res.scalars().all())

# share links

async def insert_share_link(ctx: RequestContext, event_id: int, expires_at: datetime | None = None,
                            access_types: list[str] | None = None, required_email: str | None = None) -> Link:
    async with AsyncSessionLocal() as session:
        link = Link(
            event_id=event_id,
            token=str(uuid.uuid4()),
            expires_at=expires_at,
            is_active=True,
            access_types=access_types or ['view'],
            required_email=required_email,
        )
        session.add(link)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        await session.refresh(link)
        return link

async def list_share_links(ctx: RequestContext, event_id: int) -> list[Link]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Link).join(Event, Event.id == Link.event_id)
            .where(Link.event_id == event_id, Event.user_id == ctx.user_id)
            .order_by(Link.id.desc())
        )
        return list(res.scalars().all())

async def deactivate_share_link(ctx: RequestContext, link_id: int) -> Optional[Link]:
    """Soft delete: links are never removed, only switched off"""
    async with AsyncSessionLocal() as session:
        owned = select(Event.id).where(Event.user_id == ctx.user_id)
        res = await session.execute(
            update(Link).where(Link.id == link_id, Link.event_id.in_(owned)).values(is_active=False)
        )
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise _db_error(e)
        if not res.rowcount:
            return None
        q = await session.execute(select(Link).where(Link.id == link_id))
        return q.scalars().first()

async def get_share_link_by_token(token: str) -> Optional[Link]:
    """Unauthenticated lookup; callers must still check Link.grants_access()"""
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Link).where(Link.token == token))
        return q.scalars().first()
