"""
Gallery Paginator
Incrementally loads an event's moments newest-first, resolving each to a presigned URL,
and drives a keyboard-navigable carousel over the loaded images.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from . import crud
from .auth import RequestContext
from .errors import ServiceError
from .storage import StorageGateway

logger = logging.getLogger(__name__)

PAGE_SIZE = 20


@dataclass
class GalleryImage:
    id: int
    key: str
    name: str
    bucket: str
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {'id': self.id, 'key': self.key, 'name': self.name, 'url': self.url}


async def resolve_image(ctx: RequestContext, storage: StorageGateway, moment) -> GalleryImage:
    """One presign round-trip per image; a signing failure leaves url empty"""
    try:
        url = await storage.presign(ctx, moment.bucket, moment.key)
    except ServiceError as e:
        logger.warning({'msg': 'presign_failed', 'moment_id': moment.id, 'error': e.message})
        url = None
    return GalleryImage(id=moment.id, key=moment.key, name=moment.name, bucket=moment.bucket, url=url)


async def load_page(ctx: RequestContext, storage: StorageGateway, event_id: int, cursor: Optional[int] = None,
                    page_size: int = PAGE_SIZE) -> List[GalleryImage]:
    moments = await crud.list_moments(ctx, event_id, cursor=cursor, page_size=page_size)
    return list(await asyncio.gather(*(resolve_image(ctx, storage, m) for m in moments)))


async def first_page(ctx: RequestContext, storage: StorageGateway, event_id: int,
                     page_size: int = PAGE_SIZE) -> List[GalleryImage]:
    return await load_page(ctx, storage, event_id, page_size=page_size)


class GalleryPaginator:
    """Client-side gallery state. Loads are single-flight: a call made while one is running is a no-op."""

    def __init__(self, ctx: RequestContext, storage: StorageGateway, event_id: int,
                 initial_images: Optional[List[GalleryImage]] = None, page_size: int = PAGE_SIZE):
        self.ctx = ctx
        self.storage = storage
        self.event_id = event_id
        self.page_size = page_size
        self.images: List[GalleryImage] = list(initial_images or [])
        self.loading = False
        # a short initial page means the server already returned everything
        self.has_more = initial_images is None or len(initial_images) == page_size
        self.carousel = Carousel(self)

    @property
    def cursor(self) -> Optional[int]:
        return self.images[-1].id if self.images else None

    async def load_more(self) -> Optional[int]:
        """Append the next page. Returns the number of images added, or None on failure."""
        if self.loading or not self.has_more:
            return 0

        self.loading = True
        try:
            try:
                page = await load_page(self.ctx, self.storage, self.event_id, self.cursor, self.page_size)
            except ServiceError as e:
                logger.error({'msg': 'gallery_load_failed', 'event_id': self.event_id, 'cursor': self.cursor,
                              'error': e.message})
                return None
            self.images.extend(page)
            self.has_more = len(page) == self.page_size
            return len(page)
        finally:
            self.loading = False

    async def follow(self, sentinel: asyncio.Event) -> None:
        """Load whenever the bottom sentinel is visible, until the gallery is exhausted.

        The view sets `sentinel` while it is on screen and clears it when new rows push it away.
        Loading pauses while the carousel is open.
        """
        while self.has_more:
            await sentinel.wait()
            await self.carousel.closed.wait()
            added = await self.load_more()
            if added is None:
                # wait for a fresh visibility signal instead of hammering a failing store
                sentinel.clear()
            else:
                await asyncio.sleep(0)


class Carousel:
    """Full-screen viewer over GalleryPaginator.images; the open index lives in the `image` query param"""

    QUERY_PARAM = 'image'

    def __init__(self, gallery: GalleryPaginator):
        self.gallery = gallery
        self.index: Optional[int] = None
        self.closed = asyncio.Event()
        self.closed.set()

    @property
    def is_open(self) -> bool:
        return self.index is not None

    @property
    def current(self) -> Optional[GalleryImage]:
        if self.index is None:
            return None
        return self.gallery.images[self.index]

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self.gallery.images) - 1))

    def open(self, index: int) -> None:
        if not self.gallery.images:
            return
        self.index = self._clamp(index)
        self.closed.clear()

    def close(self) -> None:
        self.index = None
        self.closed.set()

    def next(self) -> None:
        if self.index is not None:
            self.index = self._clamp(self.index + 1)

    def prev(self) -> None:
        if self.index is not None:
            self.index = self._clamp(self.index - 1)

    def handle_key(self, key: str) -> bool:
        if self.index is None:
            return False
        if key == 'ArrowLeft':
            self.prev()
        elif key == 'ArrowRight':
            self.next()
        elif key == 'Escape':
            self.close()
        else:
            return False
        return True

    def query_state(self) -> dict:
        return {self.QUERY_PARAM: str(self.index)} if self.index is not None else {}

    def restore(self, query: dict) -> None:
        """Reopen the image recorded in the URL, e.g. after reload or back-navigation"""
        raw = query.get(self.QUERY_PARAM)
        try:
            index = int(raw)
        except (TypeError, ValueError):
            self.close()
            return
        if 0 <= index < len(self.gallery.images):
            self.open(index)
        else:
            self.close()

    async def delete_current(self) -> Optional[GalleryImage]:
        """Delete the viewed image from storage and metadata, drop it from the list and close"""
        image = self.current
        if image is None:
            return None
        from .events import delete_moment
        await delete_moment(self.gallery.ctx, self.gallery.storage, image.id)
        self.gallery.images = [i for i in self.gallery.images if i.id != image.id]
        self.close()
        return image
