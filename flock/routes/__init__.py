from fastapi import APIRouter
from .events import router as events_router
from .moments import router as moments_router
from .links import router as links_router
from .storage import router as storage_router

router = APIRouter()
router.include_router(events_router, prefix='/events', tags=['events'])
router.include_router(moments_router, prefix='/moments', tags=['moments'])
router.include_router(links_router, tags=['links'])
router.include_router(storage_router, tags=['storage'])
