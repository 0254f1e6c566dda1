from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class MomentOut(BaseModel):
    id: int
    key: str
    name: str
    user_id: str
    event_id: int
    size: int
    type: Optional[str]
    bucket: str
    file_path: Optional[str]
    uploaded_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True

class GalleryImageOut(BaseModel):
    id: int
    key: str
    name: str
    url: Optional[str]

class MomentPageOut(BaseModel):
    images: List[GalleryImageOut]
    next_cursor: Optional[int]

class UploadFailureOut(BaseModel):
    name: str
    code: str
    message: str
    attempts: int

class UploadBatchOut(BaseModel):
    total: int
    success_count: int
    progress: float
    uploaded: List[MomentOut]
    failed: List[UploadFailureOut]
    rejected: List[UploadFailureOut]

class PresignedUrlOut(BaseModel):
    url: str
