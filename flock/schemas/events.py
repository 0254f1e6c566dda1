from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Literal
from datetime import datetime

class CohostIn(BaseModel):
    email: EmailStr
    access_level: Literal['view', 'edit'] = 'view'

class CohostOut(BaseModel):
    id: int
    event_id: int
    email: str
    access_level: str

    class Config:
        from_attributes = True

class EventCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    date: datetime
    location: str = Field(..., min_length=1)
    notes: Optional[str] = None
    cohosts: List[CohostIn] = []

class EventUpdateIn(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None

class EventOut(BaseModel):
    id: int
    user_id: str
    name: str
    date: Optional[datetime]
    location: Optional[str]
    notes: Optional[str]
    cover: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True

class EventDeleteOut(BaseModel):
    id: int
    moments_deleted: int
    cover_deleted: bool
