from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Literal
from datetime import datetime

AccessType = Literal['view', 'rate', 'delete']

class ShareLinkIn(BaseModel):
    expires_in: Optional[float] = Field(None, gt=0, description='hours until the link expires')
    access_types: List[AccessType] = ['view']
    required_email: Optional[EmailStr] = None

class ShareLinkOut(BaseModel):
    id: int
    event_id: int
    token: str
    url: str
    expires_at: Optional[datetime]
    is_active: bool
    access_types: Optional[List[str]]
    required_email: Optional[str]

class SharedAccessOut(BaseModel):
    event_id: int
    access_types: List[str]
    expires_at: Optional[datetime]
