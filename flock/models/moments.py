from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, func
from . import Base

class Moment(Base):
    __tablename__ = 'moments'
    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(1024), unique=True, nullable=False)
    name = Column(String(512), nullable=False)
    user_id = Column(String(64), index=True, nullable=False)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), index=True, nullable=False)
    size = Column(BigInteger, nullable=False)
    type = Column(String(255), nullable=True)
    bucket = Column(String(255), nullable=False)
    file_path = Column(String(2048), nullable=True)
    # assigned by the store on insert and never updated
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
