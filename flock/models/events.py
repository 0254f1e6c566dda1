from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from . import Base

class Event(Base):
    __tablename__ = 'events'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    cover = Column(String(1024), nullable=True)  # storage key in the cover bucket
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

class Cohost(Base):
    __tablename__ = 'cohosts'
    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), index=True, nullable=False)
    email = Column(String(255), nullable=False)
    access_level = Column(String(16), nullable=False, default='view')  # view, edit
    created_at = Column(DateTime(timezone=True), server_default=func.now())
