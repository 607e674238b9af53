"""
Local storage tables for on-device SDK state.

  - kv_entries holds one row per logical key (device id, first-install flag,
    install referrer, cached install data)
  - failed_events is an append-only log of undelivered events, trimmed from
    the oldest end to a fixed capacity
"""

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class FailedEvent(Base):
    __tablename__ = "failed_events"

    # Autoincrement id gives insertion order for FIFO eviction
    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(100), nullable=False)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
