"""
SQLAlchemy ORM models for locally persisted client state.

Tables
------
* ``local_state`` -- one row per persisted key (session token, driver
  snapshot, availability flag, tracking flag, last position, push token).
  Values are JSON-encoded text.
"""

from sqlalchemy import Column, DateTime, String, Text, func

from .database import Base


class LocalStateModel(Base):
    __tablename__ = "local_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
