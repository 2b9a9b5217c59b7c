import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from signage_player.db import Base


class PlaybackState(Base):
    __tablename__ = "playback_state"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_id = Column(String(64), nullable=False, unique=True)
    schedule_id = Column(String(64), nullable=True)
    items_json = Column(Text, nullable=False, default="[]")
    item_index = Column(Integer, nullable=False, default=0)
    loop = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
