from datetime import datetime

from pydantic import BaseModel, Field


class DisplayOut(BaseModel):
    id: str
    name: str = ""
    location: str | None = None
    last_seen: datetime | None = Field(default=None, alias="lastSeen")
    status: str | None = None

    class Config:
        populate_by_name = True
        from_attributes = True
