from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

ContentType = Literal["image", "video", "slideshow", "text"]
DEFAULT_CONTENT_DURATION_SEC = 10


class ContentOut(BaseModel):
    id: str
    title: str = ""
    type: ContentType
    file_path: str | None = Field(default=None, alias="filePath")
    text_content: str | None = Field(default=None, alias="textContent")
    metadata: dict[str, Any] = Field(default_factory=dict)
    duration: int = DEFAULT_CONTENT_DURATION_SEC

    class Config:
        populate_by_name = True
        from_attributes = True

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value):
        return value if value is not None else {}

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_or_default(cls, value):
        return value if value is not None else DEFAULT_CONTENT_DURATION_SEC

    @property
    def slides(self) -> list[Any]:
        slides = self.metadata.get("slides")
        return list(slides) if isinstance(slides, list) else []
