from typing import List, Literal, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes snake_case fields under camelCase names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Principal(CamelModel):
    """Authenticated caller."""
    id: int
    username: str


class TagItem(CamelModel):
    id: int
    tag_name: str


class ImageItem(CamelModel):
    id: int
    title: Optional[str] = None
    key: str
    mime_type: str
    width: int
    height: int
    file_size: int
    user_id: int
    upload_at: datetime
    url: str

    @field_validator("upload_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class UploadedImage(ImageItem):
    tags: List[TagItem] = []


class UploadResponse(CamelModel):
    image: UploadedImage


class ListedImage(ImageItem):
    all_tags: List[TagItem] = []


class ListImagesParams(CamelModel):
    """Validated filter, sort and page parameters for a listing."""
    page: int = Field(1, ge=1)
    page_size: int = Field(8, ge=1)
    title: Optional[str] = None
    tag_id: Optional[int] = None
    sort_by: Optional[Literal["date", "title"]] = None
    order: Optional[Literal["asc", "desc"]] = None

    @field_validator("title")
    @classmethod
    def normalize_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None

    @model_validator(mode="after")
    def sort_pair(self):
        if (self.sort_by is None) != (self.order is None):
            raise ValueError("sortBy and order must be supplied together")
        return self


class ListImagesResponse(CamelModel):
    current_page: int
    total_pages: int
    page_size: int
    total_images: int
    images: List[ListedImage]


class TagCreate(CamelModel):
    tag_name: str = Field(min_length=3, max_length=25)

    @field_validator("tag_name", mode="before")
    @classmethod
    def normalize_name(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

