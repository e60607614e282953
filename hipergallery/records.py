import logging
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .db import Artwork
from .utils import join_categories, split_categories

logger = logging.getLogger(__name__)


class ArtworkRecord(BaseModel):
    """An artwork as the gallery sees it, whichever store it came from."""

    id: str
    title: str
    artist: str = ""
    style: str = ""
    categories: List[str] = Field(default_factory=list)
    description: str = ""
    image_url: str = ""
    series_name: Optional[str] = None
    series_order: Optional[int] = None
    user_id: Optional[str] = None
    is_default: bool = False
    is_new: bool = False
    is_public: bool = True
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        return str(v)

    @field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return split_categories(v)
        return [str(c).strip() for c in v if str(c).strip()]

    @classmethod
    def from_row(cls, row: Artwork) -> "ArtworkRecord":
        return cls(
            id=row.id,
            title=row.title,
            artist=row.artist,
            style=row.style,
            categories=row.category,
            description=row.description,
            image_url=row.image_url,
            series_name=row.series_name,
            series_order=row.series_order,
            user_id=row.user_id,
            is_default=row.is_default,
            is_public=row.is_public,
            created_at=row.created_at,
        )

    @classmethod
    def from_local(cls, data: Any) -> Optional["ArtworkRecord"]:
        """Build from a locally stored mapping; malformed entries yield None."""
        if not isinstance(data, dict):
            return None
        data = dict(data)
        if "categories" not in data and "category" in data:
            data["categories"] = data.pop("category")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            logger.warning("Skipping malformed local artwork %r: %s", data.get("id"), exc.error_count())
            return None

    def to_row(self) -> Artwork:
        return Artwork(
            id=self.id,
            title=self.title,
            artist=self.artist,
            style=self.style,
            description=self.description,
            category=join_categories(self.categories),
            image_url=self.image_url,
            series_name=self.series_name,
            series_order=self.series_order,
            user_id=self.user_id,
            is_default=self.is_default,
            is_public=self.is_public,
            **({"created_at": self.created_at} if self.created_at else {}),
        )

    def to_local(self) -> dict:
        return self.model_dump(mode="json")

    @property
    def numeric_id(self) -> Optional[int]:
        return int(self.id) if self.id.isdigit() else None


class ArtworkIn(BaseModel):
    title: str
    artist: str = ""
    style: str = ""
    categories: List[str] = Field(default_factory=list)
    description: str = ""
    image_url: str = ""
    series_name: Optional[str] = None
    is_public: bool = True


class ArtworkPatch(BaseModel):
    title: Optional[str] = None
    artist: Optional[str] = None
    style: Optional[str] = None
    categories: Optional[List[str]] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    series_name: Optional[str] = None
    is_public: Optional[bool] = None
