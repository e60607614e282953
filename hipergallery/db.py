import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .errors import RemoteError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Artwork(SQLModel, table=True):
    id: str = Field(primary_key=True)
    title: str
    artist: str = ""
    style: str = ""
    description: str = ""
    category: str = ""  # comma separated tags
    image_url: str = ""
    series_name: Optional[str] = Field(default=None, index=True)
    series_order: Optional[int] = None
    user_id: Optional[str] = Field(default=None, index=True)
    is_default: bool = False
    is_public: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class DeletedArtwork(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    artwork_id: str = Field(index=True)
    deleted_by: Optional[str] = None
    deleted_at: datetime = Field(default_factory=utcnow)


class User(SQLModel, table=True):
    id: str = Field(primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str = ""
    password_hash: str = ""
    role: Optional[str] = None  # stored metadata, resolved at sign-in
    created_at: datetime = Field(default_factory=utcnow)


class AnalyticsEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_type: str = Field(index=True)
    page: Optional[str] = None
    artwork_id: Optional[str] = None
    artwork_title: Optional[str] = None
    size_name: Optional[str] = None
    frame_name: Optional[str] = None
    price: Optional[float] = None
    item_count: Optional[int] = None
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    device_type: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)


class AnalyticsSale(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(index=True)
    artwork_id: str = ""
    artwork_title: str = ""
    size_name: str = ""
    frame_name: str = ""
    price: float = 0.0
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)


class PrintOrder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    merchant_reference: str = Field(index=True)
    provider_order_id: Optional[str] = Field(default=None, index=True)
    status: str = "Pending"
    total: float = 0.0
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


def make_engine(database_url: str):
    kwargs = {"echo": False}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


class RemoteStore:
    """Row storage for artworks and the deleted-artworks side table."""

    def __init__(self, engine):
        self.engine = engine

    def session(self) -> Session:
        return Session(self.engine)

    def list_artworks(self) -> List[Artwork]:
        try:
            with self.session() as s:
                return list(s.exec(select(Artwork).order_by(Artwork.created_at.desc())).all())
        except SQLAlchemyError as exc:
            logger.error("Loading artworks failed: %s", exc)
            raise RemoteError("could not load artworks") from exc

    def get_artwork(self, artwork_id: str) -> Optional[Artwork]:
        try:
            with self.session() as s:
                return s.get(Artwork, artwork_id)
        except SQLAlchemyError as exc:
            logger.error("Loading artwork %s failed: %s", artwork_id, exc)
            raise RemoteError("could not load artwork") from exc

    def insert_artworks(self, rows: Iterable[Artwork]) -> None:
        rows = list(rows)
        try:
            with self.session() as s:
                for row in rows:
                    s.add(row)
                s.commit()
        except SQLAlchemyError as exc:
            logger.error("Inserting %d artwork(s) failed: %s", len(rows), exc)
            raise RemoteError("could not save artwork") from exc

    def update_artwork(self, artwork_id: str, changes: dict) -> Optional[Artwork]:
        try:
            with self.session() as s:
                row = s.get(Artwork, artwork_id)
                if row is None:
                    return None
                for key, value in changes.items():
                    setattr(row, key, value)
                s.add(row)
                s.commit()
                s.refresh(row)
                return row
        except SQLAlchemyError as exc:
            logger.error("Updating artwork %s failed: %s", artwork_id, exc)
            raise RemoteError("could not update artwork") from exc

    def delete_artwork(self, artwork_id: str) -> bool:
        try:
            with self.session() as s:
                row = s.get(Artwork, artwork_id)
                if row is None:
                    return False
                s.delete(row)
                s.commit()
                return True
        except SQLAlchemyError as exc:
            logger.warning("Row delete for artwork %s failed: %s", artwork_id, exc)
            raise RemoteError("could not delete artwork") from exc

    def mark_deleted(self, artwork_id: str, deleted_by: Optional[str]) -> None:
        try:
            with self.session() as s:
                s.add(DeletedArtwork(artwork_id=artwork_id, deleted_by=deleted_by))
                s.commit()
        except SQLAlchemyError as exc:
            logger.warning("Marking artwork %s deleted failed: %s", artwork_id, exc)
            raise RemoteError("could not record deletion") from exc

    def list_deleted_ids(self) -> List[str]:
        try:
            with self.session() as s:
                return list(s.exec(select(DeletedArtwork.artwork_id)).all())
        except SQLAlchemyError as exc:
            logger.error("Loading deleted artwork ids failed: %s", exc)
            raise RemoteError("could not load deleted artworks") from exc

    def set_series_order(self, series_name: str, ordered_ids: List[str]) -> int:
        try:
            with self.session() as s:
                rows = s.exec(select(Artwork).where(Artwork.series_name == series_name)).all()
                position = {artwork_id: i for i, artwork_id in enumerate(ordered_ids)}
                updated = 0
                for row in rows:
                    if row.id in position:
                        row.series_order = position[row.id]
                        s.add(row)
                        updated += 1
                s.commit()
                return updated
        except SQLAlchemyError as exc:
            logger.error("Reordering series %r failed: %s", series_name, exc)
            raise RemoteError("could not reorder series") from exc
