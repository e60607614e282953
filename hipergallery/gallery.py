"""Application context for artwork data.

`GalleryService` owns the database store (absent in demo mode) and the local
store, and is the only place the two are merged. Every API route goes
through it instead of touching either store directly.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .db import RemoteStore, utcnow
from .errors import InvalidRequest, NotFound, PermissionDenied, RemoteError
from .interaction import reorder
from .local_store import (
    ARTWORKS_KEY,
    CUSTOM_ORDER_KEY,
    DELETED_IDS_KEY,
    REMOTE_MIRROR_KEY,
    LocalStore,
)
from .permissions import Role, SessionUser, require
from .reconcile import Series, SortMode, filter_artworks, group_series, reconcile, sort_artworks
from .records import ArtworkPatch, ArtworkRecord

logger = logging.getLogger(__name__)

NEW_ARTWORK_DAYS = 14

DEFAULT_ARTWORKS = [
    ArtworkRecord(
        id="1", title="Cosmic Dreams", artist="HiPer Gallery", style="Digital Art",
        categories=["abstract"], description="An ethereal journey through celestial landscapes",
        image_url="https://images.unsplash.com/photo-1541701494587-cb58502866ab?w=800",
        is_default=True,
    ),
    ArtworkRecord(
        id="2", title="Urban Sunset", artist="HiPer Gallery", style="Photography",
        categories=["landscape"], description="City skyline bathed in golden hour light",
        image_url="https://images.unsplash.com/photo-1480714378408-67cf0d13bc1b?w=800",
        is_default=True,
    ),
    ArtworkRecord(
        id="3", title="Nature's Pattern", artist="HiPer Gallery", style="Macro Photography",
        categories=["nature"], description="Intricate patterns found in nature",
        image_url="https://images.unsplash.com/photo-1518173946687-a4c036bc9868?w=800",
        is_default=True,
    ),
]


@dataclass
class DeleteOutcome:
    artwork_id: str
    row_deleted: bool = False
    marked_remote: bool = False

    @property
    def local_only(self) -> bool:
        """True when no server-side effect was confirmed."""
        return not (self.row_deleted or self.marked_remote)

    def as_dict(self) -> dict:
        return {
            "artwork_id": self.artwork_id,
            "row_deleted": self.row_deleted,
            "marked_remote": self.marked_remote,
            "local_only": self.local_only,
        }


def _is_recent(created_at: Optional[datetime]) -> bool:
    if created_at is None:
        return False
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return utcnow() - created_at < timedelta(days=NEW_ARTWORK_DAYS)


class GalleryService:
    def __init__(self, local: LocalStore, remote: Optional[RemoteStore] = None):
        self.local = local
        self.remote = remote

    @property
    def demo(self) -> bool:
        return self.remote is None

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------
    def _local_records(self) -> List[ArtworkRecord]:
        stored = self.local.get(ARTWORKS_KEY)
        if stored is None and self.demo:
            logger.info("Seeding local store with %d default artworks", len(DEFAULT_ARTWORKS))
            self._save_local(DEFAULT_ARTWORKS)
            return list(DEFAULT_ARTWORKS)
        if not isinstance(stored, list):
            return []
        records = [ArtworkRecord.from_local(item) for item in stored]
        records = [r for r in records if r is not None]
        for record in records:
            record.is_new = _is_recent(record.created_at)
        return records

    def _save_local(self, records: Iterable[ArtworkRecord]) -> None:
        self.local.set(ARTWORKS_KEY, [r.to_local() for r in records])

    def _mirror(self) -> List[ArtworkRecord]:
        stored = self.local.get(REMOTE_MIRROR_KEY, {})
        rows = stored.get("rows", []) if isinstance(stored, dict) else []
        records = [ArtworkRecord.from_local(item) for item in rows]
        records = [r for r in records if r is not None]
        for record in records:
            record.is_new = _is_recent(record.created_at)
        return records

    def _remote_records(self) -> Optional[List[ArtworkRecord]]:
        """Database rows, or the last mirrored copy when the database fails."""
        if self.remote is None:
            return None
        try:
            rows = self.remote.list_artworks()
        except RemoteError:
            mirror = self._mirror()
            logger.warning("Database unavailable, serving %d mirrored artworks", len(mirror))
            return mirror or None
        records = []
        for row in rows:
            record = ArtworkRecord.from_row(row)
            record.is_new = _is_recent(record.created_at)
            records.append(record)
        self.local.set(REMOTE_MIRROR_KEY, {
            "synced_at": utcnow().isoformat(),
            "rows": [r.to_local() for r in records],
        })
        return records

    def deleted_ids(self) -> set:
        deleted = {str(i) for i in self.local.get_list(DELETED_IDS_KEY)}
        if self.remote is not None:
            try:
                deleted.update(str(i) for i in self.remote.list_deleted_ids())
            except RemoteError:
                logger.warning("Could not load remote deletions, using local set only")
        return deleted

    def custom_order(self) -> List[str]:
        return [str(i) for i in self.local.get_list(CUSTOM_ORDER_KEY)]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def load(self) -> List[ArtworkRecord]:
        return reconcile(self._remote_records(), self._local_records(), self.deleted_ids())

    def visible(
        self,
        mode: SortMode = SortMode.CURATED,
        category: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[ArtworkRecord]:
        items = sort_artworks(self.load(), mode, self.custom_order())
        return filter_artworks(items, category, query)

    def get(self, artwork_id: str) -> ArtworkRecord:
        for record in self.load():
            if record.id == str(artwork_id):
                return record
        raise NotFound(f"artwork {artwork_id} not found")

    def series(self) -> List[Series]:
        return group_series(self.load())

    def existing_ids(self) -> List[str]:
        return [r.id for r in self.load()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, record: ArtworkRecord, user: Optional[SessionUser]) -> ArtworkRecord:
        return self.create_many([record], user)[0]

    def create_many(self, records: List[ArtworkRecord], user: Optional[SessionUser]) -> List[ArtworkRecord]:
        require(user, "upload")
        prepared = []
        for record in records:
            record = record.model_copy(update={
                "user_id": record.user_id or user.id,
                "artist": record.artist or user.name or user.email,
                "created_at": record.created_at or utcnow(),
                "is_new": True,
            })
            prepared.append(record)

        if self.remote is not None:
            self.remote.insert_artworks([r.to_row() for r in prepared])
        else:
            self._save_local(self._local_records() + prepared)
        logger.info("Created %d artwork(s) for user %s", len(prepared), user.id)
        return prepared

    def publish_series(self, records: List[ArtworkRecord], user: Optional[SessionUser]) -> List[ArtworkRecord]:
        names = {r.series_name for r in records}
        if len(names) != 1 or None in names:
            raise InvalidRequest("series records must share one series name")
        return self.create_many(records, user)

    def update(self, artwork_id: str, patch: ArtworkPatch, user: Optional[SessionUser]) -> ArtworkRecord:
        current = self.get(artwork_id)
        require(user, "edit", current)
        changes = patch.model_dump(exclude_unset=True)
        updated = current.model_copy(update=changes)

        local = self._local_records()
        if any(r.id == current.id for r in local):
            self._save_local([updated if r.id == current.id else r for r in local])
        elif self.remote is not None:
            row_changes = updated.to_row().model_dump(exclude={"id", "created_at"})
            if self.remote.update_artwork(current.id, row_changes) is None:
                raise NotFound(f"artwork {artwork_id} not found")
        logger.info("Updated artwork %s (%s)", current.id, ", ".join(sorted(changes)) or "no changes")
        return updated

    def delete(self, artwork_id: str, user: Optional[SessionUser]) -> DeleteOutcome:
        """Remove an artwork everywhere we can.

        Server side: delete the row, then record the id in the deleted-artworks
        table so other clients filter it too. Locally the id always joins the
        deleted set, so the artwork stays hidden here whatever the server did.
        The outcome reports which server steps took effect.
        """
        artwork_id = str(artwork_id)
        current = self.get(artwork_id)
        require(user, "delete", current)
        outcome = DeleteOutcome(artwork_id)

        if self.remote is not None:
            try:
                outcome.row_deleted = self.remote.delete_artwork(artwork_id)
            except RemoteError:
                outcome.row_deleted = False
            try:
                self.remote.mark_deleted(artwork_id, user.id)
                outcome.marked_remote = True
            except RemoteError:
                outcome.marked_remote = False
            if outcome.local_only:
                logger.warning(
                    "Artwork %s could not be deleted on the server; hidden locally only, "
                    "other clients may still see it", artwork_id,
                )

        deleted = self.local.get_list(DELETED_IDS_KEY)
        if artwork_id not in deleted:
            deleted.append(artwork_id)
            self.local.set(DELETED_IDS_KEY, deleted)
        self._save_local([r for r in self._local_records() if r.id != artwork_id])
        order = self.custom_order()
        if artwork_id in order:
            order.remove(artwork_id)
            self.local.set(CUSTOM_ORDER_KEY, order)
        logger.info("Deleted artwork %s (row=%s, marked=%s)", artwork_id, outcome.row_deleted, outcome.marked_remote)
        return outcome

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def reorder(
        self,
        dragged: str,
        target_index: int,
        mode: SortMode,
        user: Optional[SessionUser],
        category: Optional[str] = None,
        query: Optional[str] = None,
    ) -> Optional[List[str]]:
        """Apply a drop on the displayed list and persist the curated order.

        Returns the new displayed order, or None when the current sort mode
        does not honor manual ordering.
        """
        _require_admin(user, "reorder the gallery")
        all_curated = [r.id for r in self.visible(SortMode.CURATED)]
        displayed = [r.id for r in filter_artworks(self.visible(SortMode.CURATED), category, query)]
        new_order = reorder(displayed, dragged, target_index, mode)
        if new_order is None:
            return None

        shown = set(displayed)
        replacement = iter(new_order)
        merged = [next(replacement) if artwork_id in shown else artwork_id for artwork_id in all_curated]
        self.local.set(CUSTOM_ORDER_KEY, merged)
        return new_order

    def reorder_series(self, series_name: str, ordered_ids: List[str], user: Optional[SessionUser]) -> Series:
        _require_admin(user, "reorder a series")
        current = next((s for s in self.series() if s.name == series_name), None)
        if current is None:
            raise NotFound(f"series {series_name!r} not found")
        ordered_ids = [str(i) for i in ordered_ids]
        if sorted(ordered_ids) != sorted(r.id for r in current.artworks):
            raise InvalidRequest("order must list every artwork in the series exactly once")

        position = {artwork_id: i for i, artwork_id in enumerate(ordered_ids)}
        local = self._local_records()
        if any(r.series_name == series_name for r in local):
            self._save_local([
                r.model_copy(update={"series_order": position[r.id]}) if r.id in position else r
                for r in local
            ])
        if self.remote is not None:
            self.remote.set_series_order(series_name, ordered_ids)
        return next(s for s in self.series() if s.name == series_name)


def _require_admin(user: Optional[SessionUser], action: str) -> None:
    if user is None or user.role is not Role.ADMIN:
        raise PermissionDenied(f"only admins may {action}")
