"""Merging and ordering of the artwork list.

Three sources feed the gallery: rows from the database (when one is
configured), rows kept in the local store, and the set of identifiers the
user deleted. `reconcile` folds them into one list; the remaining helpers
derive the views the API serves.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .records import ArtworkRecord

logger = logging.getLogger(__name__)


class SortMode(str, enum.Enum):
    CURATED = "curated"
    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"


@dataclass
class Series:
    name: str
    artworks: List[ArtworkRecord] = field(default_factory=list)

    @property
    def cover(self) -> Optional[ArtworkRecord]:
        return self.artworks[0] if self.artworks else None


def _title_key(title: str) -> str:
    return " ".join(title.split()).casefold()


def reconcile(
    remote: Optional[Sequence[ArtworkRecord]],
    local: Sequence[ArtworkRecord],
    deleted: Iterable[str],
) -> List[ArtworkRecord]:
    """Remote rows first, then local-only rows; nothing from `deleted`.

    When both sources hold an identifier the remote row wins. A local row
    whose title matches a remote row is treated as a stale copy and dropped.
    `remote=None` means the database is unavailable.
    """
    deleted = {str(d) for d in deleted}
    merged: List[ArtworkRecord] = []
    seen_ids = set()
    remote_titles = set()

    for record in remote or ():
        if record.id in deleted or record.id in seen_ids:
            continue
        seen_ids.add(record.id)
        remote_titles.add(_title_key(record.title))
        merged.append(record)

    for record in local:
        if record.id in deleted or record.id in seen_ids:
            continue
        if _title_key(record.title) in remote_titles:
            continue
        seen_ids.add(record.id)
        merged.append(record)

    logger.debug("Reconciled %d artworks (%d remote, %d local, %d deleted)",
                 len(merged), len(remote or ()), len(local), len(deleted))
    return merged


def timeline_key(record: ArtworkRecord) -> int:
    if record.numeric_id is not None:
        return record.numeric_id
    if record.created_at is not None:
        return int(record.created_at.timestamp() * 1000)
    return 0


def sort_artworks(
    items: Sequence[ArtworkRecord],
    mode: SortMode = SortMode.CURATED,
    custom_order: Sequence[str] = (),
) -> List[ArtworkRecord]:
    mode = SortMode(mode)
    if mode is SortMode.NEWEST:
        return sorted(items, key=timeline_key, reverse=True)
    if mode is SortMode.OLDEST:
        return sorted(items, key=timeline_key)
    if mode is SortMode.TITLE:
        return sorted(items, key=lambda r: (r.title.casefold(), r.id))

    position = {str(artwork_id): i for i, artwork_id in enumerate(custom_order)}
    ranked = [r for r in items if r.id in position]
    rest = [r for r in items if r.id not in position]
    ranked.sort(key=lambda r: position[r.id])
    rest.sort(key=timeline_key, reverse=True)
    return ranked + rest


def filter_artworks(
    items: Iterable[ArtworkRecord],
    category: Optional[str] = None,
    query: Optional[str] = None,
) -> List[ArtworkRecord]:
    category = (category or "").strip().casefold()
    needle = (query or "").strip().casefold()
    out = []
    for record in items:
        if category and category != "all":
            if category not in (c.casefold() for c in record.categories):
                continue
        if needle:
            haystack = " ".join([
                record.title, record.artist, record.style, record.description,
                record.series_name or "", *record.categories,
            ]).casefold()
            if needle not in haystack:
                continue
        out.append(record)
    return out


def group_series(items: Iterable[ArtworkRecord]) -> List[Series]:
    groups = {}
    for record in items:
        if record.series_name:
            groups.setdefault(record.series_name, []).append(record)
    series = []
    for name in sorted(groups, key=str.casefold):
        members = sorted(
            groups[name],
            key=lambda r: (r.series_order is None, r.series_order or 0, timeline_key(r)),
        )
        series.append(Series(name=name, artworks=members))
    return series
