import pytest

from hipergallery.db import Artwork
from hipergallery.errors import NotFound, PermissionDenied, RemoteError
from hipergallery.gallery import DEFAULT_ARTWORKS, GalleryService
from hipergallery.local_store import CUSTOM_ORDER_KEY, DELETED_IDS_KEY, LocalStore
from hipergallery.reconcile import SortMode
from hipergallery.records import ArtworkPatch, ArtworkRecord
from hipergallery.wizard import build_series_records


class StubbornRemote:
    """Keeps returning its rows and fails every write."""

    def __init__(self, rows):
        self.rows = rows

    def list_artworks(self):
        return list(self.rows)

    def list_deleted_ids(self):
        return []

    def delete_artwork(self, artwork_id):
        raise RemoteError("row delete failed")

    def mark_deleted(self, artwork_id, deleted_by):
        raise RemoteError("side table unavailable")


def ids(items):
    return [r.id for r in items]


def test_demo_mode_seeds_default_artworks(local):
    gallery = GalleryService(local)
    assert ids(gallery.load()) == [a.id for a in DEFAULT_ARTWORKS]
    assert all(r.is_default for r in gallery.load())


def test_create_and_update_in_demo_mode(local, artist):
    gallery = GalleryService(local)
    created = gallery.create(ArtworkRecord(id="5000", title="Blue Hour"), artist)
    assert created.user_id == artist.id
    assert created.artist == "Ada"
    updated = gallery.update("5000", ArtworkPatch(title="Blue Hour II"), artist)
    assert updated.title == "Blue Hour II"
    assert GalleryService(local).get("5000").title == "Blue Hour II"


def test_artist_cannot_update_default_item(local, artist):
    gallery = GalleryService(local)
    with pytest.raises(PermissionDenied):
        gallery.update("1", ArtworkPatch(title="Mine now"), artist)


def test_delete_hides_artwork_and_survives_reload(local, admin):
    gallery = GalleryService(local)
    outcome = gallery.delete("2", admin)
    assert outcome.local_only
    assert "2" not in ids(gallery.load())
    assert "2" in local.get_list(DELETED_IDS_KEY)
    assert "2" not in ids(GalleryService(LocalStore(local.directory)).load())
    with pytest.raises(NotFound):
        gallery.get("2")


def test_delete_sticks_even_when_server_keeps_the_row(local, admin):
    rows = [Artwork(id="10", title="Stays remote"), Artwork(id="11", title="Other")]
    gallery = GalleryService(local, StubbornRemote(rows))
    outcome = gallery.delete("10", admin)
    assert not outcome.row_deleted and not outcome.marked_remote
    assert outcome.local_only

    reloaded = GalleryService(local, StubbornRemote(rows))
    assert ids(reloaded.load()) == ["11"]


def test_delete_against_database_uses_both_tiers(local, remote, admin):
    remote.insert_artworks([Artwork(id="10", title="Gone"), Artwork(id="11", title="Kept")])
    gallery = GalleryService(local, remote)
    outcome = gallery.delete("10", admin)
    assert outcome.row_deleted and outcome.marked_remote
    assert remote.get_artwork("10") is None
    assert "10" in remote.list_deleted_ids()
    assert ids(gallery.load()) == ["11"]


def test_remote_rows_win_over_local_rows(local, remote, artist):
    remote.insert_artworks([Artwork(id="10", title="Remote")])
    local.set("artworks", [{"id": "10", "title": "Local"}, {"id": "12", "title": "Only local"}, "garbage"])
    gallery = GalleryService(local, remote)
    assert [(r.id, r.title) for r in gallery.load()] == [("10", "Remote"), ("12", "Only local")]


def test_mirror_is_served_when_database_fails(local, remote):
    remote.insert_artworks([Artwork(id="10", title="Mirrored")])
    gallery = GalleryService(local, remote)
    gallery.load()

    class Down(StubbornRemote):
        def list_artworks(self):
            raise RemoteError("down")

    assert ids(GalleryService(local, Down([])).load()) == ["10"]


def test_reorder_round_trips_in_curated_mode(local, admin):
    gallery = GalleryService(local)
    assert ids(gallery.visible()) == ["3", "2", "1"]
    order = gallery.reorder("3", 2, SortMode.CURATED, admin)
    assert order == ["2", "1", "3"]
    assert local.get_list(CUSTOM_ORDER_KEY) == ["2", "1", "3"]
    assert ids(GalleryService(LocalStore(local.directory)).visible()) == ["2", "1", "3"]


@pytest.mark.parametrize("mode", [SortMode.NEWEST, SortMode.OLDEST, SortMode.TITLE])
def test_reorder_rejected_outside_curated_mode(local, admin, mode):
    gallery = GalleryService(local)
    gallery.reorder("3", 2, SortMode.CURATED, admin)
    assert gallery.reorder("2", 2, mode, admin) is None
    assert local.get_list(CUSTOM_ORDER_KEY) == ["2", "1", "3"]


def test_reorder_within_filtered_view_keeps_hidden_positions(local, admin):
    gallery = GalleryService(local)
    gallery.reorder("3", 2, SortMode.CURATED, admin)
    # only the two photography pieces (2 and 3) match the query
    new = gallery.reorder("3", 0, SortMode.CURATED, admin, query="photo")
    assert new == ["3", "2"]
    assert local.get_list(CUSTOM_ORDER_KEY) == ["3", "1", "2"]


def test_reorder_needs_admin(local, artist):
    with pytest.raises(PermissionDenied):
        GalleryService(local).reorder("3", 0, SortMode.CURATED, artist)


def test_publish_series_creates_one_deck(local, artist, admin):
    gallery = GalleryService(local)
    records = build_series_records(
        "Test Series", "Shared", ["/a.jpg", "/b.jpg", "/c.jpg"], {2: "Last"},
        existing_ids=gallery.existing_ids(),
    )
    gallery.publish_series(records, artist)
    series = gallery.series()
    assert [s.name for s in series] == ["Test Series"]
    deck = series[0]
    assert len(deck.artworks) == 3
    assert deck.artworks[2].description == "Shared\n\nLast"

    wanted = [deck.artworks[2].id, deck.artworks[0].id, deck.artworks[1].id]
    reordered = gallery.reorder_series("Test Series", wanted, admin)
    assert ids(reordered.artworks) == wanted


def test_viewer_cannot_upload(local, viewer):
    with pytest.raises(PermissionDenied):
        GalleryService(local).create(ArtworkRecord(id="9", title="Nope"), viewer)


def test_new_flag_expires_for_local_rows(local, artist):
    gallery = GalleryService(local)
    fresh = gallery.create(ArtworkRecord(id="6000", title="Fresh"), artist)
    assert fresh.is_new
    local.set("artworks", [
        {**r.to_local(), "created_at": "2020-01-01T00:00:00+00:00"} if r.id == "6000" else r.to_local()
        for r in gallery.load()
    ])
    assert not GalleryService(local).get("6000").is_new
