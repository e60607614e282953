from datetime import datetime, timezone
from io import BytesIO

import pytest
from PIL import Image

from hipergallery.db import Artwork
from hipergallery.records import ArtworkRecord
from hipergallery.utils import mk_slug, new_artwork_id, new_artwork_ids, save_image_and_thumb, split_categories


def test_record_normalizes_id_and_categories():
    record = ArtworkRecord(id=42, title="Answer", categories=" abstract, ,nature ")
    assert record.id == "42"
    assert record.categories == ["abstract", "nature"]
    assert record.numeric_id == 42
    assert ArtworkRecord(id="abc", title="x").numeric_id is None


def test_row_round_trip_keeps_categories():
    created = datetime(2024, 5, 1, tzinfo=timezone.utc)
    record = ArtworkRecord(id="7", title="Tide", categories=["ocean", "blue"], series_name="Sea", created_at=created)
    row = record.to_row()
    assert isinstance(row, Artwork)
    assert row.category == "ocean,blue"
    assert ArtworkRecord.from_row(row).categories == ["ocean", "blue"]


def test_from_local_accepts_legacy_category_field():
    record = ArtworkRecord.from_local({"id": 3, "title": "Old", "category": "nature"})
    assert record.categories == ["nature"]


@pytest.mark.parametrize("data", ["garbage", None, {"id": "1"}, {"title": "no id"}])
def test_from_local_rejects_malformed(data):
    assert ArtworkRecord.from_local(data) is None


def test_new_ids_stay_above_existing():
    far_future = "99999999999999"
    assert new_artwork_id([far_future, "abc"]) == "100000000000000"
    ids = new_artwork_ids(3, [far_future])
    assert len(set(ids)) == 3
    assert all(int(i) > int(far_future) for i in ids)


def test_split_categories():
    assert split_categories("") == []
    assert split_categories("a, b") == ["a", "b"]


def test_slug():
    assert mk_slug("Blue Hour!") == "blue-hour"
    assert mk_slug("Blue", "2") == "blue-2"
    assert mk_slug("!!!") == "untitled"


def test_save_image_and_thumb(tmp_path):
    buf = BytesIO()
    Image.new("RGBA", (2000, 1000), (0, 0, 255, 128)).save(buf, format="PNG")
    dest = tmp_path / "uploads" / "u1"
    url, thumb = save_image_and_thumb(buf.getvalue(), dest, "piece")
    assert url == "/media/uploads/u1/piece.jpg"
    assert thumb == "/media/uploads/u1/thumbs/piece_thumb.jpg"
    with Image.open(dest / "piece.jpg") as im:
        assert max(im.size) == 1600
    with Image.open(dest / "thumbs" / "piece_thumb.jpg") as im:
        assert max(im.size) == 400


def test_save_rejects_non_images(tmp_path):
    with pytest.raises(ValueError):
        save_image_and_thumb(b"not an image", tmp_path / "u1", "x")
