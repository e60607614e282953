import time
from io import BytesIO
from pathlib import Path
from typing import Iterable, List

from PIL import Image, UnidentifiedImageError
from slugify import slugify


def new_artwork_id(existing: Iterable[str] = ()) -> str:
    """Millisecond timestamp id, strictly above every numeric id in `existing`."""
    now = int(time.time() * 1000)
    numeric = [int(i) for i in existing if str(i).isdigit()]
    return str(max([now] + [n + 1 for n in numeric]))


def new_artwork_ids(count: int, existing: Iterable[str] = ()) -> List[str]:
    ids: List[str] = []
    seen = list(existing)
    for _ in range(count):
        next_id = new_artwork_id(seen)
        ids.append(next_id)
        seen.append(next_id)
    return ids


def split_categories(value: str) -> List[str]:
    return [c.strip() for c in (value or "").split(",") if c.strip()]


def join_categories(values: Iterable[str]) -> str:
    return ",".join(v.strip() for v in values if v and v.strip())


def save_image_and_thumb(image_bytes: bytes, dest_dir: Path, base_name: str) -> tuple[str, str]:
    """Store an upload under dest_dir and return (image url, thumbnail url).

    Raises ValueError when the bytes are not a readable image.
    """
    try:
        im = Image.open(BytesIO(image_bytes))
        im.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("not a readable image") from exc

    dest_dir.mkdir(parents=True, exist_ok=True)
    thumb_dir = dest_dir / "thumbs"
    thumb_dir.mkdir(exist_ok=True)
    img_path = dest_dir / f"{base_name}.jpg"
    thumb_path = thumb_dir / f"{base_name}_thumb.jpg"

    im = im.convert("RGB")
    im.thumbnail((1600, 1600))
    im.save(img_path, quality=90, optimize=True)
    im.thumbnail((400, 400))
    im.save(thumb_path, quality=85, optimize=True)

    rel = f"/media/uploads/{dest_dir.name}/{img_path.name}"
    rel_thumb = f"/media/uploads/{dest_dir.name}/thumbs/{thumb_path.name}"
    return rel, rel_thumb


def mk_slug(title: str, suffix: str = "") -> str:
    return slugify(f"{title}-{suffix}" if suffix else title) or "untitled"
