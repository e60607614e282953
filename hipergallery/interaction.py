import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

from .errors import InvalidRequest
from .local_store import FAVORITES_KEY, LocalStore
from .reconcile import SortMode

logger = logging.getLogger(__name__)

SWIPE_THRESHOLD = 50  # px


def move_identifier(order: Sequence[str], dragged: str, target_index: int) -> List[str]:
    """Return `order` with `dragged` moved so it ends up at `target_index`."""
    order = [str(i) for i in order]
    dragged = str(dragged)
    if dragged not in order:
        raise InvalidRequest(f"{dragged} is not in the displayed list")
    order.remove(dragged)
    target_index = max(0, min(target_index, len(order)))
    order.insert(target_index, dragged)
    return order


def reorder(displayed: Sequence[str], dragged: str, target_index: int, mode: SortMode) -> Optional[List[str]]:
    """Drag-and-drop on the displayed list; None when not in curated mode."""
    if SortMode(mode) is not SortMode.CURATED:
        logger.info("Ignoring reorder of %s under %s sort", dragged, SortMode(mode).value)
        return None
    return move_identifier(displayed, dragged, target_index)


class Carousel:
    """Series viewer position; navigation stops at either end."""

    def __init__(self, count: int, index: int = 0):
        self.count = max(0, count)
        self.index = 0
        self.go_to(index)

    def go_to(self, index: int) -> int:
        self.index = max(0, min(index, self.count - 1)) if self.count else 0
        return self.index

    def next(self) -> int:
        return self.go_to(self.index + 1)

    def previous(self) -> int:
        return self.go_to(self.index - 1)

    @property
    def at_start(self) -> bool:
        return self.index == 0

    @property
    def at_end(self) -> bool:
        return self.count == 0 or self.index == self.count - 1

    def handle_key(self, key: str) -> int:
        if key == "ArrowRight":
            return self.next()
        if key == "ArrowLeft":
            return self.previous()
        return self.index

    def handle_swipe(self, start_x: float, end_x: float, threshold: float = SWIPE_THRESHOLD) -> int:
        distance = start_x - end_x
        if distance > threshold:
            return self.next()
        if distance < -threshold:
            return self.previous()
        return self.index


class Favorites:
    def __init__(self, store: LocalStore, key: str = FAVORITES_KEY):
        self.store = store
        self.key = key

    def ids(self) -> List[str]:
        return [str(i) for i in self.store.get_list(self.key)]

    def contains(self, artwork_id: str) -> bool:
        return str(artwork_id) in self.ids()

    def toggle(self, artwork_id: str) -> bool:
        """Flip membership and return whether the artwork is now a favorite."""
        artwork_id = str(artwork_id)
        ids = self.ids()
        if artwork_id in ids:
            ids.remove(artwork_id)
            added = False
        else:
            ids.append(artwork_id)
            added = True
        self.store.set(self.key, ids)
        return added


@dataclass(frozen=True)
class PrintSize:
    name: str
    dimensions: str
    price: float


@dataclass(frozen=True)
class Frame:
    name: str
    label: str
    price: float


SIZES = {s.name: s for s in (
    PrintSize("Small", '12x12"', 89.0),
    PrintSize("Medium", '24x24"', 189.0),
    PrintSize("Large", '36x36"', 349.0),
    PrintSize("Grand", '48x48"', 549.0),
)}

FRAMES = {f.name: f for f in (
    Frame("none", "No frame", 0.0),
    Frame("black", "Black", 60.0),
    Frame("white", "White", 60.0),
    Frame("natural", "Natural oak", 75.0),
    Frame("walnut", "Walnut", 95.0),
    Frame("gold", "Antique gold", 120.0),
)}


@dataclass
class CartItem:
    artwork_id: str
    title: str
    image_url: str
    size: str
    frame: str
    total: float

    @property
    def framed(self) -> bool:
        return self.frame != "none"


@dataclass
class Cart:
    items: List[CartItem] = field(default_factory=list)

    def add(self, artwork_id: str, title: str, image_url: str, size: str, frame: str = "none") -> CartItem:
        if size not in SIZES:
            raise InvalidRequest(f"unknown size {size!r}")
        if frame not in FRAMES:
            raise InvalidRequest(f"unknown frame {frame!r}")
        item = CartItem(
            artwork_id=str(artwork_id),
            title=title,
            image_url=image_url,
            size=size,
            frame=frame,
            total=SIZES[size].price + FRAMES[frame].price,
        )
        self.items.append(item)
        return item

    def remove(self, index: int) -> CartItem:
        if not 0 <= index < len(self.items):
            raise InvalidRequest(f"no cart item at position {index}")
        return self.items.pop(index)

    @property
    def total(self) -> float:
        return round(sum(i.total for i in self.items), 2)

    def checkout(self) -> List[CartItem]:
        """Hand back the items and empty the cart."""
        items, self.items = self.items, []
        return items

    def as_dict(self) -> dict:
        return {"items": [asdict(i) for i in self.items], "total": self.total, "count": len(self.items)}
