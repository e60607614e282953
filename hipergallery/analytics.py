"""Usage events and the admin summary built from them.

Tracking is best effort: a failed insert is logged and dropped so that it
never breaks the request that triggered it. Without a database nothing is
recorded.
"""
import logging
from collections import Counter
from datetime import timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from .db import AnalyticsEvent, AnalyticsSale, RemoteStore, utcnow
from .errors import RemoteError
from .interaction import CartItem

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "page_view", "artwork_view", "cart_add", "checkout_start", "order_complete",
    "favorite_add", "favorite_remove", "session_start",
}


def device_type(width: Optional[int]) -> Optional[str]:
    if width is None:
        return None
    if width < 768:
        return "mobile"
    if width < 1024:
        return "tablet"
    return "desktop"


def track(remote: Optional[RemoteStore], event_type: str, **fields) -> bool:
    if remote is None:
        return False
    if event_type not in EVENT_TYPES:
        logger.warning("Ignoring unknown analytics event %r", event_type)
        return False
    try:
        with remote.session() as s:
            s.add(AnalyticsEvent(event_type=event_type, **fields))
            s.commit()
        return True
    except SQLAlchemyError as exc:
        logger.error("Error tracking %s: %s", event_type, exc)
        return False


def track_order(
    remote: Optional[RemoteStore],
    order_id: str,
    total: float,
    items: List[CartItem],
    user_id: Optional[str] = None,
    device: Optional[str] = None,
) -> bool:
    if remote is None:
        return False
    try:
        with remote.session() as s:
            s.add(AnalyticsEvent(
                event_type="order_complete", order_id=order_id, price=total,
                item_count=len(items), user_id=user_id, device_type=device,
            ))
            for item in items:
                s.add(AnalyticsSale(
                    order_id=order_id, artwork_id=item.artwork_id, artwork_title=item.title,
                    size_name=item.size, frame_name=item.frame, price=item.total, user_id=user_id,
                ))
            s.commit()
        return True
    except SQLAlchemyError as exc:
        logger.error("Error tracking order %s: %s", order_id, exc)
        return False


def _ranked(values: Iterable[Optional[str]]) -> List[dict]:
    counts = Counter(v for v in values if v)
    return [{"name": name, "count": count} for name, count in counts.most_common()]


def summarize(remote: RemoteStore, days: int = 30) -> dict:
    since = utcnow() - timedelta(days=days)
    try:
        with remote.session() as s:
            events = list(s.exec(
                select(AnalyticsEvent)
                .where(AnalyticsEvent.created_at >= since)
                .order_by(AnalyticsEvent.created_at.desc())
            ).all())
            sales = list(s.exec(select(AnalyticsSale).where(AnalyticsSale.created_at >= since)).all())
    except SQLAlchemyError as exc:
        logger.error("Error fetching analytics summary: %s", exc)
        raise RemoteError("could not load analytics") from exc

    by_type = Counter(e.event_type for e in events)
    orders = [e for e in events if e.event_type == "order_complete"]
    revenue = sum(e.price or 0 for e in orders)
    cart_adds = [e for e in events if e.event_type == "cart_add"]

    top_selling = {}
    for sale in sales:
        entry = top_selling.setdefault(sale.artwork_id, {"id": sale.artwork_id, "title": sale.artwork_title, "count": 0, "revenue": 0.0})
        entry["count"] += 1
        entry["revenue"] += sale.price or 0

    daily = {}
    hourly = {hour: 0 for hour in range(24)}
    for e in events:
        day = daily.setdefault(e.created_at.date().isoformat(), {"views": 0, "sessions": 0, "orders": 0, "revenue": 0.0})
        if e.event_type in ("page_view", "artwork_view"):
            day["views"] += 1
        elif e.event_type == "session_start":
            day["sessions"] += 1
        elif e.event_type == "order_complete":
            day["orders"] += 1
            day["revenue"] += e.price or 0
        hourly[e.created_at.hour] += 1

    checkouts = by_type["checkout_start"]
    return {
        "days": days,
        "total_page_views": by_type["page_view"],
        "total_artwork_views": by_type["artwork_view"],
        "total_sessions": by_type["session_start"],
        "total_cart_adds": by_type["cart_add"],
        "total_checkout_starts": checkouts,
        "total_orders": len(orders),
        "total_revenue": round(revenue, 2),
        "total_favorites": by_type["favorite_add"],
        "device_types": {d: sum(1 for e in events if e.device_type == d) for d in ("mobile", "tablet", "desktop")},
        "unique_users": len({e.user_id for e in events if e.user_id}),
        "popular_artworks": _ranked(e.artwork_title for e in events if e.event_type == "artwork_view"),
        "popular_sizes": _ranked([e.size_name for e in cart_adds] + [s.size_name for s in sales]),
        "popular_frames": _ranked([e.frame_name for e in cart_adds] + [s.frame_name for s in sales]),
        "top_selling_artworks": sorted(top_selling.values(), key=lambda x: x["revenue"], reverse=True),
        "daily_stats": daily,
        "hourly_activity": hourly,
        "conversion_rate": round(len(orders) / checkouts * 100) if checkouts else 0,
        "average_order_value": round(revenue / len(orders)) if orders else 0,
    }
