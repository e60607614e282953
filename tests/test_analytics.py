from datetime import timedelta

import pytest

from hipergallery import analytics
from hipergallery.db import AnalyticsEvent, utcnow
from hipergallery.interaction import CartItem


@pytest.mark.parametrize("width, kind", [(None, None), (375, "mobile"), (800, "tablet"), (1440, "desktop")])
def test_device_type(width, kind):
    assert analytics.device_type(width) == kind


def test_tracking_without_database_is_a_no_op():
    assert analytics.track(None, "page_view") is False
    assert analytics.track_order(None, "o1", 10.0, []) is False


def test_unknown_events_are_dropped(remote):
    assert analytics.track(remote, "mystery") is False
    assert analytics.summarize(remote)["total_page_views"] == 0


def test_summary(remote):
    analytics.track(remote, "session_start", user_id="u1")
    analytics.track(remote, "page_view", user_id="u1", device_type="desktop")
    analytics.track(remote, "artwork_view", artwork_id="1", artwork_title="Cosmic Dreams", user_id="u1")
    analytics.track(remote, "artwork_view", artwork_id="1", artwork_title="Cosmic Dreams", user_id="u2")
    analytics.track(remote, "artwork_view", artwork_id="2", artwork_title="Urban Sunset")
    analytics.track(remote, "cart_add", artwork_id="1", size_name="Small", frame_name="none")
    analytics.track(remote, "checkout_start", price=238.0)
    analytics.track(remote, "checkout_start", price=89.0)
    items = [
        CartItem("1", "Cosmic Dreams", "", "Small", "none", 89.0),
        CartItem("2", "Urban Sunset", "", "Medium", "black", 249.0),
    ]
    assert analytics.track_order(remote, "ord_1", 338.0, items, user_id="u1")

    summary = analytics.summarize(remote, days=7)
    assert summary["total_sessions"] == 1
    assert summary["total_artwork_views"] == 3
    assert summary["total_orders"] == 1
    assert summary["total_revenue"] == 338.0
    assert summary["unique_users"] == 2
    assert summary["device_types"] == {"mobile": 0, "tablet": 0, "desktop": 1}
    assert summary["popular_artworks"][0] == {"name": "Cosmic Dreams", "count": 2}
    assert summary["popular_sizes"][0] == {"name": "Small", "count": 2}
    assert [a["id"] for a in summary["top_selling_artworks"]] == ["2", "1"]
    assert summary["conversion_rate"] == 50
    assert summary["average_order_value"] == 338
    assert sum(summary["hourly_activity"].values()) == 9


def test_summary_window_excludes_older_events(remote):
    with remote.session() as s:
        s.add(AnalyticsEvent(event_type="page_view", created_at=utcnow() - timedelta(days=10)))
        s.commit()
    analytics.track(remote, "page_view")
    assert analytics.summarize(remote, days=7)["total_page_views"] == 1
    assert analytics.summarize(remote, days=30)["total_page_views"] == 2
