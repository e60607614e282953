import pytest

from hipergallery.caching import CACHE_GENERATION, IMMUTABLE, NETWORK_FIRST, REVALIDATE, cache_policy


@pytest.mark.parametrize(
    "path, policy",
    [
        ("/media/uploads/u1/piece.JPG", IMMUTABLE),
        ("/media/uploads/u1/piece_thumb.webp", IMMUTABLE),
        ("/api/artworks", NETWORK_FIRST),
        ("/api/artworks/1", NETWORK_FIRST),
        ("/health", REVALIDATE),
        ("/", REVALIDATE),
    ],
)
def test_cache_policy(path, policy):
    assert cache_policy(path) == policy


def test_middleware_tags_successful_gets(client):
    resp = client.get("/health")
    assert resp.headers["cache-control"] == REVALIDATE
    assert resp.headers["x-cache-generation"] == CACHE_GENERATION


def test_middleware_skips_errors_and_writes(client):
    missing = client.get("/api/artworks/nope")
    assert missing.status_code == 404
    assert "x-cache-generation" not in missing.headers
    posted = client.post("/api/favorites/1")
    assert "x-cache-generation" not in posted.headers
