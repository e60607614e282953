import re

from starlette.middleware.base import BaseHTTPMiddleware

CACHE_GENERATION = "hiper-v1"

IMAGE_PATH = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)

IMMUTABLE = "public, max-age=31536000, immutable"
NETWORK_FIRST = "no-cache"
REVALIDATE = "public, max-age=60, stale-while-revalidate=86400"


def cache_policy(path: str) -> str:
    """Images cache first, API calls go to the network, the rest revalidates."""
    if IMAGE_PATH.search(path):
        return IMMUTABLE
    if path.startswith("/api/"):
        return NETWORK_FIRST
    return REVALIDATE


class CachePolicyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if request.method == "GET" and response.status_code < 400:
            response.headers.setdefault("Cache-Control", cache_policy(request.url.path))
            response.headers["X-Cache-Generation"] = CACHE_GENERATION
        return response
