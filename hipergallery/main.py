import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from . import analytics
from .auth import AuthService
from .caching import CachePolicyMiddleware
from .config import Settings, load_settings
from .db import PrintOrder, RemoteStore, init_db, make_engine
from .errors import (
    AuthenticationFailed,
    ConfigurationError,
    GalleryError,
    InvalidRequest,
    NotFound,
    PermissionDenied,
    RemoteError,
)
from .gallery import GalleryService
from .interaction import FRAMES, SIZES, Cart, Favorites
from .local_store import LocalStore
from .logging_config import setup_logging
from .permissions import Role, SessionUser, permissions_for, require
from .prints import PrintClient, ShippingAddress, build_order
from .reconcile import SortMode
from .records import ArtworkIn, ArtworkPatch, ArtworkRecord
from .utils import mk_slug, new_artwork_id, save_image_and_thumb
from .vision import VisionClient
from .wizard import UploadWizard, parse_text_document

logger = logging.getLogger(__name__)

MAX_CARTS = 1000


# -----------------------------------------------------------------------------
# Application context
# -----------------------------------------------------------------------------
@dataclass
class AppContext:
    settings: Settings
    local: LocalStore
    remote: Optional[RemoteStore]
    gallery: GalleryService
    auth: AuthService
    vision: VisionClient
    prints: PrintClient
    favorites: Favorites
    wizards: Dict[str, UploadWizard] = field(default_factory=dict)
    wizard_owners: Dict[str, str] = field(default_factory=dict)
    carts: Dict[str, Cart] = field(default_factory=dict)


def build_context(settings: Settings) -> AppContext:
    local = LocalStore(settings.local_store_dir)
    remote = None
    if settings.is_remote_configured:
        engine = make_engine(settings.database_url)
        init_db(engine)
        remote = RemoteStore(engine)
    return AppContext(
        settings=settings,
        local=local,
        remote=remote,
        gallery=GalleryService(local, remote),
        auth=AuthService(settings, local, remote),
        vision=VisionClient(settings.anthropic_api_key, settings.anthropic_model),
        prints=PrintClient(settings.prodigi_api_key, settings.prodigi_api_url),
        favorites=Favorites(local),
    )


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def current_user(request: Request, ctx: AppContext = Depends(get_ctx)) -> Optional[SessionUser]:
    return ctx.auth.resolve(_bearer(request))


def signed_in(user: Optional[SessionUser] = Depends(current_user)) -> SessionUser:
    if user is None:
        raise PermissionDenied("sign in first")
    return user


def check_api_key(request: Request, ctx: AppContext = Depends(get_ctx)) -> None:
    expected = ctx.settings.api_key
    if expected and request.headers.get("X-API-Key", "") != expected:
        raise AuthenticationFailed("unauthorized")


def _artwork_json(record: ArtworkRecord, user: Optional[SessionUser]) -> dict:
    data = record.to_local()
    perms = permissions_for(user, record)
    data["can_edit"] = perms.can_edit
    data["can_delete"] = perms.can_delete
    return data


def _sort_mode(value: Optional[str]) -> SortMode:
    try:
        return SortMode(value or SortMode.CURATED.value)
    except ValueError:
        raise InvalidRequest(f"unknown sort mode {value!r}") from None


# -----------------------------------------------------------------------------
# Payloads
# -----------------------------------------------------------------------------
class SignUp(BaseModel):
    email: str
    password: str
    name: str = ""


class SignIn(BaseModel):
    email: str
    password: str


class DemoLogin(BaseModel):
    provider: str = "google"


class ReorderRequest(BaseModel):
    artwork_id: str
    target_index: int
    sort: str = SortMode.CURATED.value
    category: Optional[str] = None
    q: Optional[str] = None


class SeriesOrder(BaseModel):
    ids: List[str]


class WizardStart(BaseModel):
    images: List[str]
    categories: List[str] = Field(default_factory=list)


class WizardAction(BaseModel):
    value: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    name: Optional[str] = None
    index: Optional[int] = None
    note: Optional[str] = None


class DescribeRequest(BaseModel):
    image_url: str
    title: Optional[str] = None
    category: Optional[str] = None
    artist: Optional[str] = None


class CartAdd(BaseModel):
    artwork_id: str
    size: str
    frame: str = "none"


class Address(BaseModel):
    name: str
    line1: str
    city: str
    postal_code: str
    country: str
    line2: Optional[str] = None
    state: Optional[str] = None


class Checkout(BaseModel):
    email: Optional[str] = None
    shipping: Optional[Address] = None


class TrackEvent(BaseModel):
    event_type: str
    page: Optional[str] = None
    artwork_id: Optional[str] = None
    artwork_title: Optional[str] = None
    width: Optional[int] = None


# -----------------------------------------------------------------------------
# Auth routes
# -----------------------------------------------------------------------------
api = APIRouter(prefix="/api", dependencies=[Depends(check_api_key)])


@api.post("/auth/signup", status_code=201)
def sign_up(payload: SignUp, ctx: AppContext = Depends(get_ctx)):
    user, token = ctx.auth.sign_up(payload.email, payload.password, payload.name)
    analytics.track(ctx.remote, "session_start", user_id=user.id)
    return {"user": user.as_dict(), "token": token}


@api.post("/auth/signin")
def sign_in(payload: SignIn, ctx: AppContext = Depends(get_ctx)):
    user, token = ctx.auth.sign_in(payload.email, payload.password)
    analytics.track(ctx.remote, "session_start", user_id=user.id)
    return {"user": user.as_dict(), "token": token}


@api.post("/auth/demo")
def demo_login(payload: DemoLogin, ctx: AppContext = Depends(get_ctx)):
    user, token = ctx.auth.demo_login(payload.provider)
    return {"user": user.as_dict(), "token": token}


@api.post("/auth/signout")
def sign_out(request: Request, ctx: AppContext = Depends(get_ctx)):
    ctx.auth.sign_out(_bearer(request))
    return {"ok": True}


@api.get("/auth/me")
def me(user: Optional[SessionUser] = Depends(current_user)):
    return {
        "user": user.as_dict() if user else None,
        "permissions": asdict(permissions_for(user)),
    }


# -----------------------------------------------------------------------------
# Artworks
# -----------------------------------------------------------------------------
@api.get("/artworks")
def list_artworks(
    sort: Optional[str] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    mode = _sort_mode(sort)
    items = ctx.gallery.visible(mode, category, q)
    return {"sort": mode.value, "count": len(items), "items": [_artwork_json(r, user) for r in items]}


@api.get("/artworks/{artwork_id}")
def get_artwork(
    artwork_id: str,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    record = ctx.gallery.get(artwork_id)
    analytics.track(ctx.remote, "artwork_view", artwork_id=record.id, artwork_title=record.title,
                    user_id=user.id if user else None)
    return _artwork_json(record, user)


@api.post("/artworks", status_code=201)
def create_artwork(
    payload: ArtworkIn,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    title = payload.title.strip()
    if not title:
        raise InvalidRequest("title is required")
    record = ArtworkRecord(id=new_artwork_id(ctx.gallery.existing_ids()), **{**payload.model_dump(), "title": title})
    created = ctx.gallery.create(record, user)
    return _artwork_json(created, user)


@api.patch("/artworks/{artwork_id}")
def update_artwork(
    artwork_id: str,
    payload: ArtworkPatch,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    if payload.title is not None and not payload.title.strip():
        raise InvalidRequest("title cannot be empty")
    return _artwork_json(ctx.gallery.update(artwork_id, payload, user), user)


@api.delete("/artworks/{artwork_id}")
def delete_artwork(
    artwork_id: str,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    return ctx.gallery.delete(artwork_id, user).as_dict()


@api.post("/artworks/order")
def reorder_artworks(
    payload: ReorderRequest,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    mode = _sort_mode(payload.sort)
    order = ctx.gallery.reorder(payload.artwork_id, payload.target_index, mode, user, payload.category, payload.q)
    if order is None:
        return JSONResponse({"error": "reordering is only available in curated order"}, status_code=409)
    return {"order": order}


@api.post("/uploads", status_code=201)
async def upload_images(
    files: List[UploadFile] = File(...),
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    require(user, "upload")
    dest_dir = ctx.settings.media_root / "uploads" / user.id
    images = []
    for uf in files:
        content = await uf.read()
        stem = mk_slug((uf.filename or "image").rsplit(".", 1)[0])
        try:
            url, thumb = save_image_and_thumb(content, dest_dir, f"{stem}-{uuid.uuid4().hex[:8]}")
        except ValueError:
            raise InvalidRequest(f"{uf.filename or 'upload'} is not an image") from None
        images.append({"url": url, "thumb": thumb})
    logger.info("Stored %d upload(s) for %s", len(images), user.id)
    return {"images": images}


# -----------------------------------------------------------------------------
# Series
# -----------------------------------------------------------------------------
@api.get("/series")
def list_series(ctx: AppContext = Depends(get_ctx), user: Optional[SessionUser] = Depends(current_user)):
    return [
        {
            "name": s.name,
            "count": len(s.artworks),
            "cover": s.cover.image_url if s.cover else None,
            "artworks": [_artwork_json(r, user) for r in s.artworks],
        }
        for s in ctx.gallery.series()
    ]


@api.post("/series/{name}/order")
def reorder_series(
    name: str,
    payload: SeriesOrder,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    series = ctx.gallery.reorder_series(name, payload.ids, user)
    return {"name": series.name, "ids": [r.id for r in series.artworks]}


# -----------------------------------------------------------------------------
# Upload wizard
# -----------------------------------------------------------------------------
def _wizard(ctx: AppContext, wizard_id: str, user: SessionUser) -> UploadWizard:
    wizard = ctx.wizards.get(wizard_id)
    if wizard is None or ctx.wizard_owners.get(wizard_id) != user.id:
        raise NotFound("upload session not found")
    return wizard


def _drop_wizard(ctx: AppContext, wizard_id: str) -> None:
    ctx.wizards.pop(wizard_id, None)
    ctx.wizard_owners.pop(wizard_id, None)


@api.post("/wizard", status_code=201)
def start_wizard(payload: WizardStart, ctx: AppContext = Depends(get_ctx), user: SessionUser = Depends(signed_in)):
    require(user, "upload")
    wizard = UploadWizard(artist=user.name or user.email, user_id=user.id, categories=payload.categories)
    wizard.start(payload.images)
    wizard_id = uuid.uuid4().hex
    ctx.wizards[wizard_id] = wizard
    ctx.wizard_owners[wizard_id] = user.id
    return {"id": wizard_id, **wizard.snapshot()}


@api.post("/wizard/parse-text")
async def parse_text(file: UploadFile = File(...)):
    name = (file.filename or "").lower()
    if file.content_type not in ("text/plain", None) and not name.endswith(".txt"):
        raise InvalidRequest("only plain text documents are supported")
    content = await file.read()
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidRequest("document is not UTF-8 text") from None
    title, body = parse_text_document(text)
    return {"title": title, "description": body}


@api.post("/wizard/{wizard_id}/{action}")
def wizard_action(
    wizard_id: str,
    action: str,
    payload: Optional[WizardAction] = None,
    ctx: AppContext = Depends(get_ctx),
    user: SessionUser = Depends(signed_in),
):
    wizard = _wizard(ctx, wizard_id, user)
    payload = payload or WizardAction()
    result = {}

    if action == "mode":
        wizard.choose_mode(payload.value or "")
    elif action == "answer":
        wizard.answer(payload.value)
    elif action == "back":
        wizard.back()
    elif action == "cancel":
        wizard.cancel()
        _drop_wizard(ctx, wizard_id)
    elif action == "regenerate":
        wizard.regenerate()
    elif action == "custom":
        wizard.use_custom(payload.title or "", payload.description or "")
    elif action == "series-info":
        wizard.set_series_info(payload.name or "", payload.description or "")
    elif action == "note":
        if payload.index is None:
            raise InvalidRequest("index is required")
        wizard.set_note(payload.index, payload.note or "")
    elif action == "review":
        result["drafts"] = [r.to_local() for r in wizard.review()]
    elif action == "approve":
        record = wizard.approve(ctx.gallery.existing_ids(), save=lambda r: ctx.gallery.create(r, user))
        _drop_wizard(ctx, wizard_id)
        result["artworks"] = [_artwork_json(record, user)]
    elif action == "publish":
        records = wizard.publish(ctx.gallery.existing_ids(), save=lambda rs: ctx.gallery.publish_series(rs, user))
        _drop_wizard(ctx, wizard_id)
        result["artworks"] = [_artwork_json(r, user) for r in records]
    else:
        raise NotFound(f"unknown wizard action {action!r}")

    return {"id": wizard_id, **wizard.snapshot(), **result}


# -----------------------------------------------------------------------------
# AI descriptions
# -----------------------------------------------------------------------------
@api.post("/describe")
def describe(payload: DescribeRequest, ctx: AppContext = Depends(get_ctx), user: SessionUser = Depends(signed_in)):
    require(user, "upload")
    text = ctx.vision.describe(payload.image_url, payload.title, payload.category, payload.artist)
    return {"description": text}


# -----------------------------------------------------------------------------
# Favorites & cart
# -----------------------------------------------------------------------------
@api.get("/favorites")
def list_favorites(ctx: AppContext = Depends(get_ctx), user: Optional[SessionUser] = Depends(current_user)):
    ids = ctx.favorites.ids()
    wanted = set(ids)
    items = [_artwork_json(r, user) for r in ctx.gallery.visible() if r.id in wanted]
    return {"ids": ids, "items": items}


@api.post("/favorites/{artwork_id}")
def toggle_favorite(
    artwork_id: str,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    record = ctx.gallery.get(artwork_id)
    added = ctx.favorites.toggle(record.id)
    analytics.track(ctx.remote, "favorite_add" if added else "favorite_remove",
                    artwork_id=record.id, artwork_title=record.title, user_id=user.id if user else None)
    return {"artwork_id": record.id, "favorite": added}


def _cart(request: Request, ctx: AppContext, user: Optional[SessionUser]) -> Cart:
    key = user.id if user else request.headers.get("X-Cart-Id", "").strip()
    if not key:
        raise InvalidRequest("sign in or send an X-Cart-Id header")
    # least recently used carts are dropped first
    cart = ctx.carts.pop(key, None)
    if cart is None:
        cart = Cart()
        while len(ctx.carts) >= MAX_CARTS:
            stale = next(iter(ctx.carts))
            ctx.carts.pop(stale)
            logger.info("Dropped idle cart %s", stale)
    ctx.carts[key] = cart
    return cart


@api.get("/cart/options")
def cart_options():
    return {
        "sizes": [asdict(s) for s in SIZES.values()],
        "frames": [asdict(f) for f in FRAMES.values()],
    }


@api.get("/cart")
def get_cart(request: Request, ctx: AppContext = Depends(get_ctx), user: Optional[SessionUser] = Depends(current_user)):
    return _cart(request, ctx, user).as_dict()


@api.post("/cart", status_code=201)
def add_to_cart(
    payload: CartAdd,
    request: Request,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    cart = _cart(request, ctx, user)
    record = ctx.gallery.get(payload.artwork_id)
    item = cart.add(record.id, record.title, record.image_url, payload.size, payload.frame)
    analytics.track(ctx.remote, "cart_add", artwork_id=record.id, artwork_title=record.title,
                    size_name=item.size, frame_name=item.frame, price=item.total,
                    user_id=user.id if user else None)
    return cart.as_dict()


@api.delete("/cart/{index}")
def remove_from_cart(
    index: int,
    request: Request,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    cart = _cart(request, ctx, user)
    cart.remove(index)
    return cart.as_dict()


@api.post("/cart/checkout")
def checkout(
    request: Request,
    payload: Optional[Checkout] = None,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    payload = payload or Checkout()
    cart = _cart(request, ctx, user)
    if not cart.items:
        raise InvalidRequest("cart is empty")
    user_id = user.id if user else None
    total = cart.total
    analytics.track(ctx.remote, "checkout_start", price=total, item_count=len(cart.items), user_id=user_id)

    reference = f"HIPER-{new_artwork_id()}"
    provider_order_id = status = None
    if payload.shipping is not None:
        if not ctx.prints.configured:
            raise ConfigurationError("print fulfillment is not configured")
        address = ShippingAddress(**payload.shipping.model_dump())
        email = payload.email or (user.email if user else None)
        result = ctx.prints.create_order(build_order(cart.items, address, email, reference))
        if not result.success:
            raise RemoteError(result.error or "print order failed")
        provider_order_id, status = result.order_id, result.status

    items = cart.checkout()
    if ctx.remote is not None:
        try:
            with ctx.remote.session() as s:
                s.add(PrintOrder(merchant_reference=reference, provider_order_id=provider_order_id,
                                 status=status or "Received", total=total, user_id=user_id))
                s.commit()
        except SQLAlchemyError as exc:
            logger.error("Could not record order %s: %s", reference, exc)
    analytics.track_order(ctx.remote, provider_order_id or reference, total, items, user_id)
    logger.info("Checkout %s: %d item(s), total %.2f", reference, len(items), total)
    return {
        "reference": reference,
        "order_id": provider_order_id,
        "status": status,
        "total": total,
        "items": [asdict(i) for i in items],
    }


@api.get("/prints/{order_id}")
def print_status(order_id: str, ctx: AppContext = Depends(get_ctx), user: SessionUser = Depends(signed_in)):
    if not ctx.prints.configured:
        raise ConfigurationError("print fulfillment is not configured")
    result = ctx.prints.get_order_status(order_id)
    if not result.success:
        raise RemoteError(result.error or "status check failed")
    return {"order_id": result.order_id, "status": result.status, **result.data}


# -----------------------------------------------------------------------------
# Analytics
# -----------------------------------------------------------------------------
@api.post("/analytics/events", status_code=202)
def track_event(
    payload: TrackEvent,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[SessionUser] = Depends(current_user),
):
    recorded = analytics.track(
        ctx.remote, payload.event_type, page=payload.page, artwork_id=payload.artwork_id,
        artwork_title=payload.artwork_title, user_id=user.id if user else None,
        device_type=analytics.device_type(payload.width),
    )
    return {"recorded": recorded}


@api.get("/analytics/summary")
def analytics_summary(days: int = 30, ctx: AppContext = Depends(get_ctx), user: SessionUser = Depends(signed_in)):
    if user.role is not Role.ADMIN:
        raise PermissionDenied("analytics are for admins only")
    if ctx.remote is None:
        raise ConfigurationError("analytics need a database")
    return analytics.summarize(ctx.remote, max(1, days))


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    settings.report()
    ctx = build_context(settings)
    settings.media_root.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="HiPer Gallery")
    app.state.ctx = ctx
    app.add_middleware(CachePolicyMiddleware)
    app.mount("/media", StaticFiles(directory=settings.media_root), name="media")
    app.include_router(api)

    @app.exception_handler(GalleryError)
    async def gallery_error(request: Request, exc: GalleryError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "mode": "demo" if ctx.remote is None else "database",
            "vision": ctx.vision.configured,
            "prints": ctx.prints.configured,
        }

    return app


def run() -> None:
    import uvicorn

    settings = load_settings()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
