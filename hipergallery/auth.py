import logging
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select
from werkzeug.security import check_password_hash, generate_password_hash

from .config import Settings
from .db import RemoteStore, User
from .errors import AuthenticationFailed, ConfigurationError, InvalidRequest, RemoteError
from .local_store import DEMO_USER_KEY, LocalStore
from .permissions import SessionUser, resolve_role

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
MIN_PASSWORD_LENGTH = 6

DEMO_EMAILS = {"google": "user@gmail.com", "apple": "user@icloud.com"}

Listener = Callable[[str, Optional[SessionUser]], None]


class AuthService:
    """Accounts, sessions and demo login.

    Sessions are signed tokens. With a database configured users live in the
    `user` table; without one only `demo_login` works and the single demo
    user is kept in the local store.
    """

    def __init__(self, settings: Settings, local: LocalStore, remote: Optional[RemoteStore] = None):
        self.settings = settings
        self.local = local
        self.remote = remote
        self._serializer = URLSafeTimedSerializer(settings.secret_key, salt="hipergallery-session")
        self._listeners: List[Listener] = []
        self._revoked: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, user: Optional[SessionUser]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, user)
            except Exception:
                logger.exception("Auth listener failed on %s", event)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_remote(self) -> RemoteStore:
        if self.remote is None:
            raise ConfigurationError("accounts are not configured; use demo login")
        return self.remote

    def _session_user(self, row: User) -> SessionUser:
        role = resolve_role(row.email, row.role, self.settings.admin_email)
        return SessionUser(id=row.id, email=row.email, name=row.name, role=role)

    def _issue(self, user: SessionUser, demo: bool = False) -> str:
        return self._serializer.dumps({"uid": user.id, "demo": demo})

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def sign_up(self, email: str, password: str, name: str = "") -> Tuple[SessionUser, str]:
        remote = self._require_remote()
        email = (email or "").strip().lower()
        if "@" not in email:
            raise InvalidRequest("a valid email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise InvalidRequest(f"password must be at least {MIN_PASSWORD_LENGTH} characters")

        row = User(
            id=uuid.uuid4().hex,
            email=email,
            name=(name or "").strip() or email.split("@")[0],
            password_hash=generate_password_hash(password),
        )
        try:
            with remote.session() as s:
                s.add(row)
                s.commit()
                s.refresh(row)
        except IntegrityError:
            raise InvalidRequest("an account with this email already exists") from None
        except SQLAlchemyError as exc:
            logger.error("Sign-up for %s failed: %s", email, exc)
            raise RemoteError("could not create account") from exc

        user = self._session_user(row)
        logger.info("New account %s (%s)", user.id, user.role.value)
        self._emit(SIGNED_IN, user)
        return user, self._issue(user)

    def sign_in(self, email: str, password: str) -> Tuple[SessionUser, str]:
        remote = self._require_remote()
        email = (email or "").strip().lower()
        try:
            with remote.session() as s:
                row = s.exec(select(User).where(User.email == email)).first()
        except SQLAlchemyError as exc:
            logger.error("Sign-in lookup for %s failed: %s", email, exc)
            raise RemoteError("could not sign in") from exc
        if row is None or not check_password_hash(row.password_hash, password or ""):
            raise AuthenticationFailed("invalid email or password")
        user = self._session_user(row)
        self._emit(SIGNED_IN, user)
        return user, self._issue(user)

    def sign_out(self, token: Optional[str]) -> None:
        user = self.resolve(token)
        if user is None:
            return
        self._revoke(token)
        # without a database only demo tokens resolve
        if self.remote is None:
            self.local.remove(DEMO_USER_KEY)
        self._emit(SIGNED_OUT, user)

    def _revoke(self, token: str) -> None:
        now = time.time()
        self._revoked = {t: exp for t, exp in self._revoked.items() if exp > now}
        self._revoked[token] = now + self.settings.session_max_age

    # ------------------------------------------------------------------
    # Demo mode
    # ------------------------------------------------------------------
    def demo_login(self, provider: str = "google") -> Tuple[SessionUser, str]:
        if self.remote is not None:
            raise InvalidRequest("demo login is only available without a database")
        email = DEMO_EMAILS.get(provider, DEMO_EMAILS["google"])
        record = {
            "id": str(int(time.time() * 1000)),
            "email": email,
            "name": "Creative User",
            "provider": provider,
        }
        self.local.set(DEMO_USER_KEY, record)
        user = self._demo_user(record)
        self._emit(SIGNED_IN, user)
        return user, self._issue(user, demo=True)

    def _demo_user(self, record) -> Optional[SessionUser]:
        if not isinstance(record, dict) or not record.get("id") or not record.get("email"):
            return None
        role = resolve_role(record["email"], record.get("role"), self.settings.admin_email)
        return SessionUser(id=str(record["id"]), email=record["email"], name=record.get("name", ""), role=role)

    def current_demo_user(self) -> Optional[SessionUser]:
        return self._demo_user(self.local.get(DEMO_USER_KEY))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def resolve(self, token: Optional[str]) -> Optional[SessionUser]:
        if not token or token in self._revoked:
            return None
        try:
            data = self._serializer.loads(token, max_age=self.settings.session_max_age)
        except SignatureExpired:
            logger.info("Expired session token")
            return None
        except BadSignature:
            logger.warning("Rejected session token with bad signature")
            return None

        if data.get("demo"):
            user = self.current_demo_user()
            return user if user and user.id == data.get("uid") else None
        if self.remote is None:
            return None
        try:
            with self.remote.session() as s:
                row = s.get(User, data.get("uid"))
        except SQLAlchemyError as exc:
            logger.error("Session lookup failed: %s", exc)
            raise RemoteError("could not resolve session") from exc
        return self._session_user(row) if row else None
