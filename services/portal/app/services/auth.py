"""Authentication gate.

Gating decisions read a local snapshot of the signed-in user (``user`` + ``isAuthenticated``
in durable storage) so they never wait on the network. The snapshot is refreshed from the
remote backend on login, signup and explicit ``get_current_user`` calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import quote

from pydantic import ValidationError
from services.portal.app.models.user import (
    ADMIN_ROLES,
    AuthResult,
    SignupRequest,
    User,
    UserRole,
)
from services.portal.app.services.events import EventBus
from services.portal.app.services.remote_base import (
    RemoteAuthError,
    RemoteBackend,
    RemoteBackendError,
    RemoteNotFoundError,
    Row,
)
from services.portal.app.services.storage import (
    AUTH_SESSION_KEY,
    CART_KEY,
    IS_AUTHENTICATED_KEY,
    PENDING_ACTION_KEY,
    RETURN_URL_KEY,
    SERVICE_CONTEXT_KEY,
    USER_KEY,
    Storage,
    StorageChange,
    read_json,
    write_json,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"

CONTEXT_HOME = {
    "repair": "/repair",
    "food": "/food",
    "lost-and-found": "/lost-and-found",
}


def login_url(return_url: str | None = None) -> str:
    if not return_url:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?returnUrl={quote(return_url, safe='')}"


def _user_from_row(row: Row) -> User:
    return User.model_validate(row)


class AuthGate:
    def __init__(
        self,
        local: Storage,
        session: Storage,
        backend: RemoteBackend,
        bus: EventBus | None = None,
        navigate: Callable[[str], None] | None = None,
    ) -> None:
        self._local = local
        self._session = session
        self._backend = backend
        self.bus = bus or EventBus()
        self._navigate = navigate
        self._unsubscribe = local.subscribe(self._on_storage_change)

    def close(self) -> None:
        self._unsubscribe()

    def _on_storage_change(self, change: StorageChange) -> None:
        if change.key not in (USER_KEY, None):
            return
        self.bus.auth_changed.publish(self.get_current_user_sync())

    # Snapshot

    def get_current_user_sync(self) -> User | None:
        """Cached user only. May be stale; never touches the network."""

        data = read_json(self._local, USER_KEY)
        if data is None:
            return None

        # Older snapshots wrapped the profile as {"user": {...}}.
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        try:
            return User.model_validate(data)
        except ValidationError:
            logger.warning("Discarding unreadable auth snapshot")
            self.clear_user()
            return None

    def is_authenticated(self) -> bool:
        if self._local.get(IS_AUTHENTICATED_KEY) != "true":
            return False
        return self.get_current_user_sync() is not None

    def save_user(self, user: User, access_token: str | None = None) -> None:
        if access_token is not None:
            self._local.set(AUTH_SESSION_KEY, access_token)
        self._local.set(IS_AUTHENTICATED_KEY, "true")
        write_json(self._local, USER_KEY, user.model_dump(mode="json"))

    def clear_user(self) -> None:
        self._local.remove(AUTH_SESSION_KEY)
        self._local.remove(IS_AUTHENTICATED_KEY)
        self._local.remove(USER_KEY)

    def get_current_user(self) -> User | None:
        """Refresh the snapshot from the remote session.

        Any backend failure is treated as "not signed in" for this call.
        """

        token = self._local.get(AUTH_SESSION_KEY)
        try:
            remote = self._backend.get_session(token) if token else None
            if remote is None:
                if self._local.get(USER_KEY) is not None:
                    logger.info("Remote session missing; clearing auth snapshot")
                    self.clear_user()
                return None

            cached = self.get_current_user_sync()
            if cached is not None and cached.id == remote.user_id:
                return cached

            user = _user_from_row(self._backend.select_one("users", {"id": remote.user_id}))
        except RemoteBackendError as e:
            logger.warning("Could not verify session: %s", e)
            return None
        except ValidationError:
            logger.warning("Remote profile is malformed")
            return None

        self.save_user(user, remote.access_token)
        return user

    # Roles

    def has_role(self, role: UserRole) -> bool:
        user = self.get_current_user_sync()
        return user is not None and user.role == role

    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    def is_vendor(self) -> bool:
        return self.has_role(UserRole.PHONE_VENDOR) or self.has_role(UserRole.LAPTOP_VENDOR)

    def has_admin_privileges(self) -> bool:
        user = self.get_current_user_sync()
        return user is not None and user.role in ADMIN_ROLES

    # Remote auth operations

    def login(self, email: str, password: str) -> AuthResult:
        try:
            remote = self._backend.sign_in(email, password)
        except RemoteAuthError as e:
            return AuthResult(success=False, error=str(e))
        except RemoteBackendError as e:
            logger.warning("Login failed for %s: %s", email, e)
            return AuthResult(success=False, error="An unexpected error occurred during login")

        try:
            user = _user_from_row(self._backend.select_one("users", {"id": remote.user_id}))
        except (RemoteBackendError, ValidationError) as e:
            logger.warning("Profile fetch failed for %s: %s", remote.user_id, e)
            return AuthResult(success=False, error="Failed to load user profile")

        self.save_user(user, remote.access_token)
        logger.info("User %s logged in", user.id)
        return AuthResult(success=True, user=user)

    def signup(self, request: SignupRequest) -> AuthResult:
        profile = {
            "first_name": request.first_name,
            "last_name": request.last_name,
            "phone": request.phone,
            "address": request.address,
        }
        try:
            remote = self._backend.sign_up(request.email, request.password, profile)
        except RemoteAuthError as e:
            return AuthResult(success=False, error=str(e))
        except RemoteBackendError as e:
            logger.warning("Signup failed for %s: %s", request.email, e)
            return AuthResult(success=False, error="An unexpected error occurred during signup")

        try:
            try:
                row = self._backend.select_one("users", {"id": remote.user_id})
            except RemoteNotFoundError:
                row = self._backend.insert(
                    "users",
                    {"id": remote.user_id, "email": request.email, "role": "customer", **profile},
                )
            else:
                # The backend may have created a bare profile; fill in the signup details.
                updated = self._backend.update("users", {"id": remote.user_id}, profile)
                row = updated[0] if updated else row
            user = _user_from_row(row)
        except (RemoteBackendError, ValidationError) as e:
            logger.warning("Profile setup failed for %s: %s", remote.user_id, e)
            return AuthResult(success=False, error="Failed to create user profile")

        self.save_user(user, remote.access_token)
        logger.info("User %s signed up", user.id)
        return AuthResult(success=True, user=user)

    def logout(self) -> None:
        token = self._local.get(AUTH_SESSION_KEY)
        if token:
            try:
                self._backend.sign_out(token)
            except RemoteBackendError as e:
                # Local state is cleared regardless.
                logger.warning("Remote sign-out failed: %s", e)

        self.clear_user()
        self._local.remove(CART_KEY)

    # Gating

    def require_auth(
        self,
        on_success: Callable[[], None],
        return_url: str | None = None,
        service_context: str | None = None,
    ) -> str | None:
        """Run ``on_success`` now, or record where to come back to and return the login URL.

        When a redirect is needed the callback is not invoked; the page that handles the
        post-login redirect resumes the flow instead.
        """

        if self.is_authenticated():
            on_success()
            return None

        if return_url:
            self._session.set(PENDING_ACTION_KEY, "true")
            self._session.set(RETURN_URL_KEY, return_url)
        if service_context:
            self._session.set(SERVICE_CONTEXT_KEY, service_context)

        url = login_url(return_url)
        if self._navigate is not None:
            self._navigate(url)
        return url

    def resolve_post_login_redirect(self) -> str | None:
        return_url = self._session.get(RETURN_URL_KEY)
        context = self._session.get(SERVICE_CONTEXT_KEY)

        self._session.remove(PENDING_ACTION_KEY)
        self._session.remove(RETURN_URL_KEY)
        self._session.remove(SERVICE_CONTEXT_KEY)

        if return_url:
            return return_url
        if context:
            return CONTEXT_HOME.get(context, "/")
        return None
