from __future__ import annotations

import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[Optional[str]], None]

_security = HTTPBasic(auto_error=False)


# PUBLIC_INTERFACE
class IdentityProvider(ABC):
    """
    Supplies the per-session user id every board operation is scoped to.

    Listeners registered with on_identity_change() are called with the new
    user id (or None after sign-out) whenever it changes.
    """

    def __init__(self) -> None:
        self._listeners: List[IdentityCallback] = []

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Return the resolved user id, or None before sign-in."""

    @abstractmethod
    async def sign_in(self) -> str:
        """Resolve an identity (reusing the current one if present) and return it."""

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the current identity."""

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self, user_id: Optional[str]) -> None:
        for callback in list(self._listeners):
            try:
                callback(user_id)
            except Exception:
                logger.exception("Identity listener failed")


class LocalIdentityProvider(IdentityProvider):
    """
    Identity provider that needs no backend: uses a configured user id when
    given, otherwise signs in anonymously with a locally generated id.
    """

    def __init__(self, user_id: Optional[str] = None) -> None:
        super().__init__()
        self._configured_user_id = user_id
        self._user_id: Optional[str] = None

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    async def sign_in(self) -> str:
        if self._user_id is not None:
            return self._user_id
        if self._configured_user_id:
            self._user_id = self._configured_user_id
            logger.info("Authenticated with user id %s", self._user_id)
        else:
            self._user_id = uuid.uuid4().hex
            logger.info("Signed in anonymously as %s", self._user_id)
        self._emit(self._user_id)
        return self._user_id

    async def sign_in_as(self, user_id: str) -> str:
        """Switch to another user, as a custom-token sign-in would."""
        if user_id == self._user_id:
            return user_id
        self._user_id = user_id
        logger.info("Authenticated with user id %s", user_id)
        self._emit(user_id)
        return user_id

    async def sign_out(self) -> None:
        if self._user_id is None:
            return
        self._user_id = None
        self._emit(None)


# PUBLIC_INTERFACE
def get_identity_provider(settings: Optional[Settings] = None) -> IdentityProvider:
    """Return the identity provider for the configured BOARD_USER_ID (anonymous when unset)."""
    settings = settings or get_settings()
    return LocalIdentityProvider(settings.board_user_id)


# PUBLIC_INTERFACE
def get_basic_auth_dependency(settings: Optional[Settings] = None):
    """
    Return a FastAPI dependency callable that enforces HTTP Basic Auth only when
    ENABLE_BASIC_AUTH is enabled in settings. When disabled, the dependency is a no-op.

    Behavior:
    - If settings.enable_basic_auth is False (default): returns a dependency that does nothing.
    - If True: validates provided credentials against BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD.
      If credentials are missing or invalid, raises 401 with WWW-Authenticate: Basic.
    """
    settings = settings or get_settings()

    if not settings.enable_basic_auth:
        async def _noop() -> None:  # noqa: D401 - trivial
            """No-op dependency (auth disabled)."""
            return None

        return _noop

    expected_user: Optional[str] = settings.basic_auth_username
    expected_pass: Optional[str] = settings.basic_auth_password

    async def _enforce(creds: Optional[HTTPBasicCredentials] = Depends(_security)) -> None:
        """
        Enforce HTTP Basic authentication when enabled.

        Raises:
            HTTPException(401) if credentials are missing or invalid.
        """
        if creds is None or creds.username is None or creds.password is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Basic"},
            )

        if expected_user is None or expected_pass is None:
            # Auth enabled but username/password not provided
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Server authentication not configured",
                headers={"WWW-Authenticate": "Basic"},
            )

        user_ok = secrets.compare_digest(creds.username, expected_user)
        pass_ok = secrets.compare_digest(creds.password, expected_pass)
        if not (user_ok and pass_ok):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Basic"},
            )

    return _enforce
