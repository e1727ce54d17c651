from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Optional

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import MSG_ADMIN_REQUIRED, MSG_NETWORK_ERROR
from shopfront.models import AuthSession, Envelope, Result, User
from shopfront.services.tokens import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class AuthState:
    user: Optional[User] = None
    is_loading: bool = True
    is_authenticated: bool = False


def _session_from(envelope: Envelope) -> Optional[AuthSession]:
    data = envelope.data if isinstance(envelope.data, dict) else {}
    if not envelope.ok or not isinstance(data.get("user"), dict) or not data.get("token"):
        return None
    return AuthSession(user=User.from_api(data["user"]), token=str(data["token"]))


class AuthStore:
    """
    Session state derived from the persisted token.
    required_role="admin" turns away non-admin users (dashboard). That is a
    UX gate only; the backend enforces admin access on its own.
    """

    def __init__(self, api: ShopApi, tokens: TokenManager, required_role: Optional[str] = None):
        self.api = api
        self.tokens = tokens
        self.required_role = required_role
        self.state = AuthState()

    @property
    def user(self) -> Optional[User]:
        return self.state.user

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    def _role_allowed(self, user: User) -> bool:
        return self.required_role is None or user.role == self.required_role

    def _set_session(self, session: AuthSession) -> None:
        self.tokens.set_token(session.token)
        self.tokens.set_user(session.user)
        self.state = AuthState(user=session.user, is_loading=False, is_authenticated=True)

    def _set_anonymous(self) -> None:
        self.state = AuthState(user=None, is_loading=False, is_authenticated=False)

    async def initialize(self) -> None:
        token = self.tokens.get_token()
        saved_user = self.tokens.get_user()
        if not token or not saved_user:
            if token or saved_user:
                logger.info("Incomplete stored session, clearing it")
                self.tokens.clear()
            self._set_anonymous()
            return
        self.state = AuthState(user=saved_user, is_loading=True, is_authenticated=False)
        await self.refresh_user()

    async def refresh_user(self) -> Result:
        token = self.tokens.get_token()
        if not token:
            self._set_anonymous()
            return Result.fail("No session")

        try:
            envelope = await self.api.get_me(token)
        except ApiUnavailable:
            logger.warning("Session check failed: backend unreachable, clearing session")
            self.logout()
            return Result.fail(MSG_NETWORK_ERROR)

        data = envelope.data if isinstance(envelope.data, dict) else {}
        if not envelope.ok or not isinstance(data.get("user"), dict):
            logger.info("Stored session rejected: %s", envelope.message)
            self.logout()
            return Result.fail(envelope.message or "Session expired")

        user = User.from_api(data["user"])
        if not self._role_allowed(user):
            self.logout()
            return Result.fail(MSG_ADMIN_REQUIRED)

        self.tokens.set_user(user)
        self.state = AuthState(user=user, is_loading=False, is_authenticated=True)
        return Result.ok(user)

    def _restore(self, previous: AuthState) -> None:
        """A failed attempt leaves an existing session as it was."""
        if previous.is_authenticated and self.tokens.get_token():
            self.state = AuthState(user=previous.user, is_loading=False, is_authenticated=True)
        else:
            self._set_anonymous()

    async def _authenticate(self, call: Awaitable[Envelope], default_error: str) -> Result:
        previous = self.state
        self.state = AuthState(user=previous.user, is_loading=True, is_authenticated=previous.is_authenticated)
        try:
            envelope = await call
        except ApiUnavailable:
            self._restore(previous)
            return Result.fail(MSG_NETWORK_ERROR)

        session = _session_from(envelope)
        if session is None:
            self._restore(previous)
            return Result.fail(envelope.message or default_error)

        if not self._role_allowed(session.user):
            self._restore(previous)
            return Result.fail(MSG_ADMIN_REQUIRED)

        self._set_session(session)
        logger.info("Signed in as %s (%s)", session.user.email, session.user.role)
        return Result.ok(session.user)

    async def login(self, email: str, password: str) -> Result:
        return await self._authenticate(self.api.login(email, password), "Login failed")

    async def register(self, name: str, email: str, password: str) -> Result:
        return await self._authenticate(self.api.register(name, email, password), "Registration failed")

    async def login_with_google(self, firebase_token: str, name: str, email: str, picture: str = "") -> Result:
        return await self._authenticate(
            self.api.login_with_google(firebase_token, name, email, picture), "Google login failed"
        )

    async def login_with_facebook(self, firebase_token: str, name: str, email: str, picture: str = "") -> Result:
        return await self._authenticate(
            self.api.login_with_facebook(firebase_token, name, email, picture), "Facebook login failed"
        )

    def logout(self) -> None:
        self.tokens.clear()
        self._set_anonymous()

    async def logout_remote(self) -> None:
        """Tell the backend, then drop the local session whatever it answers."""
        token = self.tokens.get_token()
        if token:
            try:
                await self.api.logout(token)
            except ApiUnavailable:
                logger.warning("Logout call failed, clearing local session anyway")
        self.logout()
