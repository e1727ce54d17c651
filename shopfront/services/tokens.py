from __future__ import annotations

import logging
from typing import Optional

from shopfront.constants import KEY_AUTH_TOKEN, KEY_AUTH_USER
from shopfront.db.sqlite import SqliteStorage
from shopfront.models import User

logger = logging.getLogger(__name__)


class TokenManager:
    """Persisted auth token + cached user for one storage scope."""

    def __init__(self, storage: SqliteStorage):
        self.storage = storage

    def get_token(self) -> Optional[str]:
        try:
            token = self.storage.get(KEY_AUTH_TOKEN)
        except ValueError:
            logger.exception("Stored token is unreadable, dropping it")
            self.remove_token()
            return None
        return str(token) if token else None

    def set_token(self, token: str) -> None:
        self.storage.set(KEY_AUTH_TOKEN, token)

    def remove_token(self) -> None:
        self.storage.remove(KEY_AUTH_TOKEN)

    def get_user(self) -> Optional[User]:
        try:
            raw = self.storage.get(KEY_AUTH_USER)
        except ValueError:
            logger.exception("Cached user is unreadable, dropping it")
            self.remove_user()
            return None
        return User.from_api(raw) if isinstance(raw, dict) else None

    def set_user(self, user: User) -> None:
        self.storage.set(KEY_AUTH_USER, user.to_dict())

    def remove_user(self) -> None:
        self.storage.remove(KEY_AUTH_USER)

    def clear(self) -> None:
        self.remove_token()
        self.remove_user()
