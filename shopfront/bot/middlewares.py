from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from shopfront.context import ContextRegistry


class ShopContextMiddleware(BaseMiddleware):
    """Puts the sender's ShopContext into handler data as ``shop``."""

    def __init__(self, registry: ContextRegistry):
        self.registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user")
        if user is not None:
            data["shop"] = await self.registry.get(str(user.id))
        return await handler(event, data)
