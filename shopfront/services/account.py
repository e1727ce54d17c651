from __future__ import annotations

import logging
from typing import List

from shopfront.api.client import ApiUnavailable, ShopApi
from shopfront.constants import MSG_LOGIN_REQUIRED, MSG_NETWORK_ERROR
from shopfront.models import Address, Envelope, Result
from shopfront.services.tokens import TokenManager

logger = logging.getLogger(__name__)


def _addresses_from(env: Envelope) -> List[Address]:
    data = env.data if isinstance(env.data, dict) else {}
    return [Address.from_api(d) for d in data.get("addresses") or [] if isinstance(d, dict)]


class AccountService:
    """Saved shipping addresses of the signed-in user."""

    def __init__(self, api: ShopApi, tokens: TokenManager):
        self.api = api
        self.tokens = tokens

    async def addresses(self) -> Result:
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        try:
            env = await self.api.get_addresses(token)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok:
            return Result.fail(env.message or "Failed to load addresses")
        # default address first
        return Result.ok(sorted(_addresses_from(env), key=lambda a: not a.is_default))

    async def add_address(self, address: Address) -> Result:
        """The backend marks the first address a user saves as default."""
        token = self.tokens.get_token()
        if not token:
            return Result.fail(MSG_LOGIN_REQUIRED)
        if not (address.street and address.city and address.state and address.zip_code):
            return Result.fail("Please fill in all required address fields")
        payload = address.to_dict()
        payload.pop("isDefault", None)
        try:
            env = await self.api.add_address(token, payload)
        except ApiUnavailable:
            return Result.fail(MSG_NETWORK_ERROR)
        if not env.ok:
            return Result.fail(env.message or "Failed to add address")
        logger.info("Address saved (%s)", address.city)
        return Result.ok(_addresses_from(env), message=env.message)
