from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def get_token_payload(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the JWT payload without verifying the signature. Display only."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeError) as e:
        logger.debug("Token decode error: %s", e)
        return None
    return payload if isinstance(payload, dict) else None


def token_expires_at(token: Optional[str]) -> Optional[int]:
    payload = get_token_payload(token)
    if not payload or not payload.get("exp"):
        return None
    return int(payload["exp"])
