import logging
import os
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

IDENTITY_PROVIDER_URL = os.getenv("IDENTITY_PROVIDER_URL")
IDENTITY_PROVIDER_TOKEN = os.getenv("IDENTITY_PROVIDER_TOKEN")
IDENTITY_PROVIDER_TIMEOUT = float(os.getenv("IDENTITY_PROVIDER_TIMEOUT", "10"))


class IdentityProviderError(Exception):
    pass


class IdentityProvider:
    """Client for the external user directory that admins sign in with."""

    def __init__(self, base_url: Optional[str], token: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def delete_user(self, uid: str):
        if not self.base_url:
            raise IdentityProviderError("Identity provider not configured")

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.delete(f"{self.base_url}/users/{quote(uid, safe='')}", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider request failed: {e}")
            raise IdentityProviderError(f"Identity provider unreachable: {e}") from e

        if response.status_code not in (200, 204):
            logger.error(f"Identity provider refused to delete {uid}: {response.status_code}")
            raise IdentityProviderError(f"Identity provider returned {response.status_code}")
        logger.info(f"Deleted identity {uid}")


def get_identity_provider() -> IdentityProvider:
    return IdentityProvider(IDENTITY_PROVIDER_URL, IDENTITY_PROVIDER_TOKEN, IDENTITY_PROVIDER_TIMEOUT)
