"""
Signed request headers for the content-platform API.

Every request carries a timestamp-bound token derived from the library's
key/secret pair. Tokens are computed per request and never cached.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from polyglot_engine.errors import AuthRetrievalError

if TYPE_CHECKING:
    from polyglot_engine.services.base import SecretStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LibraryCredentials:
    """Server key/secret pair for one library."""

    lib: str
    key: str
    secret: str

    def __repr__(self) -> str:
        return f"LibraryCredentials(lib={self.lib!r}, key={self.key!r}, secret='***')"


def generate_request_headers(
    credentials: LibraryCredentials,
    bot_user: str = "LibreBot",
    now: float | None = None,
) -> dict[str, str]:
    """
    Generate authentication headers for one platform API request.

    Args:
        credentials: Key/secret pair of the library being called.
        bot_user: Platform user the token is issued for.
        now: Unix time to sign with. Defaults to the current time.

    Returns:
        Header dict with the CORS marker and the signed token.

    Raises:
        AuthRetrievalError: If the credentials are incomplete.
    """
    if not credentials.key or not credentials.secret:
        raise AuthRetrievalError(f"Incomplete credentials for library {credentials.lib!r}")

    epoch = int(now if now is not None else time.time())
    message = f"{credentials.key}{epoch}={bot_user}".encode()
    digest = hmac.new(credentials.secret.encode(), message, hashlib.sha256).hexdigest()
    return {
        "X-Requested-With": "XMLHttpRequest",
        "X-Deki-Token": f"{credentials.key}_{epoch}_={bot_user}_{digest}",
    }


class CredentialsProvider:
    """
    Resolves library credentials for the duration of one invocation.

    Each library is looked up once through the secret store; later calls reuse
    the value. Concurrent lookups for the same library share one request.
    """

    def __init__(self, secrets: SecretStore):
        self._secrets = secrets
        self._resolved: dict[str, asyncio.Task[LibraryCredentials]] = {}

    async def get(self, lib: str) -> LibraryCredentials:
        """
        Get credentials for a library.

        Raises:
            AuthRetrievalError: If the secret store cannot provide them.
        """
        task = self._resolved.get(lib)
        if task is None:
            logger.info("Retrieving library credentials for %s", lib)
            task = asyncio.ensure_future(self._secrets.get_library_credentials(lib))
            self._resolved[lib] = task
        try:
            return await task
        except AuthRetrievalError:
            self._resolved.pop(lib, None)
            raise
        except Exception as e:
            self._resolved.pop(lib, None)
            raise AuthRetrievalError(f"Could not retrieve credentials for {lib!r}: {e}") from e
