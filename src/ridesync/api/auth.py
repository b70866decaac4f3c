import logging

from ..core.exceptions import StorageError
from ..storage import KeyValueStore, keys
from ..storage.blob import decode

logger = logging.getLogger(__name__)

TOKEN_LOG_PREFIX = 15


def token_preview(token: str) -> str:
    return f"{token[:TOKEN_LOG_PREFIX]}..."


def is_driver_token(token: str) -> bool:
    """Demo driver tokens carry the role in clear text."""
    return "driver" in token or "DRIVER" in token


class TokenProvider:
    """Resolves the bearer token for trip API calls.

    The in-memory token wins; otherwise ``authToken``, ``userToken`` and
    ``token`` are tried in that order and the first hit is cached.
    """

    def __init__(self, store: KeyValueStore, token: str | None = None):
        self._store = store
        self._token = token

    def set_token(self, token: str | None) -> None:
        if token:
            logger.info(f"Setting auth token to: {token_preview(token)}")
        self._token = token

    def clear(self) -> None:
        self._token = None

    async def get_token(self) -> str | None:
        if self._token:
            return self._token

        try:
            for key in keys.TOKEN_KEYS:
                token = await self._store.get(key)
                if token:
                    logger.debug(f"Retrieved token from storage ({key}): {token_preview(token)}")
                    self._token = token
                    return token
        except StorageError as e:
            logger.error(f"Error getting auth token: {e}")
            return None

        logger.info("No auth token found in memory or storage")
        return None

    async def refresh_token(self) -> bool:
        """Re-read the token written by the login flow and mirror it into ``authToken``."""
        try:
            for key in (keys.USER_TOKEN, keys.TOKEN):
                token = await self._store.get(key)
                if token:
                    self.set_token(token)
                    await self._store.set(keys.AUTH_TOKEN, token)
                    return True

            token = await self._store.get(keys.AUTH_TOKEN)
            if token:
                self.set_token(token)
                return True
        except StorageError as e:
            logger.error(f"Error refreshing auth token: {e}")
            return False

        logger.info("No token found to refresh")
        return False

    async def get_user_id(self) -> str | None:
        """Id of the signed-in user as stored under ``user``."""
        try:
            user = decode(await self._store.get(keys.USER), dict)
        except StorageError as e:
            logger.error(f"Error reading stored user: {e}")
            return None
        if isinstance(user, dict) and user.get("id") is not None:
            return str(user["id"])
        return None

    async def get_driver_id(self, token: str) -> str:
        """Driver id from an ``<id>:<secret>`` token, else from the stored user."""
        if ":" in token:
            return token.split(":", 1)[0]
        return await self.get_user_id() or "unknown"
