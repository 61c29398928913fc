"""
Settings service.

Owns the process-wide oracle credential cache. Credentials are read from the
record store's settings table once and cached until invalidate() is called.
Every write through this service invalidates the cache before returning, so
no oracle call can run with stale credentials after a configuration change.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from .errors import CredentialMissing
from .logging_config import get_logger
from .store import RecordStore

logger = get_logger(__name__)

GEMINI_API_KEY = 'GEMINI_API_KEY'
FACEPP_API_KEY = 'FACEPP_API_KEY'
FACEPP_API_SECRET = 'FACEPP_API_SECRET'
FACEPP_FACESET_TOKEN = 'FACEPP_FACESET_TOKEN'

KNOWN_KEYS = (GEMINI_API_KEY, FACEPP_API_KEY, FACEPP_API_SECRET, FACEPP_FACESET_TOKEN)


@dataclass(frozen=True)
class GeminiCredentials:
    api_key: str


@dataclass(frozen=True)
class FacePPCredentials:
    api_key: str
    api_secret: str
    faceset_token: Optional[str] = None


class SettingsService:
    """
    Key/value settings with a cached credential layer.

    Args:
        store: Record store holding the settings table
        fallback_gemini_key: Used when the store has no GEMINI_API_KEY
    """

    def __init__(self, store: RecordStore, fallback_gemini_key: str = ''):
        self.store = store
        self.fallback_gemini_key = fallback_gemini_key
        self._lock = threading.Lock()
        self._gemini: Optional[GeminiCredentials] = None
        self._facepp: Optional[FacePPCredentials] = None

    def gemini_credentials(self) -> GeminiCredentials:
        """
        Get generative oracle credentials.

        Raises:
            CredentialMissing: If neither the store nor the environment has a key
            StoreError: If the settings table cannot be read
        """
        with self._lock:
            if self._gemini is not None:
                return self._gemini

            api_key = self.store.get_setting(GEMINI_API_KEY) or self.fallback_gemini_key
            if not api_key:
                raise CredentialMissing('Gemini', 'API key not found, configure it in Settings')

            self._gemini = GeminiCredentials(api_key=api_key)
            return self._gemini

    def facepp_credentials(self) -> FacePPCredentials:
        """
        Get indexed-search oracle credentials.

        Raises:
            CredentialMissing: If key or secret is not configured
            StoreError: If the settings table cannot be read
        """
        with self._lock:
            if self._facepp is not None:
                return self._facepp

            api_key = self.store.get_setting(FACEPP_API_KEY)
            api_secret = self.store.get_setting(FACEPP_API_SECRET)
            if not (api_key and api_secret):
                raise CredentialMissing('Face++')

            self._facepp = FacePPCredentials(
                api_key=api_key,
                api_secret=api_secret,
                faceset_token=self.store.get_setting(FACEPP_FACESET_TOKEN),
            )
            return self._facepp

    def faceset_token(self) -> Optional[str]:
        """
        Collection handle for indexed search, or None when not configured.

        Raises:
            StoreError: If the settings table cannot be read
        """
        try:
            return self.facepp_credentials().faceset_token
        except CredentialMissing:
            return None

    def has_faceset(self) -> bool:
        return bool(self.faceset_token())

    def get(self, key: str) -> Optional[str]:
        return self.store.get_setting(key)

    def set(self, key: str, value: str) -> None:
        """Persist a setting and drop cached credentials."""
        try:
            self.store.set_setting(key, value)
        finally:
            self.invalidate()
        logger.info(f'Setting {key} updated')

    def delete(self, key: str) -> None:
        try:
            self.store.delete_setting(key)
        finally:
            self.invalidate()
        logger.info(f'Setting {key} deleted')

    def invalidate(self) -> None:
        """Drop all cached credentials. Next access re-reads the store."""
        with self._lock:
            self._gemini = None
            self._facepp = None
        logger.debug('Credential cache invalidated')
