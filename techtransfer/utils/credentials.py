"""Credential providers for the AI capability."""

import os
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class CredentialProvider:
    """Caches an API key looked up from some backing store.

    The first lookup is cached, including a miss, so repeated AI calls do
    not hit the backing store again until the key is set or cleared.
    """

    def __init__(self):
        self._cached_key: Optional[str] = None
        self._has_cached = False

    def _load(self) -> Optional[str]:
        """Read the key from the backing store. Subclasses override this."""
        return None

    def _store(self, key: Optional[str]):
        """Write the key to the backing store. Subclasses override this."""

    def get_api_key(self) -> Optional[str]:
        """Return the API key, or None when none is configured."""
        if self._has_cached:
            return self._cached_key

        key = self._load()
        self._cached_key = key or None
        self._has_cached = True
        return self._cached_key

    def set_api_key(self, key: str):
        """Store a new API key and refresh the cache."""
        self._store(key)
        self._cached_key = key
        self._has_cached = True
        logger.info("API key updated")

    def clear(self):
        """Forget the API key."""
        self._store(None)
        self._cached_key = None
        self._has_cached = False
        logger.info("API key cleared")

    def has_api_key(self) -> bool:
        return bool(self.get_api_key())


class EnvCredentialProvider(CredentialProvider):
    """Reads the key from an environment variable."""

    def __init__(self, variable: str = "ANTHROPIC_API_KEY"):
        super().__init__()
        self.variable = variable

    def _load(self) -> Optional[str]:
        return os.getenv(self.variable)

    def _store(self, key: Optional[str]):
        if key:
            os.environ[self.variable] = key
        else:
            os.environ.pop(self.variable, None)


class StaticCredentialProvider(CredentialProvider):
    """Holds a key supplied in code."""

    def __init__(self, key: Optional[str] = None):
        super().__init__()
        self._key = key

    def _load(self) -> Optional[str]:
        return self._key

    def _store(self, key: Optional[str]):
        self._key = key
