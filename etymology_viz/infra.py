"""
Infrastructure and Cross-Cutting Concerns

Configuration, logging setup, service health monitoring and the
process-lifetime resolution caches shared by the enrichment services.
"""

import os
import time
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Hashable, MutableMapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger('etymology')

# Load the first .env file found
for _env_path in (Path.cwd() / '.env', Path(__file__).parent / '.env', Path.home() / '.env'):
    if _env_path.exists():
        load_dotenv(_env_path)
        break


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, '').strip()
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, '').strip()
    try:
        return float(value) if value else default
    except ValueError:
        return default


# =============================================================================
# CONFIGURATION - Environment-driven defaults
# =============================================================================

class Config:
    """Configuration with defaults, overridable via environment (or .env)."""

    # AI completion
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    LLM_MODEL = os.environ.get('ETYMOLOGY_LLM_MODEL', 'gpt-4o-mini')
    LM_STUDIO_URL = os.environ.get('LM_STUDIO_URL', 'http://localhost:1234')
    LLM_TIMEOUT = _env_float('ETYMOLOGY_LLM_TIMEOUT', 60.0)

    # Dictionary lookup
    WIKTIONARY_API_URL = os.environ.get('WIKTIONARY_API_URL', 'https://en.wiktionary.org/w/api.php')

    # Translation
    TRANSLATOR_ENDPOINT = os.environ.get(
        'TRANSLATOR_TEXT_ENDPOINT', 'https://api.cognitive.microsofttranslator.com/')
    TRANSLATOR_REGION = os.environ.get('TRANSLATOR_TEXT_REGION', 'eastus')
    TRANSLATOR_KEY = os.environ.get('TRANSLATOR_KEY', '')

    # Pipeline limits (bound external call volume per line)
    MAX_CANDIDATES = _env_int('ETYMOLOGY_MAX_CANDIDATES', 5)
    MAX_RELATED = _env_int('ETYMOLOGY_MAX_RELATED', 3)
    MAX_WORKERS = _env_int('ETYMOLOGY_MAX_WORKERS', 8)
    HTTP_TIMEOUT = _env_float('ETYMOLOGY_HTTP_TIMEOUT', 10.0)

    # OSC output to the renderer
    DEFAULT_OSC_HOST = os.environ.get('ETYMOLOGY_OSC_HOST', '127.0.0.1')
    DEFAULT_OSC_PORT = _env_int('ETYMOLOGY_OSC_PORT', 10000)

    LOG_LEVEL = os.environ.get('ETYMOLOGY_LOG_LEVEL', 'INFO')

    USER_AGENT = "EtymologyVisualizer/1.0"

    @classmethod
    def get_translator_credentials(cls) -> Dict[str, str]:
        """Translator endpoint, region and key."""
        return {
            'endpoint': cls.TRANSLATOR_ENDPOINT,
            'region': cls.TRANSLATOR_REGION,
            'key': cls.TRANSLATOR_KEY,
        }


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging and quieten chatty HTTP libraries."""
    level_name = (level or Config.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    for noisy in ('urllib3', 'openai', 'httpx', 'werkzeug'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# =============================================================================
# SERVICE HEALTH - Tracks service availability with reconnection
# =============================================================================

class ServiceHealth:
    """
    Tracks service health and manages reconnection attempts.
    Services may come and go during a session; callers degrade meanwhile.
    """

    # How often to retry unavailable services (seconds)
    RECONNECT_INTERVAL = 30.0

    def __init__(self, name: str):
        self.name = name
        self._available = False
        self._last_check = 0.0
        self._last_error = ""
        self._error_count = 0
        self._lock = Lock()

    @property
    def available(self) -> bool:
        """Check if service is currently available."""
        with self._lock:
            return self._available

    @property
    def should_retry(self) -> bool:
        """Check if enough time has passed to retry connection."""
        with self._lock:
            return time.time() - self._last_check >= self.RECONNECT_INTERVAL

    def mark_available(self, message: str = ""):
        """Mark service as available after successful connection."""
        with self._lock:
            was_unavailable = not self._available
            self._available = True
            self._last_check = time.time()
            self._last_error = ""
            if was_unavailable and message:
                logger.info(f"{self.name}: {message}")

    def mark_unavailable(self, error: str = ""):
        """Mark service as unavailable after failure."""
        with self._lock:
            was_available = self._available
            self._available = False
            self._last_check = time.time()
            self._error_count += 1
            if error != self._last_error:
                self._last_error = error
                if was_available or self._error_count == 1:
                    logger.warning(f"{self.name}: {error}")

    def get_status(self) -> Dict[str, Any]:
        """Get status dict for health reporting."""
        with self._lock:
            return {
                'name': self.name,
                'available': self._available,
                'error': self._last_error,
                'error_count': self._error_count,
                'last_check': self._last_check,
            }


# =============================================================================
# RESOLUTION CACHE - Process-lifetime cache with injectable store
# =============================================================================

class MemoryStore(dict):
    """Default in-process backing store. Never evicts."""


class ResolutionCache:
    """
    Thread-safe key/value cache for resolved records.

    The backing store is any MutableMapping, so tests (or a persistent
    deployment) can swap it. Concurrent puts for the same key are
    last-writer-wins; no entry is ever lost or evicted.
    """

    def __init__(self, name: str, store: Optional[MutableMapping] = None):
        self.name = name
        self._store: MutableMapping = store if store is not None else MemoryStore()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            value = self._store.get(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> Any:
        with self._lock:
            self._store[key] = value
        return value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'name': self.name,
                'entries': len(self._store),
                'hits': self._hits,
                'misses': self._misses,
            }
