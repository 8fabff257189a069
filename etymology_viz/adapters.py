"""
External Service Adapters

Deep modules that hide protocol complexity behind simple interfaces.
Each adapter handles one external concern (Wiktionary, Microsoft
Translator, transcript sources, the playback clock).
"""

import time
import uuid
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol

import requests

from .infra import Config, ServiceHealth

logger = logging.getLogger('etymology')


# =============================================================================
# WIKTIONARY - Dictionary prose lookup
# =============================================================================

class WiktionaryClient:
    """
    Fetches the plain-text intro extract of a Wiktionary entry.

    Simple interface:
        fetch_extract(word) -> Optional[str]   # None when absent or failing
    """

    def __init__(self, api_url: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None):
        self._api_url = api_url or Config.WIKTIONARY_API_URL
        self._timeout = timeout or Config.HTTP_TIMEOUT
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = Config.USER_AGENT
        self._health = ServiceHealth("Wiktionary")

    def fetch_extract(self, word: str) -> Optional[str]:
        params = {
            "action": "query",
            "titles": word,
            "prop": "extracts",
            "format": "json",
            "exintro": "true",
            "explaintext": "true",
        }
        try:
            resp = self._session.get(self._api_url, params=params, timeout=self._timeout)
            if resp.status_code != 200:
                logger.debug(f"Wiktionary error {resp.status_code} for {word!r}")
                return None
            pages = resp.json().get('query', {}).get('pages', {})
        except (requests.RequestException, ValueError) as e:
            self._health.mark_unavailable(str(e))
            logger.debug(f"Wiktionary fetch error for {word!r}: {e}")
            return None

        self._health.mark_available("reachable")
        for page in pages.values():
            extract = page.get('extract') if isinstance(page, dict) else None
            if extract:
                return extract
        return None

    def get_status(self) -> Dict[str, Any]:
        return self._health.get_status()


# =============================================================================
# MICROSOFT TRANSLATOR - Text translation v3
# =============================================================================

class TranslatorError(Exception):
    """Translator request failed (transport, status or body shape)."""


class TranslatorClient:
    """
    Microsoft Translator v3 client.

    Simple interface:
        translate(texts, to) -> List[str]   # one result per input, raises TranslatorError
        detect(text) -> Optional[str]       # language code
        is_configured -> bool

    Callers decide how to degrade; this adapter only reports failure.
    """

    API_VERSION = "3.0"

    def __init__(self, key: Optional[str] = None, endpoint: Optional[str] = None,
                 region: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None):
        creds = Config.get_translator_credentials()
        self._key = creds['key'] if key is None else key
        endpoint = endpoint or creds['endpoint']
        self._endpoint = endpoint if endpoint.endswith('/') else endpoint + '/'
        self._region = region or creds['region']
        self._timeout = timeout or Config.HTTP_TIMEOUT
        self._session = session or requests.Session()
        self._health = ServiceHealth("Translator")

    @property
    def is_configured(self) -> bool:
        return bool(self._key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Ocp-Apim-Subscription-Key": self._key,
            "Ocp-Apim-Subscription-Region": self._region,
            "Content-Type": "application/json",
            "X-ClientTraceId": str(uuid.uuid4()),
        }

    def _post(self, path: str, params: Dict[str, str], texts: List[str]) -> List[Dict[str, Any]]:
        url = f"{self._endpoint}{path}"
        body = [{"text": text} for text in texts]
        try:
            resp = self._session.post(url, params={"api-version": self.API_VERSION, **params},
                                      headers=self._headers(), json=body, timeout=self._timeout)
        except requests.RequestException as e:
            self._health.mark_unavailable(str(e))
            raise TranslatorError(f"Translator request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise TranslatorError(f"Translator returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise TranslatorError("Translator returned invalid JSON") from e
        if not isinstance(data, list) or len(data) != len(texts):
            raise TranslatorError("Translator response does not match request")

        self._health.mark_available("reachable")
        return data

    def translate(self, texts: List[str], to: str = "en") -> List[str]:
        if not self.is_configured:
            raise TranslatorError("Translator key not configured")
        results = []
        for item in self._post("translate", {"to": to}, texts):
            try:
                results.append(str(item['translations'][0]['text']))
            except (KeyError, IndexError, TypeError) as e:
                raise TranslatorError("Translator response missing translations") from e
        return results

    def detect(self, text: str) -> Optional[str]:
        if not self.is_configured:
            raise TranslatorError("Translator key not configured")
        item = self._post("detect", {}, [text])[0]
        language = item.get('language') if isinstance(item, dict) else None
        return language or None

    def get_status(self) -> Dict[str, Any]:
        status = self._health.get_status()
        status['configured'] = self.is_configured
        return status


# =============================================================================
# TRANSCRIPT SOURCES
# =============================================================================

def load_transcript(source: str, session: Optional[requests.Session] = None,
                    timeout: Optional[float] = None) -> str:
    """
    Read transcript text from an http(s) URL, a local path, or take it verbatim.

    Raises requests errors or FileNotFoundError when the source cannot be read;
    a transcript is caller input, not an enrichment service.
    """
    if source.startswith(('http://', 'https://')):
        http = session or requests
        resp = http.get(source, timeout=timeout or Config.HTTP_TIMEOUT)
        resp.raise_for_status()
        logger.info(f"Fetched transcript from {source}")
        return resp.text

    # Raw transcript text contains newlines; a path does not
    if '\n' in source:
        return source

    path = Path(source).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Transcript not found: {source}")
    return path.read_text(encoding='utf-8')


# =============================================================================
# PLAYBACK CLOCK - Position source for time sync
# =============================================================================

class PlaybackClock(Protocol):
    """Anything that reports a playback position in seconds."""

    def position(self) -> float:
        ...


class SimulatedClock:
    """
    Monotonic stand-in for an audio transport.

    Advances with wall time scaled by `rate`; supports pause, resume and seek.
    """

    def __init__(self, start: float = 0.0, rate: float = 1.0, autostart: bool = True):
        self._lock = Lock()
        self._rate = rate
        self._offset = start
        self._started_at: Optional[float] = time.monotonic() if autostart else None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._started_at is not None

    def position(self) -> float:
        with self._lock:
            if self._started_at is None:
                return self._offset
            return self._offset + (time.monotonic() - self._started_at) * self._rate

    def pause(self):
        with self._lock:
            if self._started_at is not None:
                self._offset += (time.monotonic() - self._started_at) * self._rate
                self._started_at = None

    def resume(self):
        with self._lock:
            if self._started_at is None:
                self._started_at = time.monotonic()

    def seek(self, position: float):
        with self._lock:
            self._offset = max(0.0, position)
            if self._started_at is not None:
                self._started_at = time.monotonic()
