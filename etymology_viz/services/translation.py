"""
TranslationResolver - Deep module for line translation

Simple interface:
    resolver.translate(text, target_language) → str       # never raises
    resolver.translate_batch(texts, target_language) → List[str]
    resolver.get_poetic_translation(text, context, target_language) → str
    resolver.detect_language(text) → str

Without a translator key every call passes the text through unchanged and
no request is made (degraded mode, warned about once).
"""

import logging
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence

from ..ai_services import TextCompletion, clean_completion_text, poetic_translation_prompt
from ..infra import ResolutionCache

logger = logging.getLogger('etymology')


class TranslationResolver:
    """Cache → translator → original text."""

    def __init__(self, translator=None, completion: Optional[TextCompletion] = None,
                 cache: Optional[ResolutionCache] = None):
        self._translator = translator
        self._completion = completion
        self._cache = cache if cache is not None else ResolutionCache("translation")
        self._warned = False
        self._warn_lock = Lock()

    @property
    def is_configured(self) -> bool:
        return self._translator is not None and bool(getattr(self._translator, 'is_configured', True))

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def translate(self, text: str, target_language: str = "en") -> str:
        key = (text, target_language)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if not self._check_configured():
            return text

        try:
            translation = self._translator.translate([text], target_language)[0]
        except Exception as e:
            logger.debug(f"Translation failed: {e}")
            return text

        if not translation:
            return text
        return self._cache.put(key, translation)

    def translate_batch(self, texts: Sequence[str], target_language: str = "en") -> List[str]:
        """Translate many texts in one request; cached texts are not re-sent."""
        results: List[Optional[str]] = [self._cache.get((text, target_language)) for text in texts]
        pending = list(dict.fromkeys(text for text, hit in zip(texts, results) if hit is None))
        if not pending:
            return list(results)

        if not self._check_configured():
            return [hit if hit is not None else text for text, hit in zip(texts, results)]

        try:
            translated = dict(zip(pending, self._translator.translate(pending, target_language)))
        except Exception as e:
            logger.debug(f"Batch translation failed: {e}")
            translated = {}

        for text, translation in translated.items():
            if translation:
                self._cache.put((text, target_language), translation)

        return [
            hit if hit is not None else (translated.get(text) or text)
            for text, hit in zip(texts, results)
        ]

    def get_poetic_translation(self, text: str, context: Optional[str] = None,
                               target_language: str = "en") -> str:
        """
        Literal translation, rewritten poetically by the AI when a context is
        given and a backend is up. Falls back to the literal translation.
        """
        literal = self.translate(text, target_language)
        if not context or self._completion is None:
            return literal
        try:
            if not self._completion.is_available:
                return literal
            prompt = poetic_translation_prompt(text, literal, context, target_language)
            poetic = clean_completion_text(self._completion.complete(prompt))
        except Exception as e:
            logger.debug(f"Poetic translation failed: {e}")
            return literal
        return poetic or literal

    def detect_language(self, text: str) -> str:
        if not self.is_configured:
            return "unknown"
        try:
            return self._translator.detect(text) or "unknown"
        except Exception as e:
            logger.debug(f"Language detection failed: {e}")
            return "unknown"

    def clear_cache(self):
        self._cache.clear()

    def get_status(self) -> Dict[str, Any]:
        status = self._cache.get_status()
        status['configured'] = self.is_configured
        return status

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _check_configured(self) -> bool:
        if self.is_configured:
            return True
        with self._warn_lock:
            if not self._warned:
                self._warned = True
                logger.warning("Translator: no API key configured, returning original text")
        return False
