"""
EtymologyResolver - Deep module for word origins

Hides ALL complexity:
- Cache lookup keyed by (normalized word, language)
- Wiktionary extract fetch and heuristic prose parsing
- AI completion fallback (single word or one combined request)
- Deterministic fallback record

Simple interface:
    resolver.resolve(word, language, context) → Optional[Etymology]
    resolver.resolve_batch(words, language, context) → Dict[str, Etymology]
"""

import re
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence

from ..ai_services import TextCompletion, batch_etymology_prompt, etymology_prompt, extract_json
from ..domain_types import (
    DICTIONARY_ORIGINS, Etymology, OriginLanguage, classify_origin, normalize_word,
    parse_etymology, script_language,
)
from ..infra import Config, ResolutionCache

logger = logging.getLogger('etymology')


# =============================================================================
# PURE FUNCTIONS - Dictionary prose parsing
# =============================================================================

_ETYMOLOGY_SECTION = re.compile(r'Etymology[^\n]*\n([^=]+)', re.IGNORECASE)
_FROM_TOKEN = re.compile(r'from\s+([^\s,]+)', re.IGNORECASE)
_RELATED_SECTION = re.compile(r'(?:Derived|Related) terms[^\n]*\n([^=]+)', re.IGNORECASE)
_RELATED_TOKEN = re.compile(r'[^\s,;]+')
_FIRST_DEFINITION = re.compile(r'\n1\.\s+([^\n]+)')


def _first_definition(extract: str) -> str:
    match = _FIRST_DEFINITION.search(extract)
    return match.group(1).strip() if match else "Traditional meaning"


def _evolution(section: str) -> List[str]:
    forms: List[str] = []
    for token in _FROM_TOKEN.findall(section):
        form = token.strip('.,;')
        if form and form not in forms:
            forms.append(form)
    return forms or ["Original form"]


def _related_words(extract: str, limit: int) -> List[str]:
    match = _RELATED_SECTION.search(extract)
    if not match:
        return []
    return _RELATED_TOKEN.findall(match.group(1))[:limit]


def parse_wiktionary_extract(word: str, extract: str, max_related: int = 3) -> Etymology:
    """
    Heuristic etymology from plain-text dictionary prose. Pure function.

    Without an etymology section the record is a basic one: origin
    "Traditional", evolution (word,), meaning from the first definition.
    """
    meaning = _first_definition(extract)
    section = _ETYMOLOGY_SECTION.search(extract)
    if not section:
        return Etymology(word=word, origin="Traditional", evolution=(word,), meaning=meaning)

    text = section.group(1)
    origin = classify_origin(text, DICTIONARY_ORIGINS)
    return Etymology(
        word=word,
        origin=origin.value,
        evolution=tuple(_evolution(text)),
        meaning=meaning,
        related_words=tuple(_related_words(extract, max_related)),
    )


def fallback_etymology(word: str) -> Etymology:
    """Record used when the AI answered but nothing usable came back."""
    return Etymology(word=word, origin="Unknown origin", evolution=(word,), meaning="Contextual meaning")


def _pick_entry(data: Any, word: str) -> Any:
    """The entry of an AI reply that describes `word` (replies may be arrays)."""
    if not isinstance(data, list):
        return data
    target = normalize_word(word)
    for entry in data:
        if isinstance(entry, dict) and normalize_word(str(entry.get('word', ''))) == target:
            return entry
    return data[0] if len(data) == 1 else None


# =============================================================================
# ETYMOLOGY RESOLVER (the deep module)
# =============================================================================

class EtymologyResolver:
    """
    Cache → dictionary → AI → fallback resolution of word origins.

    Only dictionary and AI results are cached; the fallback record is
    recomputed so a later AI success can replace it.
    """

    def __init__(self, dictionary=None, completion: Optional[TextCompletion] = None,
                 cache: Optional[ResolutionCache] = None, max_related: Optional[int] = None,
                 max_workers: Optional[int] = None):
        self._dictionary = dictionary
        self._completion = completion
        self._cache = cache if cache is not None else ResolutionCache("etymology")
        self._max_related = max_related if max_related is not None else Config.MAX_RELATED
        self._max_workers = max_workers or Config.MAX_WORKERS

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve(self, word: str, language: Optional[str] = None,
                context: Optional[str] = None) -> Optional[Etymology]:
        """
        Resolve one word. None only when nothing resolved and no AI backend
        is available (or the word has no letters at all).
        """
        key = self._cache_key(word, language)
        if key is None:
            return None

        known = self._resolve_known(word, key)
        if known is not None:
            return known

        if not self._ai_available():
            logger.debug(f"No etymology for {word!r} (AI unavailable)")
            return None

        etymology = self._from_ai(word, context)
        if etymology is None:
            return fallback_etymology(word)
        return self._cache.put(key, etymology)

    def resolve_batch(self, words: Sequence[str], language: Optional[str] = None,
                      context: Optional[str] = None, combine_ai: bool = False) -> Dict[str, Etymology]:
        """
        Resolve several words concurrently. Words that do not resolve are absent.

        combine_ai sends every word the cache and dictionary miss to the AI in
        a single request instead of one request per word.
        """
        unique = list(dict.fromkeys(w for w in words if w))
        if not unique:
            return {}
        if combine_ai:
            return self._resolve_combined(unique, language, context)
        return self._fan_out(unique, lambda w: self.resolve(w, language, context))

    def clear_cache(self):
        self._cache.clear()

    def get_status(self) -> Dict[str, Any]:
        return self._cache.get_status()

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _cache_key(self, word: str, language: Optional[str]):
        normalized = normalize_word(word)
        if not normalized:
            return None
        return (normalized, language or script_language(normalized))

    def _resolve_known(self, word: str, key) -> Optional[Etymology]:
        """Cache, then dictionary. Dictionary hits are cached."""
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        etymology = self._from_dictionary(word)
        if etymology is not None:
            return self._cache.put(key, etymology)
        return None

    def _from_dictionary(self, word: str) -> Optional[Etymology]:
        if self._dictionary is None:
            return None
        try:
            extract = self._dictionary.fetch_extract(word)
            if not extract:
                return None
            return parse_wiktionary_extract(word, extract, self._max_related)
        except Exception as e:
            logger.debug(f"Dictionary lookup failed for {word!r}: {e}")
            return None

    def _ai_available(self) -> bool:
        if self._completion is None:
            return False
        try:
            return bool(self._completion.is_available)
        except Exception as e:
            logger.debug(f"AI availability check failed: {e}")
            return False

    def _complete(self, prompt: str) -> Any:
        try:
            return extract_json(self._completion.complete(prompt))
        except Exception as e:
            logger.debug(f"AI etymology request failed: {e}")
            return None

    def _from_ai(self, word: str, context: Optional[str]) -> Optional[Etymology]:
        data = self._complete(etymology_prompt(word, context))
        return parse_etymology(_pick_entry(data, word), word=word, max_related=self._max_related)

    def _fan_out(self, words: List[str], fn) -> Dict[str, Etymology]:
        results: Dict[str, Etymology] = {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(words))) as pool:
            futures = {pool.submit(fn, word): word for word in words}
            for future in as_completed(futures):
                word = futures[future]
                try:
                    etymology = future.result()
                except Exception as e:
                    logger.debug(f"Etymology for {word!r} failed: {e}")
                    continue
                if etymology is not None:
                    results[word] = etymology
        return results

    def _resolve_combined(self, words: List[str], language: Optional[str],
                          context: Optional[str]) -> Dict[str, Etymology]:
        keys = {word: self._cache_key(word, language) for word in words}
        words = [word for word in words if keys[word] is not None]
        results = self._fan_out(words, lambda w: self._resolve_known(w, keys[w]))

        missing = [word for word in words if word not in results]
        if not missing or not self._ai_available():
            return results

        data = self._complete(batch_etymology_prompt(missing, context))
        entries = data if isinstance(data, list) else [data]
        by_word = {}
        for entry in entries:
            if isinstance(entry, dict):
                by_word.setdefault(normalize_word(str(entry.get('word', ''))), entry)

        for word in missing:
            etymology = parse_etymology(by_word.get(keys[word][0]), word=word, max_related=self._max_related)
            if etymology is None:
                results[word] = fallback_etymology(word)
            else:
                results[word] = self._cache.put(keys[word], etymology)
        logger.debug(f"Combined AI etymology: {len(missing)} words")
        return results


def origin_of(etymology: Optional[Etymology]) -> OriginLanguage:
    """Closed origin class of a resolved record (Unknown when absent)."""
    return classify_origin(etymology.origin) if etymology else OriginLanguage.UNKNOWN
