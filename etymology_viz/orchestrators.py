"""
Orchestrators - Per-line analysis coordination with dependency injection

AnalysisOrchestrator ties the resolvers together:
- Candidate word selection
- Concurrent fan-out (translation, etymology per word, sentiment)
- Merge into one immutable EnrichedLyricLine
- Memoization by line id, shared in-flight work, origin distribution
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .domain_types import (
    DEFAULT_SENTIMENT, STOP_WORDS, EnrichedLyricLine, Etymology, LyricLine, OriginLanguage,
    SentimentAnalysis, VisualizationConfig, extract_candidate_words, map_visualization,
    parse_etymology, parse_sentiment, parse_visualization,
)
from .infra import Config, ResolutionCache
from .services.etymology import EtymologyResolver, origin_of
from .services.sentiment import SentimentMapper
from .services.translation import TranslationResolver

logger = logging.getLogger('etymology')


# =============================================================================
# LANGUAGE DISTRIBUTION - Session-scoped origin counts
# =============================================================================

class LanguageDistribution:
    """Thread-safe running count of etymology origins."""

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._lock = Lock()

    def add(self, origin: OriginLanguage, count: int = 1):
        with self._lock:
            self._counts[origin.value] = self._counts.get(origin.value, 0) + count

    def add_etymologies(self, etymologies: Mapping[str, Etymology]):
        for etymology in etymologies.values():
            self.add(origin_of(etymology))

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


# =============================================================================
# ANALYSIS ORCHESTRATOR
# =============================================================================

@dataclass
class OrchestratorConfig:
    max_candidates: int = field(default_factory=lambda: Config.MAX_CANDIDATES)
    max_workers: int = field(default_factory=lambda: Config.MAX_WORKERS)
    target_language: str = "en"
    poetic_translation: bool = False
    combine_ai: bool = False
    skip_stop_words: bool = False


@dataclass(frozen=True)
class TextAnalysis:
    """Enrichment of free text (no timing), as served by the HTTP endpoint."""
    translation: str
    etymologies: Dict[str, Etymology]
    sentiment: SentimentAnalysis
    visualization: VisualizationConfig

    def to_dict(self, timestamp: Optional[float] = None) -> Dict[str, Any]:
        return {
            "translation": self.translation,
            "etymologies": {word: ety.to_dict() for word, ety in self.etymologies.items()},
            "sentiment": self.sentiment.to_dict(),
            "visualization": self.visualization.to_dict(),
            "timestamp": timestamp,
        }


class AnalysisOrchestrator:
    """
    Enriches lyric lines, at most once per line id per session.

    Interface:
        analyze_line(line, context=None) -> EnrichedLyricLine   # blocking, never raises
        submit(line, context=None) -> Future[EnrichedLyricLine]
        analyze_text(text, previous_context=None) -> TextAnalysis
        get_enriched(line_id) -> Optional[EnrichedLyricLine]
        language_distribution -> Dict[str, int]

    Line analyses run on the dispatcher pool; their sub-calls run on a
    separate fan-out pool so dispatch can never starve its own work.
    Abandoned analyses still complete and populate the cache.
    """

    def __init__(self, etymology: EtymologyResolver, translation: TranslationResolver,
                 sentiment: SentimentMapper, config: Optional[OrchestratorConfig] = None,
                 cache: Optional[ResolutionCache] = None):
        self._etymology = etymology
        self._translation = translation
        self._sentiment = sentiment
        self._config = config or OrchestratorConfig()
        self._enriched = cache if cache is not None else ResolutionCache("enriched")
        self._texts = ResolutionCache("analysis")
        self._distribution = LanguageDistribution()
        self._inflight: Dict[str, Future] = {}
        self._lock = RLock()
        self._dispatcher = ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="analysis")
        # Room for every sub-call of every concurrent line: translation, sentiment
        # and one etymology per candidate word
        self._fanout = ThreadPoolExecutor(
            max_workers=self._config.max_workers * (self._config.max_candidates + 2),
            thread_name_prefix="enrich")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def analyze_line(self, line: LyricLine, context: Optional[str] = None) -> EnrichedLyricLine:
        cached = self._enriched.get(line.id)
        if cached is not None:
            return cached
        return self.submit(line, context).result()

    def submit(self, line: LyricLine, context: Optional[str] = None) -> 'Future[EnrichedLyricLine]':
        """Start (or join) the analysis of a line without blocking."""
        with self._lock:
            cached = self._enriched.get(line.id)
            if cached is not None:
                done: Future = Future()
                done.set_result(cached)
                return done
            future = self._inflight.get(line.id)
            if future is None:
                future = self._dispatcher.submit(self._run, line, context)
                self._inflight[line.id] = future
            return future

    def is_pending(self, line_id: str) -> bool:
        with self._lock:
            return line_id in self._inflight

    def get_enriched(self, line_id: str) -> Optional[EnrichedLyricLine]:
        return self._enriched.get(line_id)

    def analyze_text(self, text: str, previous_context: Optional[str] = None) -> TextAnalysis:
        """Enrich free text. Memoized by (text, previous_context)."""
        key = (text, previous_context or "")
        cached = self._texts.get(key)
        if cached is not None:
            return cached

        if previous_context:
            translate = lambda: self._translation.get_poetic_translation(
                text, previous_context, self._config.target_language)
        else:
            translate = lambda: self._translation.translate(text, self._config.target_language)
        translation, etymologies, sentiment = self._fan_out(text, translate)
        self._distribution.add_etymologies(etymologies)

        return self._texts.put(key, TextAnalysis(
            translation=translation,
            etymologies=etymologies,
            sentiment=sentiment,
            visualization=map_visualization(sentiment),
        ))

    def seed(self, lines: Sequence[LyricLine], entries: Sequence[Mapping[str, Any]]) -> int:
        """
        Merge pre-generated enrichment records into the cache by line index.
        Lines already enriched are left alone. Returns the number seeded.
        """
        seeded = 0
        for line, entry in zip(lines, entries):
            if not isinstance(entry, Mapping) or self._enriched.get(line.id) is not None:
                continue
            enriched = enriched_from_dict(line, entry)
            with self._lock:
                if line.id in self._inflight:
                    continue
                self._enriched.put(line.id, enriched)
            self._distribution.add_etymologies(enriched.etymology)
            seeded += 1
        logger.info(f"Seeded {seeded} pre-generated lines")
        return seeded

    @property
    def language_distribution(self) -> Dict[str, int]:
        return self._distribution.snapshot()

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            inflight = len(self._inflight)
        return {
            'enriched': self._enriched.get_status(),
            'etymology': self._etymology.get_status(),
            'translation': self._translation.get_status(),
            'in_flight': inflight,
        }

    def close(self, wait: bool = True):
        self._dispatcher.shutdown(wait=wait)
        self._fanout.shutdown(wait=wait)

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _run(self, line: LyricLine, context: Optional[str]) -> EnrichedLyricLine:
        try:
            enriched = self._enrich(line, context)
        except Exception as e:
            logger.error(f"Analysis of {line.id} failed: {e}")
            enriched = EnrichedLyricLine.pending(line).with_enrichment(
                translation=line.text,
                sentiment=DEFAULT_SENTIMENT,
                visualization=map_visualization(DEFAULT_SENTIMENT),
            )
        with self._lock:
            self._enriched.put(line.id, enriched)
            self._inflight.pop(line.id, None)
        return enriched

    def _enrich(self, line: LyricLine, context: Optional[str]) -> EnrichedLyricLine:
        if self._config.poetic_translation and context:
            translate = lambda: self._translation.get_poetic_translation(
                line.text, context, self._config.target_language)
        else:
            translate = lambda: self._translation.translate(line.text, self._config.target_language)

        translation, etymologies, sentiment = self._fan_out(line.text, translate)
        self._distribution.add_etymologies(etymologies)
        logger.debug(f"Enriched {line.id}: {len(etymologies)} etymologies, {sentiment.emotion.value}")

        return EnrichedLyricLine.pending(line).with_enrichment(
            etymology=etymologies,
            translation=translation,
            sentiment=sentiment,
            visualization=map_visualization(sentiment),
        )

    def _fan_out(self, text: str, translate: Callable[[], str]):
        """Translation, etymologies and sentiment of one text, concurrently."""
        stop_words = STOP_WORDS if self._config.skip_stop_words else None
        words = extract_candidate_words(text, self._config.max_candidates, stop_words)

        translation_future = self._fanout.submit(translate)
        sentiment_future = self._fanout.submit(self._sentiment.analyze_sentiment, text)
        if self._config.combine_ai:
            batch_future = self._fanout.submit(
                self._etymology.resolve_batch, words, None, text, True)
            resolved = _settle(batch_future, {}, "etymology batch") or {}
        else:
            futures = {self._fanout.submit(self._etymology.resolve, word, None, text): word
                       for word in words}
            resolved = {}
            for future in as_completed(futures):
                etymology = _settle(future, None, f"etymology of {futures[future]!r}")
                if etymology is not None:
                    resolved[futures[future]] = etymology

        # Keep candidate order regardless of completion order
        etymologies = {word.lower(): resolved[word] for word in words if word in resolved}
        translation = _settle(translation_future, text, "translation") or text
        sentiment = _settle(sentiment_future, DEFAULT_SENTIMENT, "sentiment") or DEFAULT_SENTIMENT
        return translation, etymologies, sentiment


def _settle(future: Future, default: Any, what: str) -> Any:
    """Result of a sub-call, or default when it raised."""
    try:
        return future.result()
    except Exception as e:
        logger.warning(f"{what} failed: {e}")
        return default


# =============================================================================
# PRE-GENERATED DATA
# =============================================================================

def enriched_from_dict(line: LyricLine, entry: Mapping[str, Any]) -> EnrichedLyricLine:
    """Build an enriched record for `line` from a pre-generated JSON entry."""
    raw = entry.get('etymology', entry.get('etymologies')) or {}
    if isinstance(raw, Mapping):
        items = list(raw.items())
    else:
        items = [(item.get('word'), item) for item in raw if isinstance(item, Mapping)]

    etymologies: Dict[str, Etymology] = {}
    for word, data in items:
        if not isinstance(word, str):
            continue
        etymology = parse_etymology(data, word=word)
        if etymology is not None:
            etymologies[word.lower()] = etymology

    sentiment = parse_sentiment(entry.get('sentiment'))
    visualization = parse_visualization(entry.get('visualization'))
    if visualization is None and sentiment is not None:
        visualization = map_visualization(sentiment)

    translation = entry.get('translation')
    return EnrichedLyricLine.pending(line).with_enrichment(
        etymology=etymologies,
        translation=translation if isinstance(translation, str) else None,
        sentiment=sentiment,
        visualization=visualization,
    )


def line_contexts(lines: Sequence[LyricLine]) -> List[Optional[str]]:
    """Previous line's text for each line (None for the first)."""
    return [None] + [line.text for line in lines[:-1]]


# =============================================================================
# COMPOSITION
# =============================================================================

def create_orchestrator(config: Optional[OrchestratorConfig] = None,
                        completion=None, dictionary=None, translator=None) -> AnalysisOrchestrator:
    """
    Wire the default resolvers: Wiktionary, Microsoft Translator and the
    LLM backend from Config. Any collaborator can be injected instead.
    """
    from .adapters import TranslatorClient, WiktionaryClient
    from .ai_services import LLMCompletion

    config = config or OrchestratorConfig()
    completion = completion if completion is not None else LLMCompletion()
    etymology = EtymologyResolver(
        dictionary=dictionary if dictionary is not None else WiktionaryClient(),
        completion=completion,
        max_workers=config.max_workers,
    )
    translation = TranslationResolver(
        translator=translator if translator is not None else TranslatorClient(),
        completion=completion,
    )
    return AnalysisOrchestrator(etymology, translation, SentimentMapper(completion), config)
