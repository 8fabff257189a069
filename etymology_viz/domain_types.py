"""
Domain Models and Pure Functions

Pure calculations with no side effects - immutable data structures
and stateless functions. Nothing in here talks to the network.
"""

import math
import re
import logging
import unicodedata
from bisect import bisect_right
from dataclasses import dataclass, field, replace
from enum import Enum
from itertools import accumulate
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger('etymology')


# =============================================================================
# ENUMS - Closed vocabularies
# =============================================================================

class Emotion(str, Enum):
    JOY = "joy"
    MELANCHOLY = "melancholy"
    ENERGY = "energy"
    CALM = "calm"
    PASSIONATE = "passionate"
    REFLECTIVE = "reflective"


class ParticleEffect(str, Enum):
    BUBBLES = "bubbles"
    LEAVES = "leaves"
    STARS = "stars"
    WAVES = "waves"
    SPARKS = "sparks"


class Animation(str, Enum):
    FADE = "fade"
    SLIDE = "slide"
    GLOW = "glow"
    PULSE = "pulse"
    FLOAT = "float"


class OriginLanguage(str, Enum):
    SANSKRIT = "Sanskrit"
    PERSIAN = "Persian"
    ARABIC = "Arabic"
    HINDI = "Hindi"
    URDU = "Urdu"
    ENGLISH = "English"
    UNKNOWN = "Unknown"


# Order matters: first hit wins
ORIGIN_PRIORITY: Tuple[OriginLanguage, ...] = (
    OriginLanguage.SANSKRIT,
    OriginLanguage.PERSIAN,
    OriginLanguage.ARABIC,
    OriginLanguage.HINDI,
    OriginLanguage.URDU,
    OriginLanguage.ENGLISH,
)

# Languages looked for in dictionary etymology prose
DICTIONARY_ORIGINS: Tuple[OriginLanguage, ...] = ORIGIN_PRIORITY[:5]


# =============================================================================
# IMMUTABLE DATA STRUCTURES - Pure domain models
# =============================================================================

@dataclass(frozen=True)
class LyricLine:
    """A single timed lyric line. Immutable."""
    id: str
    start_time: float
    end_time: float
    text: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def contains(self, position: float) -> bool:
        """True when position falls in [start_time, end_time)."""
        return self.start_time <= position < self.end_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "text": self.text,
        }


@dataclass(frozen=True)
class Etymology:
    """Historical origin of a single word. Evolution is oldest first and never empty."""
    word: str
    origin: str
    evolution: Tuple[str, ...]
    meaning: str
    related_words: Tuple[str, ...] = ()

    def __post_init__(self):
        evolution = tuple(self.evolution or ())
        object.__setattr__(self, 'evolution', evolution or (self.word,))
        object.__setattr__(self, 'related_words', tuple(self.related_words or ()))

    @property
    def origin_language(self) -> OriginLanguage:
        return classify_origin(self.origin)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "origin": self.origin,
            "evolution": list(self.evolution),
            "meaning": self.meaning,
            "relatedWords": list(self.related_words),
        }


@dataclass(frozen=True)
class SentimentColors:
    primary: str
    secondary: str
    accent: str

    def to_dict(self) -> Dict[str, str]:
        return {"primary": self.primary, "secondary": self.secondary, "accent": self.accent}


@dataclass(frozen=True)
class SentimentAnalysis:
    """Discrete emotion of a line with intensity in [0.1, 1.0] and a palette."""
    emotion: Emotion
    intensity: float
    colors: SentimentColors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotion": self.emotion.value,
            "intensity": self.intensity,
            "colors": self.colors.to_dict(),
        }


@dataclass(frozen=True)
class VisualizationConfig:
    """Visual effect derived from a sentiment. Never stored on its own."""
    particle_effect: ParticleEffect
    animation: Animation
    background: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "particleEffect": self.particle_effect.value,
            "animation": self.animation.value,
            "background": self.background,
        }


@dataclass(frozen=True)
class EnrichedLyricLine:
    """
    A lyric line plus its enrichment. Immutable; re-analysis produces a new record.

    Usage:
        pending = EnrichedLyricLine.pending(line)   # valid interim value
        done = pending.with_enrichment(translation="...", sentiment=s, ...)
    """
    id: str
    start_time: float
    end_time: float
    text: str
    etymology: Dict[str, Etymology] = field(default_factory=dict)
    translation: Optional[str] = None
    sentiment: Optional[SentimentAnalysis] = None
    visualization: Optional[VisualizationConfig] = None

    @classmethod
    def pending(cls, line: LyricLine) -> 'EnrichedLyricLine':
        """Unenriched record used while analysis is in flight."""
        return cls(id=line.id, start_time=line.start_time, end_time=line.end_time, text=line.text)

    def with_enrichment(self, **kwargs) -> 'EnrichedLyricLine':
        """Create new instance with enrichment fields set."""
        if 'etymology' in kwargs:
            kwargs['etymology'] = dict(kwargs['etymology'] or {})
        return replace(self, **kwargs)

    @property
    def line(self) -> LyricLine:
        return LyricLine(id=self.id, start_time=self.start_time, end_time=self.end_time, text=self.text)

    @property
    def is_enriched(self) -> bool:
        return self.sentiment is not None

    def to_dict(self) -> Dict[str, Any]:
        data = self.line.to_dict()
        data["etymology"] = {word: ety.to_dict() for word, ety in self.etymology.items()}
        data["translation"] = self.translation
        data["sentiment"] = self.sentiment.to_dict() if self.sentiment else None
        data["visualization"] = self.visualization.to_dict() if self.visualization else None
        return data


# =============================================================================
# CONSTANT DATA
# =============================================================================

DEFAULT_COLORS = SentimentColors(primary="#6366f1", secondary="#8b5cf6", accent="#ec4899")

DEFAULT_SENTIMENT = SentimentAnalysis(emotion=Emotion.CALM, intensity=0.5, colors=DEFAULT_COLORS)

# emotion -> (particle effect, animation, background template)
VISUALIZATION_TABLE: Dict[Emotion, Tuple[ParticleEffect, Animation, str]] = {
    Emotion.JOY: (ParticleEffect.BUBBLES, Animation.FLOAT,
                  "linear-gradient(135deg, {primary}20, {secondary}10)"),
    Emotion.MELANCHOLY: (ParticleEffect.LEAVES, Animation.FADE,
                         "linear-gradient(180deg, {primary}15, transparent)"),
    Emotion.ENERGY: (ParticleEffect.SPARKS, Animation.PULSE,
                     "radial-gradient(circle at center, {accent}20, transparent)"),
    Emotion.CALM: (ParticleEffect.WAVES, Animation.SLIDE,
                   "linear-gradient(90deg, {primary}10, {secondary}10)"),
    Emotion.PASSIONATE: (ParticleEffect.STARS, Animation.GLOW,
                         "radial-gradient(ellipse at top, {primary}25, transparent)"),
    Emotion.REFLECTIVE: (ParticleEffect.WAVES, Animation.FADE,
                         "linear-gradient(135deg, {secondary}15, {primary}10)"),
}

STOP_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'been', 'be', 'have',
    'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should', 'may',
    'might', 'must', 'can', 'shall', 'yeah', 'ooh', 'hey', 'gonna', 'wanna',
})

_HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')

# Unicode blocks of the lyric scripts we care about
_DEVANAGARI = ((0x0900, 0x097F),)
_ARABIC = ((0x0600, 0x06FF), (0x0750, 0x077F), (0xFB50, 0xFDFF), (0xFE70, 0xFEFF))


# =============================================================================
# PURE FUNCTIONS - Words and scripts
# =============================================================================

def _in_ranges(ch: str, ranges: Sequence[Tuple[int, int]]) -> bool:
    code = ord(ch)
    return any(lo <= code <= hi for lo, hi in ranges)


def is_target_script_char(ch: str) -> bool:
    """Devanagari or Arabic-script character (any category)."""
    return _in_ranges(ch, _DEVANAGARI) or _in_ranges(ch, _ARABIC)


def has_target_script(text: str) -> bool:
    return any(is_target_script_char(ch) for ch in text)


def script_language(word: str) -> str:
    """Language hint from script: 'hi' Devanagari, 'ur' Arabic script, else 'en'."""
    for ch in word:
        if _in_ranges(ch, _DEVANAGARI):
            return 'hi'
        if _in_ranges(ch, _ARABIC):
            return 'ur'
    return 'en'


def _is_word_char(ch: str) -> bool:
    if is_target_script_char(ch):
        # Keep letters, vowel signs/viramas and digits; drop dandas and punctuation
        return unicodedata.category(ch)[0] in 'LMN'
    return ch.isalnum()


def normalize_word(token: str) -> str:
    """
    Normalize a token into a lookup key. Pure function.

    Strips non-word characters (script letters and marks survive) and
    lower-cases Latin script.
    """
    return ''.join(ch for ch in token if _is_word_char(ch)).lower()


def extract_candidate_words(
    text: str,
    max_candidates: Optional[int] = 5,
    stop_words: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Pick the words of a line worth an etymology lookup. Pure function.

    Latin tokens of length <= 2 are dropped, Devanagari/Arabic-script tokens
    are always kept. Deduplicated, in order of first appearance, capped.
    """
    skip = frozenset(stop_words or ())
    words: List[str] = []
    for raw in text.split():
        word = normalize_word(raw)
        if not word:
            continue
        if not has_target_script(word) and (len(word) <= 2 or word in skip):
            continue
        if word in words:
            continue
        words.append(word)
        if max_candidates is not None and len(words) >= max_candidates:
            break
    return words


def classify_origin(
    label: Optional[str],
    candidates: Sequence[OriginLanguage] = ORIGIN_PRIORITY,
) -> OriginLanguage:
    """Map a free-form origin label (or prose) onto the closed origin enum."""
    if not label:
        return OriginLanguage.UNKNOWN
    lowered = label.lower()
    for language in candidates:
        if language.value.lower() in lowered:
            return language
    return OriginLanguage.UNKNOWN


# =============================================================================
# PURE FUNCTIONS - Sentiment and visualization
# =============================================================================

def clamp_intensity(value: float) -> float:
    return min(1.0, max(0.1, float(value)))


def map_visualization(sentiment: Optional[SentimentAnalysis]) -> VisualizationConfig:
    """
    Deterministic emotion -> visual effect lookup. Pure function.
    Unknown or missing emotion falls back to the calm entry.
    """
    sentiment = sentiment or DEFAULT_SENTIMENT
    try:
        emotion = Emotion(sentiment.emotion)
    except ValueError:
        emotion = Emotion.CALM
    particle, animation, template = VISUALIZATION_TABLE[emotion]
    colors = sentiment.colors or DEFAULT_COLORS
    background = template.format(
        primary=colors.primary,
        secondary=colors.secondary,
        accent=colors.accent,
    )
    return VisualizationConfig(particle_effect=particle, animation=animation, background=background)


def parse_sentiment(data: Any) -> Optional[SentimentAnalysis]:
    """
    Validate an untrusted sentiment payload. Returns None if unusable.

    Intensity is clamped; an invalid single color is replaced by its default.
    """
    if not isinstance(data, Mapping):
        return None
    try:
        emotion = Emotion(str(data.get('emotion', '')).strip().lower())
        intensity = float(data['intensity'])
    except (KeyError, TypeError, ValueError):
        return None
    if not math.isfinite(intensity):
        return None

    raw_colors = data.get('colors')
    if not isinstance(raw_colors, Mapping):
        raw_colors = {}
    colors = {}
    for slot in ('primary', 'secondary', 'accent'):
        value = raw_colors.get(slot)
        if isinstance(value, str) and _HEX_COLOR.match(value.strip()):
            colors[slot] = value.strip()
        else:
            colors[slot] = getattr(DEFAULT_COLORS, slot)

    return SentimentAnalysis(
        emotion=emotion,
        intensity=clamp_intensity(intensity),
        colors=SentimentColors(**colors),
    )


def parse_visualization(data: Any) -> Optional[VisualizationConfig]:
    if not isinstance(data, Mapping):
        return None
    try:
        return VisualizationConfig(
            particle_effect=ParticleEffect(data['particleEffect']),
            animation=Animation(data['animation']),
            background=str(data.get('background', '')),
        )
    except (KeyError, ValueError):
        return None


def parse_etymology(data: Any, word: Optional[str] = None, max_related: int = 3) -> Optional[Etymology]:
    """
    Validate an untrusted etymology payload. Returns None if unusable.

    `word` (when given) overrides whatever word the payload claims.
    """
    if not isinstance(data, Mapping):
        return None
    origin = data.get('origin')
    meaning = data.get('meaning')
    if not isinstance(origin, str) or not origin.strip():
        return None
    if not isinstance(meaning, str):
        return None

    name = word or data.get('word')
    if not isinstance(name, str) or not name:
        return None

    evolution = data.get('evolution') or []
    if not isinstance(evolution, list):
        return None
    related = data.get('relatedWords') or []
    if not isinstance(related, list):
        related = []

    return Etymology(
        word=name,
        origin=origin.strip(),
        evolution=tuple(str(form) for form in evolution if str(form).strip()),
        meaning=meaning.strip(),
        related_words=tuple(str(w) for w in related if str(w).strip())[:max_related],
    )


# =============================================================================
# PURE FUNCTIONS - Transcript parsing
# =============================================================================

_SRT_TIMING = re.compile(
    r'(\d{2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2})[,.](\d{3})'
)
_LRC_LINE = re.compile(r'\[(\d{2}):(\d{2})\.(\d{2,3})\](.*)$')
_BLOCK_SEPARATOR = re.compile(r'\n[ \t]*\n')


def _parse_seconds(value: str) -> Optional[float]:
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if math.isfinite(seconds) else None


def parse_csv_lyrics(content: str) -> List[LyricLine]:
    """
    Parse delimited-timing rows `displayTime,startTime,duration,text...`. Pure function.

    Text may itself contain commas. Malformed rows are skipped; identity is
    the index among valid rows.
    """
    lines: List[LyricLine] = []
    for row in content.strip().splitlines():
        parts = row.split(',')
        if len(parts) < 4:
            if row.strip():
                logger.debug(f"Skipping short row: {row!r}")
            continue

        _display, start_str, duration_str, *text_parts = parts
        start_time = _parse_seconds(start_str)
        duration = _parse_seconds(duration_str)
        if start_time is None or duration is None or duration <= 0:
            logger.debug(f"Skipping row with bad timing: {row!r}")
            continue

        lines.append(LyricLine(
            id=f"line-{len(lines)}",
            start_time=start_time,
            end_time=start_time + duration,
            text=','.join(text_parts).strip(),
        ))
    return lines


def srt_timestamp_to_seconds(hours: str, minutes: str, seconds: str, millis: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def parse_srt_lyrics(content: str) -> List[LyricLine]:
    """
    Parse subtitle blocks (id line, `HH:MM:SS,mmm --> HH:MM:SS,mmm`, text lines). Pure function.
    """
    lines: List[LyricLine] = []
    normalized = content.replace('\r\n', '\n').replace('\r', '\n').strip()
    if not normalized:
        return lines

    for block in _BLOCK_SEPARATOR.split(normalized):
        rows = [row.strip() for row in block.strip().split('\n')]
        if len(rows) < 3:
            logger.debug(f"Skipping short subtitle block: {block!r}")
            continue

        match = _SRT_TIMING.search(rows[1])
        if not match:
            logger.debug(f"Skipping subtitle block without timing: {block!r}")
            continue

        groups = match.groups()
        start_time = srt_timestamp_to_seconds(*groups[:4])
        end_time = srt_timestamp_to_seconds(*groups[4:])
        if end_time <= start_time:
            logger.debug(f"Skipping subtitle block with empty range: {block!r}")
            continue

        lines.append(LyricLine(
            id=f"line-{rows[0]}",
            start_time=start_time,
            end_time=end_time,
            text=' '.join(rows[2:]),
        ))
    return lines


def parse_lrc_lyrics(content: str, default_duration: float = 5.0) -> List[LyricLine]:
    """
    Parse LRC lyrics `[mm:ss.xx]text`. Pure function.

    Each line lasts until the next one starts; the last lasts default_duration.
    """
    stamped: List[Tuple[float, str]] = []
    for row in content.splitlines():
        match = _LRC_LINE.search(row.strip())
        if not match:
            continue
        minutes, seconds, fraction_str, text = match.groups()
        # .xxx is milliseconds, .xx centiseconds
        fraction = int(fraction_str) / (1000.0 if len(fraction_str) == 3 else 100.0)
        text = text.strip()
        if text:
            stamped.append((int(minutes) * 60 + int(seconds) + fraction, text))

    lines: List[LyricLine] = []
    for i, (start_time, text) in enumerate(stamped):
        end_time = start_time + default_duration
        if i + 1 < len(stamped) and stamped[i + 1][0] > start_time:
            end_time = stamped[i + 1][0]
        lines.append(LyricLine(id=f"line-{i}", start_time=start_time, end_time=end_time, text=text))
    return lines


TRANSCRIPT_FORMATS = ('csv', 'srt', 'lrc')


def detect_transcript_format(content: str) -> str:
    if '-->' in content:
        return 'srt'
    if re.search(r'^\s*\[\d{2}:\d{2}\.\d{2,3}\]', content, re.MULTILINE):
        return 'lrc'
    return 'csv'


def parse_lyrics(content: str, fmt: Optional[str] = None) -> List[LyricLine]:
    """Parse a transcript in any supported format (auto-detected when fmt is None)."""
    fmt = (fmt or detect_transcript_format(content)).lower()
    if fmt == 'csv':
        return parse_csv_lyrics(content)
    if fmt == 'srt':
        return parse_srt_lyrics(content)
    if fmt == 'lrc':
        return parse_lrc_lyrics(content)
    raise ValueError(f"Unsupported transcript format: {fmt!r} (expected one of {TRANSCRIPT_FORMATS})")


# =============================================================================
# PURE FUNCTIONS - Time sync
# =============================================================================

def build_search_index(lines: Sequence[LyricLine]) -> Tuple[List[float], List[float]]:
    """Start times and running maximum of end times for lines sorted by start."""
    starts = [line.start_time for line in lines]
    max_ends = list(accumulate((line.end_time for line in lines), max))
    return starts, max_ends


def find_active_index(
    lines: Sequence[LyricLine],
    position: float,
    hint: int = -1,
    index: Optional[Tuple[List[float], List[float]]] = None,
) -> int:
    """
    Index of the first line (sequence order) active at position, or -1. Pure function.

    Lines must be sorted by start_time; overlaps are allowed. `hint` is the
    previously matched index and is accepted without searching when it is
    still the first match. `index` is a precomputed build_search_index().
    """
    if not lines:
        return -1
    starts, max_ends = index if index is not None else build_search_index(lines)

    if 0 <= hint < len(lines):
        line = lines[hint]
        if line.contains(position) and (hint == 0 or max_ends[hint - 1] <= position):
            return hint

    # First line whose end (running max) lies beyond position
    first = bisect_right(max_ends, position)
    if first < len(lines) and starts[first] <= position:
        return first
    return -1
