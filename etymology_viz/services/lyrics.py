"""
LyricsService - Deep module for timed lyrics

Hides ALL complexity:
- Transcript loading (path, URL, raw text)
- Format detection and parsing (CSV timing rows, SRT, LRC)
- Timing offset
- O(log n) position → line lookup with a locality hint

Simple interface:
    service.load(source) → int (lines loaded)
    service.lines → List[LyricLine]
    service.get_active_line(position) → Optional[LyricLine]
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import List, Optional, Sequence

from ..adapters import load_transcript
from ..domain_types import LyricLine, build_search_index, find_active_index, parse_lyrics

logger = logging.getLogger('etymology')


# =============================================================================
# TIME SYNC
# =============================================================================

class TimeSyncResolver:
    """
    Maps a playback position to the active line.

    Lines are stable-sorted by start time once; the last match is kept as
    the hint for the next lookup since playback mostly moves forward.
    """

    def __init__(self, lines: Sequence[LyricLine]):
        self._lines: List[LyricLine] = sorted(lines, key=lambda line: line.start_time)
        self._index = build_search_index(self._lines)
        self._hint = -1
        self._lock = Lock()

    @property
    def lines(self) -> List[LyricLine]:
        return self._lines

    def resolve_index(self, position: float) -> int:
        with self._lock:
            index = find_active_index(self._lines, position, self._hint, self._index)
            if index >= 0:
                self._hint = index
            return index

    def resolve(self, position: float) -> Optional[LyricLine]:
        index = self.resolve_index(position)
        return self._lines[index] if index >= 0 else None


# =============================================================================
# LYRICS SERVICE (the deep module)
# =============================================================================

@dataclass
class LyricsConfig:
    timing_offset_ms: int = 0
    fmt: Optional[str] = None


class LyricsService:
    """
    Deep module for the loaded transcript.

    Hides: sources, parsing, offset, search structures.
    Exposes: lines, active line.
    """

    def __init__(self, config: Optional[LyricsConfig] = None):
        self._config = config or LyricsConfig()
        self._resolver = TimeSyncResolver([])

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def load(self, source: str, fmt: Optional[str] = None) -> int:
        """Load a transcript from a path, URL or raw text. Returns line count."""
        return self.load_text(load_transcript(source), fmt)

    def load_text(self, content: str, fmt: Optional[str] = None) -> int:
        lines = parse_lyrics(content, fmt or self._config.fmt)
        self.set_lines(lines)
        logger.info(f"Lyrics loaded: {len(lines)} lines")
        return len(lines)

    def set_lines(self, lines: Sequence[LyricLine]) -> None:
        self._resolver = TimeSyncResolver(lines)

    def clear(self) -> None:
        self._resolver = TimeSyncResolver([])

    @property
    def lines(self) -> List[LyricLine]:
        return self._resolver.lines

    @property
    def has_lyrics(self) -> bool:
        return bool(self._resolver.lines)

    @property
    def timing_offset_ms(self) -> int:
        return self._config.timing_offset_ms

    def adjust_timing(self, delta_ms: int) -> int:
        """Adjust timing offset and return new value."""
        self._config.timing_offset_ms += delta_ms
        logger.info(f"Timing offset: {self._config.timing_offset_ms}ms")
        return self._config.timing_offset_ms

    def get_active_index(self, position: float) -> int:
        return self._resolver.resolve_index(position + self._config.timing_offset_ms / 1000.0)

    def get_active_line(self, position: float) -> Optional[LyricLine]:
        index = self.get_active_index(position)
        return self.get_line(index)

    def get_line(self, index: int) -> Optional[LyricLine]:
        lines = self._resolver.lines
        if 0 <= index < len(lines):
            return lines[index]
        return None
