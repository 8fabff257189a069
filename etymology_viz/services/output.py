"""
OutputService - Deep module for OSC output

Hides ALL complexity:
- OSC message formatting
- UDP client lifecycle
- Protocol details

Simple interface:
    service.send_lyrics(lines)
    service.send_active_line(index, line)
    service.send_enriched(index, enriched)
    service.send_distribution(counts)
"""

import logging
from typing import Dict, List, Optional

from pythonosc import udp_client

from ..domain_types import DEFAULT_SENTIMENT, EnrichedLyricLine, LyricLine, map_visualization
from ..infra import Config

logger = logging.getLogger('etymology')


class OutputService:
    """
    Deep module for OSC output to the renderer.

    All messages are FLAT arrays (no nested structures). Send failures are
    logged and swallowed; rendering is never allowed to stall enrichment.
    """

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None, client=None):
        self._host = host or Config.DEFAULT_OSC_HOST
        self._port = port or Config.DEFAULT_OSC_PORT
        self._client = client  # Lazy init
        self._last_active_index = -1

    def _ensure_client(self):
        if self._client is None:
            self._client = udp_client.SimpleUDPClient(self._host, self._port)
            logger.info(f"OSC → {self._host}:{self._port}")

    def send(self, address: str, *args) -> bool:
        """Send arbitrary OSC message. Returns True on success."""
        try:
            self._ensure_client()
            self._client.send_message(address, list(args))
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.debug(f"OSC send failed {address}: {e}")
            return False

    # =========================================================================
    # LYRICS MESSAGES
    # =========================================================================

    def send_lyrics(self, lines: List[LyricLine]) -> None:
        """
        OSC: /etymology/lyrics/reset
        OSC: /etymology/lyrics/line [index, id, start, end, text] (for each)
        """
        self.send("/etymology/lyrics/reset")
        for i, line in enumerate(lines):
            self.send("/etymology/lyrics/line", i, line.id,
                      float(line.start_time), float(line.end_time), line.text)
        self._last_active_index = -1
        logger.debug(f"→ /etymology/lyrics: {len(lines)} lines")

    def send_active_line(self, index: int, line: Optional[LyricLine] = None) -> None:
        """
        OSC: /etymology/line/active [index, id]
        """
        if index == self._last_active_index:
            return
        self._last_active_index = index
        self.send("/etymology/line/active", index, line.id if line else "")

    # =========================================================================
    # ENRICHMENT MESSAGES
    # =========================================================================

    def send_enriched(self, index: int, enriched: EnrichedLyricLine) -> None:
        """
        OSC: /etymology/line/enriched [index, id, translation, emotion, intensity,
             primary, secondary, accent, particle, animation, background]
        OSC: /etymology/word [index, word, origin, meaning, evolution] (for each)
        """
        sentiment = enriched.sentiment or DEFAULT_SENTIMENT
        visualization = enriched.visualization or map_visualization(sentiment)
        self.send(
            "/etymology/line/enriched",
            index,
            enriched.id,
            enriched.translation or enriched.text,
            sentiment.emotion.value,
            float(sentiment.intensity),
            sentiment.colors.primary,
            sentiment.colors.secondary,
            sentiment.colors.accent,
            visualization.particle_effect.value,
            visualization.animation.value,
            visualization.background,
        )
        for word, etymology in enriched.etymology.items():
            self.send("/etymology/word", index, word, etymology.origin,
                      etymology.meaning, " > ".join(etymology.evolution))

    def send_distribution(self, counts: Dict[str, int]) -> None:
        """
        OSC: /etymology/distribution [origin, count, origin, count, ...]
        """
        args = []
        for origin, count in sorted(counts.items()):
            args.extend([origin, int(count)])
        self.send("/etymology/distribution", *args)

    def reset(self) -> None:
        self._last_active_index = -1
