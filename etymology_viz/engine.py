#!/usr/bin/env python3
"""
Enrichment Engine - Playback-driven lyric enrichment

Polls a playback clock, resolves the active lyric line, requests its
analysis without blocking and publishes enriched lines as they land.
"""

import json
import time
import logging
import argparse
from dataclasses import dataclass
from pathlib import Path
from threading import Lock, Thread
from typing import Callable, Optional

from .adapters import PlaybackClock, SimulatedClock
from .domain_types import TRANSCRIPT_FORMATS, EnrichedLyricLine, LyricLine
from .infra import Config, setup_logging
from .orchestrators import AnalysisOrchestrator, OrchestratorConfig, create_orchestrator
from .services.lyrics import LyricsConfig, LyricsService
from .services.output import OutputService

logger = logging.getLogger('etymology')


# =============================================================================
# SNAPSHOT - Immutable view of engine state
# =============================================================================

@dataclass(frozen=True)
class EngineSnapshot:
    position: float = 0.0
    index: int = -1
    line: Optional[LyricLine] = None
    enriched: Optional[EnrichedLyricLine] = None

    @property
    def pending(self) -> bool:
        """Active line whose analysis has not landed yet."""
        return self.line is not None and self.enriched is not None and not self.enriched.is_enriched


@dataclass
class EngineConfig:
    poll_interval: float = 0.1
    prefetch: int = 1
    stop_at_end: bool = True


# =============================================================================
# ENRICHMENT ENGINE - Composition of lyrics, clock, orchestrator, output
# =============================================================================

class EnrichmentEngine:
    """
    Simple interface: tick(), snapshot(), run(), start(), stop()

    Callbacks:
        on_active_line(index, line)       - active line changed
        on_enriched(index, enriched)      - active line's enrichment landed

    Enrichment that completes after its line stopped being active is kept in
    the orchestrator cache but not emitted.
    """

    def __init__(self, lyrics: LyricsService, orchestrator: AnalysisOrchestrator,
                 clock: PlaybackClock, output: Optional[OutputService] = None,
                 config: Optional[EngineConfig] = None):
        self._lyrics = lyrics
        self._orchestrator = orchestrator
        self._clock = clock
        self._output = output
        self._config = config or EngineConfig()
        self.on_active_line: Optional[Callable[[int, LyricLine], None]] = None
        self.on_enriched: Optional[Callable[[int, EnrichedLyricLine], None]] = None

        self._lock = Lock()
        self._active_index = -1
        self._active_id: Optional[str] = None
        self._emitted_id: Optional[str] = None
        self._snapshot = EngineSnapshot()
        self._running = False
        self._thread: Optional[Thread] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def running(self) -> bool:
        return self._running

    def tick(self) -> EngineSnapshot:
        """One poll: read clock, resolve line, request enrichment, refresh snapshot."""
        position = self._clock.position()
        index = self._lyrics.get_active_index(position)
        line = self._lyrics.get_line(index)

        with self._lock:
            changed = index != self._active_index
            self._active_index = index
            self._active_id = line.id if line else None
            if changed:
                # Returning to a line emits its enrichment again
                self._emitted_id = None

        if changed:
            self._on_line_change(index, line)

        enriched = None
        if line is not None:
            enriched = self._orchestrator.get_enriched(line.id) or EnrichedLyricLine.pending(line)

        snapshot = EngineSnapshot(position=position, index=index, line=line, enriched=enriched)
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def prefetch(self, index: int, count: Optional[int] = None):
        """Request analysis of the lines after `index`."""
        lines = self._lyrics.lines
        count = self._config.prefetch if count is None else count
        for i in range(index + 1, min(len(lines), index + 1 + count)):
            self._orchestrator.submit(lines[i], self._context(i))

    def start(self):
        """Start in background thread."""
        if self._running:
            return
        self._running = True
        self._thread = Thread(target=self._run_loop, daemon=True, name="Etymology-Engine")
        self._thread.start()
        logger.info(f"Enrichment engine started (poll interval: {self._config.poll_interval:.2f}s)")

    def stop(self):
        self._running = False
        logger.info("Enrichment engine stopped")

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self):
        """Run in foreground (blocking)."""
        self._running = True
        try:
            self._run_loop()
        finally:
            self._running = False

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _run_loop(self):
        if self._output:
            self._output.send_lyrics(self._lyrics.lines)
        lines = self._lyrics.lines
        end_time = max((line.end_time for line in lines), default=0.0)

        while self._running:
            try:
                snapshot = self.tick()
                if self._config.stop_at_end and snapshot.position >= end_time:
                    logger.info("End of transcript reached")
                    break
                time.sleep(self._config.poll_interval)
            except KeyboardInterrupt:
                break
            except Exception as e:
                logger.error(f"Loop error: {e}")
                time.sleep(1)
        self._running = False

    def _context(self, index: int) -> Optional[str]:
        lines = self._lyrics.lines
        return lines[index - 1].text if 0 < index < len(lines) else None

    def _on_line_change(self, index: int, line: Optional[LyricLine]):
        if self._output:
            self._output.send_active_line(index, line)
        if line is None:
            return

        if self.on_active_line:
            self.on_active_line(index, line)

        future = self._orchestrator.submit(line, self._context(index))
        future.add_done_callback(lambda f: self._on_analysis_done(index, line, f))
        if self._config.prefetch > 0:
            self.prefetch(index)

    def _on_analysis_done(self, index: int, line: LyricLine, future):
        try:
            enriched = future.result()
        except Exception as e:
            logger.error(f"Analysis of {line.id} failed: {e}")
            return

        with self._lock:
            if self._active_id != line.id or self._emitted_id == line.id:
                return
            self._emitted_id = line.id

        if self._output:
            self._output.send_enriched(index, enriched)
            self._output.send_distribution(self._orchestrator.language_distribution)
        if self.on_enriched:
            self.on_enriched(index, enriched)


# =============================================================================
# CLI
# =============================================================================

def _print_active(index: int, line: LyricLine):
    print(f"[{line.start_time:7.2f}] {line.text}")


def _print_enriched(index: int, enriched: EnrichedLyricLine):
    sentiment = enriched.sentiment
    if enriched.translation and enriched.translation != enriched.text:
        print(f"          → {enriched.translation}")
    if sentiment:
        print(f"          {sentiment.emotion.value} ({sentiment.intensity:.1f})")
    for word, etymology in enriched.etymology.items():
        print(f"          {word}: {etymology.origin} - {etymology.meaning}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Etymology Visualizer - time-synced lyric enrichment',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
OSC Messages (with --osc):
  /etymology/lyrics/*        Full transcript
  /etymology/line/active     Active line index
  /etymology/line/enriched   Translation, sentiment, visualization
  /etymology/word            Per-word etymology
  /etymology/distribution    Origin language counts
"""
    )
    parser.add_argument('transcript', help='Transcript path or URL (CSV timing rows, SRT or LRC)')
    parser.add_argument('--format', choices=TRANSCRIPT_FORMATS, help='Transcript format (auto-detected)')
    parser.add_argument('--offset', type=int, default=0, help='Timing offset in ms')
    parser.add_argument('--speed', type=float, default=1.0, help='Playback rate of the simulated clock')
    parser.add_argument('--start', type=float, default=0.0, help='Start position in seconds')
    parser.add_argument('--pregenerated', help='JSON list of pre-generated enrichment, one entry per line')
    parser.add_argument('--prefetch', type=int, default=1, help='Lines to analyze ahead of playback')
    parser.add_argument('--poetic', action='store_true', help='Poetic translation using the previous line')
    parser.add_argument('--osc', action='store_true', help='Send results over OSC')
    parser.add_argument('--osc-host', default=Config.DEFAULT_OSC_HOST)
    parser.add_argument('--osc-port', type=int, default=Config.DEFAULT_OSC_PORT)
    parser.add_argument('--poll-interval', type=float, default=0.1)
    parser.add_argument('--log-level', default=Config.LOG_LEVEL)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    lyrics = LyricsService(LyricsConfig(timing_offset_ms=args.offset, fmt=args.format))
    count = lyrics.load(args.transcript)
    if not count:
        logger.error(f"No lyric lines found in {args.transcript}")
        return 1

    orchestrator = create_orchestrator(OrchestratorConfig(poetic_translation=args.poetic))
    if args.pregenerated:
        entries = json.loads(Path(args.pregenerated).read_text(encoding='utf-8'))
        orchestrator.seed(lyrics.lines, entries)

    engine = EnrichmentEngine(
        lyrics,
        orchestrator,
        SimulatedClock(start=args.start, rate=args.speed),
        output=OutputService(args.osc_host, args.osc_port) if args.osc else None,
        config=EngineConfig(poll_interval=args.poll_interval, prefetch=args.prefetch),
    )
    engine.on_active_line = _print_active
    engine.on_enriched = _print_enriched

    try:
        engine.run()
    except KeyboardInterrupt:
        engine.stop()
        print("\nStopped")
    finally:
        orchestrator.close(wait=False)

    distribution = orchestrator.language_distribution
    if distribution:
        print("\nOrigins: " + ", ".join(f"{k} {v}" for k, v in sorted(distribution.items())))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
