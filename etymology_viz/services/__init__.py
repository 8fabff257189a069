"""Services package - resolvers and output used by the orchestrator and engine."""

__all__ = [
    "EtymologyResolver",
    "TranslationResolver",
    "SentimentMapper",
    "LyricsService",
    "LyricsConfig",
    "TimeSyncResolver",
    "OutputService",
]

from .etymology import EtymologyResolver
from .translation import TranslationResolver
from .sentiment import SentimentMapper
from .lyrics import LyricsConfig, LyricsService, TimeSyncResolver
from .output import OutputService
