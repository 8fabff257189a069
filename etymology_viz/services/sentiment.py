"""
SentimentMapper - Emotion and palette of a lyric line

One AI completion per call; anything unusable yields DEFAULT_SENTIMENT.
The emotion → visual effect table lives in domain_types.map_visualization.
"""

import logging
from typing import Optional

from ..ai_services import TextCompletion, extract_json, sentiment_prompt
from ..domain_types import DEFAULT_SENTIMENT, SentimentAnalysis, parse_sentiment

logger = logging.getLogger('etymology')


class SentimentMapper:

    def __init__(self, completion: Optional[TextCompletion] = None):
        self._completion = completion

    def analyze_sentiment(self, text: str) -> SentimentAnalysis:
        if self._completion is None or not text.strip():
            return DEFAULT_SENTIMENT
        try:
            if not self._completion.is_available:
                return DEFAULT_SENTIMENT
            reply = self._completion.complete(sentiment_prompt(text))
        except Exception as e:
            logger.debug(f"Sentiment request failed: {e}")
            return DEFAULT_SENTIMENT

        sentiment = parse_sentiment(extract_json(reply))
        if sentiment is None:
            logger.debug(f"Unusable sentiment reply: {reply!r}")
            return DEFAULT_SENTIMENT
        return sentiment
