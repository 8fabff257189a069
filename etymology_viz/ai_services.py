"""
AI Services - Text completion backends and prompt construction

Deep module hiding the LLM behind one call: complete(prompt) -> Optional[str].
Backends are OpenAI or a local LM Studio server; with neither reachable the
service reports itself unavailable and callers degrade.
"""

import json
import re
import logging
from typing import Any, Optional, Protocol, Sequence

import requests

from .infra import Config, ServiceHealth

logger = logging.getLogger('etymology')


# =============================================================================
# COMPLETION CAPABILITY
# =============================================================================

class TextCompletion(Protocol):
    """Black-box text completion. Returns None on any failure."""

    @property
    def is_available(self) -> bool:
        ...

    def complete(self, prompt: str) -> Optional[str]:
        ...


class LLMCompletion:
    """
    Text completion using OpenAI or local LM Studio.

    Deep module interface:
        complete(prompt) -> Optional[str]
        is_available -> bool

    Hides: backend discovery, reconnection, response unwrapping.
    The backend is probed lazily on first use, then re-probed every
    ServiceHealth.RECONNECT_INTERVAL while unavailable.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 lm_studio_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None, max_tokens: int = 600):
        self._api_key = Config.OPENAI_API_KEY if api_key is None else api_key
        self._model = model or Config.LLM_MODEL
        self._lm_studio_url = (lm_studio_url or Config.LM_STUDIO_URL).rstrip('/')
        self._timeout = timeout or Config.LLM_TIMEOUT
        self._session = session or requests.Session()
        self._max_tokens = max_tokens
        self._openai_client = None
        self._lmstudio_model = None
        self._backend = "none"
        self._probed = False
        self._health = ServiceHealth("LLM")

    @property
    def is_available(self) -> bool:
        self._try_reconnect()
        return self._health.available

    @property
    def backend_info(self) -> str:
        if self._backend == "openai":
            return f"OpenAI ({self._model})"
        if self._backend == "lmstudio":
            return f"LM Studio ({self._lmstudio_model})"
        return "none"

    def complete(self, prompt: str) -> Optional[str]:
        if not self.is_available:
            return None
        try:
            if self._backend == "openai":
                response = self._openai_client.chat.completions.create(
                    model=self._model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self._max_tokens,
                    timeout=self._timeout,
                )
                content = response.choices[0].message.content
            elif self._backend == "lmstudio":
                resp = self._session.post(
                    f"{self._lm_studio_url}/v1/chat/completions",
                    json={
                        "model": self._lmstudio_model,
                        "messages": [{"role": "user", "content": prompt}],
                        "max_tokens": self._max_tokens,
                    },
                    timeout=self._timeout,
                )
                if resp.status_code != 200:
                    logger.debug(f"LM Studio error {resp.status_code}")
                    return None
                content = resp.json().get('choices', [{}])[0].get('message', {}).get('content', '')
            else:
                return None
        except Exception as e:
            self._health.mark_unavailable(str(e))
            return None

        return content.strip() if content else None

    def get_status(self):
        status = self._health.get_status()
        status['backend'] = self.backend_info
        return status

    def _init_backend(self):
        """Initialize best available backend."""
        self._probed = True
        self._backend = "none"

        if self._api_key:
            try:
                import openai
                self._openai_client = openai.OpenAI(api_key=self._api_key)
                self._openai_client.models.list()
                self._backend = "openai"
                self._health.mark_available(f"OpenAI ({self._model})")
                return
            except Exception as e:
                logger.debug(f"OpenAI unavailable: {e}")

        # LM Studio speaks the OpenAI-compatible API
        try:
            resp = self._session.get(f"{self._lm_studio_url}/v1/models", timeout=2)
            if resp.status_code == 200:
                models = resp.json().get('data', [])
                if models:
                    self._lmstudio_model = models[0].get('id', 'local-model')
                    self._backend = "lmstudio"
                    self._health.mark_available(f"LM Studio ({self._lmstudio_model})")
                    return
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"LM Studio unavailable: {e}")

        self._health.mark_unavailable("no AI backend (set OPENAI_API_KEY or start LM Studio)")

    def _try_reconnect(self):
        if not self._probed or (not self._health.available and self._health.should_retry):
            self._init_backend()


# =============================================================================
# REPLY PARSING
# =============================================================================

_FENCE = re.compile(r'```(?:json)?\s*(.*?)```', re.DOTALL)


def extract_json(content: Optional[str]) -> Optional[Any]:
    """
    Locate and decode the JSON payload of a model reply.

    Strips markdown fences, then tries the outermost [...] or {...} span,
    whichever starts first. Returns None if nothing decodes.
    """
    if not content:
        return None
    fenced = _FENCE.search(content)
    if fenced:
        content = fenced.group(1)
    content = content.strip()

    try:
        return json.loads(content)
    except ValueError:
        pass

    spans = []
    for open_ch, close_ch in (('[', ']'), ('{', '}')):
        start, end = content.find(open_ch), content.rfind(close_ch)
        if start >= 0 and end > start:
            spans.append((start, end))
    for start, end in sorted(spans):
        try:
            return json.loads(content[start:end + 1])
        except ValueError:
            continue
    return None


# =============================================================================
# PROMPTS
# =============================================================================

def etymology_prompt(word: str, context: Optional[str] = None) -> str:
    context_line = f'It appears in the lyric "{context}".\n' if context else ""
    return f"""Provide a concise etymology for the word "{word}" (could be Hindi/Urdu/Sanskrit/English).
{context_line}Return JSON with this structure:
{{
  "word": "{word}",
  "origin": "Brief origin (e.g., Sanskrit, Persian, Arabic)",
  "evolution": ["Original form", "Middle form", "Current form"],
  "meaning": "Current meaning in context",
  "relatedWords": ["2-3 related words"]
}}"""


def batch_etymology_prompt(words: Sequence[str], context: Optional[str] = None) -> str:
    return f"""For these Hindi/Urdu words from the lyric "{context or ''}", provide etymologies:
Words: {', '.join(words)}

Return a JSON array with this structure for each word:
[{{
  "word": "word",
  "origin": "Sanskrit/Persian/Arabic/etc",
  "evolution": ["oldest form", "middle form", "current form"],
  "meaning": "contextual meaning in this lyric",
  "relatedWords": ["max 3 related words"]
}}]"""


def sentiment_prompt(text: str) -> str:
    return f"""Analyze the sentiment and emotion of this lyric line: "{text}"
Consider cultural context if it's in Hindi/Urdu.
Return JSON with:
{{
  "emotion": "one of: joy, melancholy, energy, calm, passionate, reflective",
  "intensity": 0.1 to 1.0,
  "colors": {{
    "primary": "#hex color matching emotion",
    "secondary": "#complementary hex",
    "accent": "#accent hex"
  }}
}}"""


_LANGUAGE_NAMES = {"en": "English", "hi": "Hindi", "ur": "Urdu"}


def poetic_translation_prompt(text: str, literal: str, context: str, target_language: str = "en") -> str:
    language = _LANGUAGE_NAMES.get(target_language, f'the language with code "{target_language}"')
    return f"""Translate this Hindi/Urdu lyric to {language}. Keep it poetic and contextual.
Previous lines: "{context}"
Lyric: "{text}"
Literal translation: "{literal}"

Return only the translation, nothing else."""


def clean_completion_text(content: Optional[str]) -> Optional[str]:
    """Strip quotes and fences a model wraps around a plain-text answer."""
    if not content:
        return None
    text = _FENCE.sub(lambda m: m.group(1), content).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in '"\'':
        text = text[1:-1].strip()
    return text or None

