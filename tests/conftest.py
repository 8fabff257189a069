"""
Deterministic fakes for the external collaborators.

No test touches the network: dictionary, translator and AI completion are
replaced by these in-memory stand-ins.
"""
import json
import threading

import pytest

from etymology_viz.domain_types import LyricLine
from etymology_viz.orchestrators import AnalysisOrchestrator, OrchestratorConfig
from etymology_viz.services.etymology import EtymologyResolver
from etymology_viz.services.sentiment import SentimentMapper
from etymology_viz.services.translation import TranslationResolver


class FakeCompletion:
    """AI stand-in. `responder(prompt)` returns the reply (or raises)."""

    def __init__(self, responder=None, available=True):
        self._responder = responder or (lambda prompt: None)
        self.available = available
        self.prompts = []
        self._lock = threading.Lock()

    @property
    def is_available(self):
        return self.available

    def complete(self, prompt):
        with self._lock:
            self.prompts.append(prompt)
        return self._responder(prompt)


class FakeDictionary:
    """Wiktionary stand-in keyed by literal word."""

    def __init__(self, extracts=None, failing=()):
        self.extracts = dict(extracts or {})
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def fetch_extract(self, word):
        with self._lock:
            self.calls.append(word)
        if word in self.failing:
            raise ConnectionError(f"lookup failed for {word}")
        return self.extracts.get(word)


class FakeTranslator:
    """Translator stand-in; unknown texts translate to '<to>:<text>'."""

    def __init__(self, translations=None, configured=True, fail=False, language="hi"):
        self.translations = dict(translations or {})
        self.is_configured = configured
        self.fail = fail
        self.language = language
        self.calls = []
        self._lock = threading.Lock()

    def translate(self, texts, to="en"):
        with self._lock:
            self.calls.append((list(texts), to))
        if self.fail:
            raise ConnectionError("translator down")
        return [self.translations.get(text, f"{to}:{text}") for text in texts]

    def detect(self, text):
        if self.fail:
            raise ConnectionError("translator down")
        return self.language


def sentiment_reply(emotion="joy", intensity=0.8, primary="#ff0000", secondary="#00ff00", accent="#0000ff"):
    return json.dumps({
        "emotion": emotion,
        "intensity": intensity,
        "colors": {"primary": primary, "secondary": secondary, "accent": accent},
    })


def etymology_reply(word, origin="Sanskrit", evolution=None, meaning="colour", related=None):
    return json.dumps({
        "word": word,
        "origin": origin,
        "evolution": evolution if evolution is not None else ["raṅga", word],
        "meaning": meaning,
        "relatedWords": related if related is not None else [],
    })


def scripted_responder(etymology=None, sentiment=None):
    """Route prompts to etymology or sentiment replies by their wording."""
    def respond(prompt):
        if "sentiment" in prompt:
            return sentiment
        if "etymolog" in prompt:
            return etymology(prompt) if callable(etymology) else etymology
        return None
    return respond


@pytest.fixture
def lines():
    return [
        LyricLine(id="line-0", start_time=0.0, end_time=5.0, text="नमस्ते दुनिया"),
        LyricLine(id="line-1", start_time=5.0, end_time=9.0, text="अपने ही रंग में"),
        LyricLine(id="line-2", start_time=9.0, end_time=12.0, text="dancing in the rain"),
    ]


@pytest.fixture
def build_orchestrator():
    """Factory for orchestrators over fakes; closed after the test."""
    created = []

    def build(completion=None, dictionary=None, translator=None, **config):
        completion = completion if completion is not None else FakeCompletion()
        orchestrator = AnalysisOrchestrator(
            EtymologyResolver(dictionary=dictionary or FakeDictionary(), completion=completion),
            TranslationResolver(translator=translator or FakeTranslator(), completion=completion),
            SentimentMapper(completion),
            OrchestratorConfig(max_workers=4, **config),
        )
        created.append(orchestrator)
        return orchestrator

    yield build
    for orchestrator in created:
        orchestrator.close()
