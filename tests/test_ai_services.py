from unittest.mock import MagicMock

import pytest
import requests

from etymology_viz.ai_services import (
    LLMCompletion, batch_etymology_prompt, clean_completion_text, etymology_prompt,
    extract_json, poetic_translation_prompt, sentiment_prompt,
)


class TestExtractJson:

    def test_plain_object(self):
        assert extract_json('{"emotion": "joy"}') == {"emotion": "joy"}

    def test_fenced(self):
        reply = 'Here you go:\n```json\n[{"word": "रंग"}]\n```\nEnjoy!'
        assert extract_json(reply) == [{"word": "रंग"}]

    def test_prose_around_object(self):
        assert extract_json('Sure! {"intensity": 0.7} hope that helps') == {"intensity": 0.7}

    def test_earliest_span_wins(self):
        reply = 'Result: [{"word": "dil", "meaning": "heart"}]'
        assert extract_json(reply) == [{"word": "dil", "meaning": "heart"}]

    @pytest.mark.parametrize("reply", [None, "", "no json here", "{broken"])
    def test_unparsable(self, reply):
        assert extract_json(reply) is None


class TestCleanCompletionText:

    def test_strips_quotes(self):
        assert clean_completion_text('"In my own colours"') == "In my own colours"

    def test_strips_fence(self):
        assert clean_completion_text("```\nIn the rain\n```") == "In the rain"

    def test_empty(self):
        assert clean_completion_text("") is None
        assert clean_completion_text('""') is None


def test_prompts_carry_inputs():
    assert 'for the word "रंग"' in etymology_prompt("रंग")
    assert "अपने ही रंग में" in etymology_prompt("रंग", context="अपने ही रंग में")

    batch = batch_etymology_prompt(["रंग", "दिल"], context="line")
    assert "Words: रंग, दिल" in batch
    assert "etymologies" in batch

    assert "sentiment" in sentiment_prompt("नमस्ते")

    poetic = poetic_translation_prompt("रंग", "colour", "previous line")
    assert 'Previous lines: "previous line"' in poetic
    assert 'Literal translation: "colour"' in poetic


def lm_studio_session(models=({"id": "qwen2.5-7b"},), reply="Hello"):
    session = MagicMock()
    models_resp = MagicMock(status_code=200)
    models_resp.json.return_value = {"data": list(models)}
    session.get.return_value = models_resp
    chat_resp = MagicMock(status_code=200)
    chat_resp.json.return_value = {"choices": [{"message": {"content": reply}}]}
    session.post.return_value = chat_resp
    return session


class TestLLMCompletion:

    def test_lm_studio_backend(self):
        session = lm_studio_session(reply="  colour  ")
        llm = LLMCompletion(api_key="", lm_studio_url="http://lm.test:1234/", session=session)

        assert llm.is_available
        assert llm.backend_info == "LM Studio (qwen2.5-7b)"
        assert llm.complete("translate") == "colour"

        assert session.get.call_args[0][0] == "http://lm.test:1234/v1/models"
        url = session.post.call_args[0][0]
        body = session.post.call_args[1]["json"]
        assert url == "http://lm.test:1234/v1/chat/completions"
        assert body["model"] == "qwen2.5-7b"
        assert body["messages"] == [{"role": "user", "content": "translate"}]

    def test_backend_discovery_is_lazy(self):
        session = lm_studio_session()
        LLMCompletion(api_key="", session=session)
        session.get.assert_not_called()

    def test_unavailable(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        llm = LLMCompletion(api_key="", session=session)

        assert not llm.is_available
        assert llm.complete("anything") is None
        session.post.assert_not_called()
        status = llm.get_status()
        assert status["available"] is False
        assert status["backend"] == "none"

    def test_no_models_loaded(self):
        llm = LLMCompletion(api_key="", session=lm_studio_session(models=()))
        assert not llm.is_available

    def test_http_error_returns_none(self):
        session = lm_studio_session()
        session.post.return_value = MagicMock(status_code=500)
        llm = LLMCompletion(api_key="", session=session)
        assert llm.complete("x") is None

    def test_transport_error_marks_unavailable(self):
        session = lm_studio_session()
        session.post.side_effect = requests.Timeout("slow")
        llm = LLMCompletion(api_key="", session=session)
        assert llm.complete("x") is None
        assert llm.get_status()["available"] is False
