from unittest.mock import MagicMock

import pytest

from conftest import FakeCompletion, FakeDictionary, scripted_responder, sentiment_reply

from etymology_viz.web import create_app

PERSIAN_EXTRACT = "Etymology\nFrom Persian rang.\n\nNoun\n1. colour\n"


@pytest.fixture
def client(build_orchestrator):
    completion = FakeCompletion(scripted_responder(sentiment=sentiment_reply("melancholy", 0.4)))
    orchestrator = build_orchestrator(completion=completion, dictionary=FakeDictionary({"रंग": PERSIAN_EXTRACT}))
    app = create_app(orchestrator)
    app.config["TESTING"] = True
    return app.test_client()


def test_analyze(client):
    response = client.post("/api/analyze", json={"text": "रंग", "timestamp": 42.0})

    assert response.status_code == 200
    data = response.get_json()
    assert data["translation"] == "en:रंग"
    assert data["timestamp"] == 42.0
    assert set(data["etymologies"]) == {"रंग"}
    assert data["etymologies"]["रंग"]["word"] == "रंग"
    assert data["etymologies"]["रंग"]["origin"] == "Persian"
    assert data["sentiment"]["emotion"] == "melancholy"
    assert data["visualization"] == {
        "particleEffect": "leaves",
        "animation": "fade",
        "background": "linear-gradient(180deg, #ff000015, transparent)",
    }


def test_timestamp_optional(client):
    assert client.post("/api/analyze", json={"text": "रंग"}).get_json()["timestamp"] is None


@pytest.mark.parametrize("payload", [{}, {"text": ""}, {"text": "   "}, {"text": 5}])
def test_missing_text_is_400(client, payload):
    response = client.post("/api/analyze", json=payload)
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_non_json_body_is_400(client):
    response = client.post("/api/analyze", data="text=hello", content_type="text/plain")
    assert response.status_code == 400


def test_unexpected_failure_is_500():
    orchestrator = MagicMock()
    orchestrator.analyze_text.side_effect = RuntimeError("boom")
    client = create_app(orchestrator).test_client()

    response = client.post("/api/analyze", json={"text": "रंग"})

    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to analyze lyrics"}


def test_distribution(client):
    client.post("/api/analyze", json={"text": "रंग"})
    assert client.get("/api/distribution").get_json() == {"Persian": 1}


def test_health(client):
    data = client.get("/api/health").get_json()
    assert data["translation"]["configured"] is True
    assert data["in_flight"] == 0
