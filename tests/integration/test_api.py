"""Integration tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from rag_decision.api.app import build_generator, create_app
from rag_decision.config.settings import Settings
from rag_decision.exceptions import ConfigurationError
from rag_decision.generation.openai_provider import OpenAIGenerator


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["llm_provider"] == "openai"
    assert "X-Request-ID" in response.headers


def test_system_chat_round_trip(client):
    response = client.post("/chat", json={"query": "ping", "session_id": "monitor-1"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "pong"
    assert body["confidence"] == 1.0
    assert body["query_classification"]["kind"] == "SYSTEM"
    assert body["session_id"] == "monitor-1"


def test_monitoring_user_agent_is_system(client):
    response = client.post(
        "/chat",
        json={"query": "How is the portfolio allocated?"},
        headers={"User-Agent": "Pingdom.com_bot"},
    )
    assert response.json()["query_classification"]["kind"] == "SYSTEM"


def test_empty_query_rejected(client):
    response = client.post("/chat", json={"query": ""})
    assert response.status_code == 422


def test_budget_stats_start_empty(client):
    response = client.get("/budget/stats")
    assert response.status_code == 200
    body = response.json()
    assert body["total_queries"] == 0
    assert body["recommendations"] == []


def test_build_generator():
    settings = Settings(openai_api_key="k", llm_provider="openai")
    assert isinstance(build_generator(settings), OpenAIGenerator)
    with pytest.raises(ConfigurationError):
        build_generator(Settings(llm_provider="anthropic"))
