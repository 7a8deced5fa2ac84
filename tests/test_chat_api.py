"""
Integration tests for POST /chat.

Uses mocks for retrieval/LLM so tests do not require Milvus, HF or OpenAI. Each test
gets its own rate limiter through a dependency override.
"""

from unittest.mock import patch

import pytest
from freezegun import freeze_time
from fastapi.testclient import TestClient

from app.api.handlers import get_rate_limiter
from app.core.errors import CollaboratorError
from app.core.rate_limiter import FixedWindowRateLimiter
from app.main import app

FAKE_FRAGMENTS = [
    {"content": "Refunds within 30 days.", "metadata": {"doc_id": "d1", "source": "policy.pdf", "score": 0.91}},
    {"content": "Contact support for exceptions.", "metadata": {"doc_id": "d1", "source": "policy.pdf", "score": 0.87}},
]


@pytest.fixture
def limiter():
    with freeze_time("2026-01-01 00:00:00", real_asyncio=True):
        yield FixedWindowRateLimiter(max_requests=20, window_seconds=3600)


@pytest.fixture
def client(limiter: FixedWindowRateLimiter):
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_chat_returns_answer_context_history_remaining(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", return_value=FAKE_FRAGMENTS) as mock_retrieve, \
            patch("app.services.chat_service.complete_chat", return_value="Refunds are accepted within 30 days.") as mock_complete:
        response = client.post("/chat", json={"query": "What is the refund policy?", "userId": "u1"})
    assert response.status_code == 200
    data = response.json()
    assert data["answer"] == "Refunds are accepted within 30 days."
    assert data["context"] == FAKE_FRAGMENTS
    assert data["messages"] == [
        {"role": "user", "content": "What is the refund policy?"},
        {"role": "assistant", "content": "Refunds are accepted within 30 days."},
    ]
    assert data["remaining"] == 19
    mock_retrieve.assert_called_once_with("What is the refund policy?", "u1_collection", 3)
    assert len(mock_complete.call_args.args[0]) == 2


def test_chat_forwards_last_ten_history_turns(client: TestClient) -> None:
    history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"m{i}"} for i in range(14)]
    with patch("app.services.chat_service.retrieve_fragments", return_value=[]), \
            patch("app.services.chat_service.complete_chat", return_value="ok") as mock_complete:
        response = client.post("/chat", json={"query": "and then?", "userId": "u1", "history": history})
    assert response.status_code == 200
    sent = mock_complete.call_args.args[0]
    assert sent[1:-1] == history[-10:]
    assert len(response.json()["messages"]) == 12


def test_chat_missing_query_returns_400_and_keeps_quota(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", return_value=[]) as mock_retrieve, \
            patch("app.services.chat_service.complete_chat", return_value="ok"):
        bad = client.post("/chat", json={"query": "", "userId": "u1"})
        assert mock_retrieve.call_count == 0
        good = client.post("/chat", json={"query": "hello?", "userId": "u1"})
    assert bad.status_code == 400
    assert bad.json() == {"error": "Query and userId are required"}
    assert good.status_code == 200
    assert good.json()["remaining"] == 19


def test_chat_missing_user_returns_400(client: TestClient) -> None:
    response = client.post("/chat", json={"query": "hello?"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_chat_rate_limited_returns_429(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", return_value=[]) as mock_retrieve, \
            patch("app.services.chat_service.complete_chat", return_value="ok"):
        for _ in range(20):
            assert client.post("/chat", json={"query": "q", "userId": "u1"}).status_code == 200
        mock_retrieve.reset_mock()
        response = client.post("/chat", json={"query": "q", "userId": "u1"})
    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded. Try again in 3600 seconds.", "remaining": 0}
    mock_retrieve.assert_not_called()


def test_chat_collaborator_failure_returns_500(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", return_value=FAKE_FRAGMENTS), \
            patch("app.services.chat_service.complete_chat",
                  side_effect=CollaboratorError("Invalid OpenAI API key. Please check your configuration.")):
        response = client.post("/chat", json={"query": "q", "userId": "u1"})
    assert response.status_code == 500
    assert response.json() == {"error": "Invalid OpenAI API key. Please check your configuration."}


def test_chat_unexpected_failure_returns_500(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", side_effect=RuntimeError("boom")):
        response = client.post("/chat", json={"query": "q", "userId": "u1"})
    assert response.status_code == 500
    assert response.json() == {"error": "boom"}


def test_chat_invalid_history_role_returns_400(client: TestClient) -> None:
    response = client.post(
        "/chat",
        json={"query": "q", "userId": "u1", "history": [{"role": "tool", "content": "x"}]},
    )
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid history.0.role")


@pytest.mark.parametrize(
    "body",
    [
        {"query": "q", "userId": None},
        {"query": None, "userId": "u1"},
        {"query": None, "userId": None, "history": None},
    ],
)
def test_chat_null_fields_return_400(client: TestClient, body: dict) -> None:
    response = client.post("/chat", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Query and userId are required"}


def test_chat_null_history_is_treated_as_empty(client: TestClient) -> None:
    with patch("app.services.chat_service.retrieve_fragments", return_value=[]), \
            patch("app.services.chat_service.complete_chat", return_value="ok"):
        response = client.post("/chat", json={"query": "q", "userId": "u1", "history": None})
    assert response.status_code == 200
    assert response.json()["messages"] == [{"role": "user", "content": "q"}, {"role": "assistant", "content": "ok"}]


def test_chat_non_string_user_returns_400(client: TestClient) -> None:
    response = client.post("/chat", json={"query": "q", "userId": 123})
    assert response.status_code == 400
    assert set(response.json()) == {"error"}
    assert "userId" in response.json()["error"]


def test_chat_malformed_json_returns_400(client: TestClient) -> None:
    response = client.post("/chat", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"ok": True}
