"""
Unit tests for the chat pipeline. Retrieval and completion are passed in as fakes,
so no Milvus, HF or OpenAI access is needed.
"""

from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from app.core.errors import CollaboratorError
from app.core.rate_limiter import FixedWindowRateLimiter
from app.services.chat_service import (
    ChatAnswered,
    ChatFailed,
    ChatRateLimited,
    ChatRejected,
    answer_query,
    collection_name_for,
)

FRAGMENTS = [
    {"content": "Refunds within 30 days.", "metadata": {"doc_id": "d1"}},
    {"content": "Contact support for exceptions.", "metadata": {"doc_id": "d1"}},
]


@pytest.fixture
def limiter():
    with freeze_time("2026-01-01 00:00:00"):
        yield FixedWindowRateLimiter(max_requests=20, window_seconds=3600)


@pytest.fixture
def retrieve() -> MagicMock:
    return MagicMock(return_value=FRAGMENTS)


@pytest.fixture
def complete() -> MagicMock:
    return MagicMock(return_value="Within 30 days.")


def test_answer_envelope(limiter, retrieve, complete) -> None:
    outcome = answer_query("What is the refund policy?", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatAnswered)
    assert outcome.answer == "Within 30 days."
    assert outcome.context == FRAGMENTS
    assert outcome.remaining == 19
    assert outcome.messages == [
        {"role": "user", "content": "What is the refund policy?"},
        {"role": "assistant", "content": "Within 30 days."},
    ]
    retrieve.assert_called_once_with("What is the refund policy?", "u1_collection", 3)
    sent = complete.call_args.args[0]
    assert len(sent) == 2
    assert "Refunds within 30 days.\n\nContact support for exceptions." in sent[0]["content"]


def test_history_is_trimmed_in_messages(limiter, retrieve, complete) -> None:
    history = [{"role": "user", "content": str(i)} for i in range(12)]
    outcome = answer_query("q", "u1", history, limiter, retrieve, complete)
    assert isinstance(outcome, ChatAnswered)
    assert [m["content"] for m in outcome.messages] == [str(i) for i in range(2, 12)] + ["q", "Within 30 days."]
    assert len(complete.call_args.args[0]) == 12


@pytest.mark.parametrize("query,user_id", [("", "u1"), ("   ", "u1"), ("q", ""), (None, "u1"), ("q", None)])
def test_missing_input_rejected_without_side_effects(limiter, retrieve, complete, query, user_id) -> None:
    outcome = answer_query(query, user_id, [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatRejected)
    assert outcome.error == "Query and userId are required"
    retrieve.assert_not_called()
    complete.assert_not_called()
    assert len(limiter) == 0


def test_empty_query_does_not_consume_quota(limiter, retrieve, complete) -> None:
    answer_query("", "u1", [], limiter, retrieve, complete)
    outcome = answer_query("What is the refund policy?", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatAnswered)
    assert outcome.remaining == 19


def test_rate_limited_skips_downstream_calls(limiter, retrieve, complete) -> None:
    for _ in range(20):
        answer_query("q", "u1", [], limiter, retrieve, complete)
    retrieve.reset_mock()
    complete.reset_mock()

    outcome = answer_query("q", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatRateLimited)
    assert outcome.retry_after == 3600
    assert outcome.remaining == 0
    assert outcome.error == "Rate limit exceeded. Try again in 3600 seconds."
    retrieve.assert_not_called()
    complete.assert_not_called()


def test_retrieval_failure_skips_completion(limiter, complete) -> None:
    retrieve = MagicMock(side_effect=CollaboratorError("MILVUS_URI and MILVUS_TOKEN must be set in .env"))
    outcome = answer_query("q", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatFailed)
    assert outcome.kind == "collaborator"
    assert "MILVUS_URI" in outcome.error
    complete.assert_not_called()


def test_completion_failure_is_not_retried(limiter, retrieve) -> None:
    complete = MagicMock(side_effect=CollaboratorError("OpenAI API rate limit exceeded. Please try again later."))
    outcome = answer_query("q", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatFailed)
    assert outcome.error == "OpenAI API rate limit exceeded. Please try again later."
    assert complete.call_count == 1


def test_unexpected_error_is_internal(limiter, retrieve) -> None:
    complete = MagicMock(side_effect=KeyError("choices"))
    outcome = answer_query("q", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatFailed)
    assert outcome.kind == "internal"


def test_empty_retrieval_still_answers(limiter, complete) -> None:
    retrieve = MagicMock(return_value=[])
    outcome = answer_query("q", "u1", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatAnswered)
    assert outcome.context == []
    assert complete.call_args.args[0][0]["role"] == "system"


class TestCollectionName:
    def test_suffix(self) -> None:
        assert collection_name_for("user2abc") == "user2abc_collection"

    def test_underscore_is_doubled(self) -> None:
        assert collection_name_for("user_2abc") == "user__2abc_collection"

    def test_invalid_characters_escaped(self) -> None:
        assert collection_name_for("alice@example.com") == "alice_x40_example_x2e_com_collection"

    def test_leading_digit_prefixed(self) -> None:
        assert collection_name_for("42") == "_42_collection"

    def test_distinct_identities_never_share_a_collection(self) -> None:
        identities = [
            "a@b", "a.b", "a_b", "a__b", "a_x40_b", "42", "_42", "__42",
            "ab", "a b", "é", "_xe9_", "x", "_x", "a-b", "a/b",
        ]
        names = [collection_name_for(i) for i in identities]
        assert len(set(names)) == len(identities)

    def test_names_are_valid_milvus_identifiers(self) -> None:
        for identity in ["alice@example.com", "42", "_42", "é", "a b"]:
            name = collection_name_for(identity)
            assert name[0].isalpha() or name[0] == "_"
            assert all(ch.isascii() and (ch.isalnum() or ch == "_") for ch in name)



def test_query_is_forwarded_as_sent(limiter, retrieve, complete) -> None:
    outcome = answer_query("  What is the refund policy?\n", " u1 ", [], limiter, retrieve, complete)
    assert isinstance(outcome, ChatAnswered)
    assert complete.call_args.args[0][-1] == {"role": "user", "content": "  What is the refund policy?\n"}
    assert outcome.messages[0] == {"role": "user", "content": "  What is the refund policy?\n"}
    assert retrieve.call_args.args[1] == "u1_collection"
