"""Schemas for the chat endpoint."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatTurn(BaseModel):
    """One prior message of the conversation, as kept by the client."""

    role: Literal["system", "user", "assistant"]
    content: str


class Fragment(BaseModel):
    """A retrieved chunk of one of the user's documents."""

    content: str = Field(..., description="Chunk text used as context.")
    metadata: dict[str, Any] = Field(default_factory=dict, description="doc_id, name, type, source, chunk_id, score...")


class ChatRequest(BaseModel):
    """
    Request body for POST /chat. History is kept by the client and sent back each
    turn. query/userId may be missing or null; emptiness is reported as 400.
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = Field(None, description="User question about their documents.")
    user_id: str | None = Field(None, alias="userId", description="Caller identity; also selects the document collection.")
    history: list[ChatTurn] | None = Field(None, description="Prior turns; only the last 10 are used.")


class ChatResponse(BaseModel):
    """Response for POST /chat."""

    answer: str = Field(..., description="Answer generated from the retrieved context.")
    context: list[Fragment] = Field(default_factory=list, description="Fragments the answer was grounded on.")
    messages: list[ChatTurn] = Field(..., description="Updated history: trimmed history + this question + answer.")
    remaining: int = Field(..., description="Requests left in the current rate-limit window.")


class ErrorResponse(BaseModel):
    """Body for every non-200 response."""

    error: str
    remaining: int | None = Field(None, description="Set to 0 when rate limited.")
