"""
API handlers: read request data, call services, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so services stay free of FastAPI/HTTP types.
"""

import asyncio
import logging
from typing import Any, Callable

from fastapi import Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    CollaboratorError,
    DocumentNotFoundError,
    InvalidFileTypeError,
    InvalidRequestError,
)
from app.core.rate_limiter import FixedWindowRateLimiter
from app.schemas.chat import ChatRequest, ChatResponse
from app.schemas.ingest import DeleteDocResponse, IngestResponse
from app.services.chat_service import (
    ChatAnswered,
    ChatFailed,
    ChatRateLimited,
    ChatRejected,
    answer_query,
)
from app.services.ingestion_service import IngestResult, ingest_file

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """Dependency: the limiter owned by the running app."""
    return request.app.state.rate_limiter


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same 400 {error} shape as missing fields."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {field}: {first.get('msg', 'invalid value')}" if field else "Invalid request body"
    logger.info("[api:validation] %s %s -> 400 %s", request.method, request.url.path, message)
    return error_response(400, message)


def handle_chat(body: ChatRequest, limiter: FixedWindowRateLimiter) -> JSONResponse:
    """Run the chat pipeline and turn its outcome into a response."""
    history = [turn.model_dump() for turn in body.history or []]
    outcome = answer_query(body.query, body.user_id, history, limiter)

    if isinstance(outcome, ChatAnswered):
        payload = ChatResponse(
            answer=outcome.answer,
            context=outcome.context,
            messages=outcome.messages,
            remaining=outcome.remaining,
        )
        return JSONResponse(status_code=200, content=payload.model_dump(mode="json"))
    if isinstance(outcome, ChatRateLimited):
        return error_response(429, outcome.error, remaining=outcome.remaining)
    if isinstance(outcome, ChatRejected):
        return error_response(400, outcome.error)
    if isinstance(outcome, ChatFailed):
        return error_response(500, outcome.error)
    raise TypeError(f"Unhandled chat outcome: {outcome!r}")


def ingest_response(result: IngestResult, message: str, crawled: bool = False) -> JSONResponse:
    payload = IngestResponse(
        message=message,
        doc_id=result.doc_id,
        chunks_created=result.chunks_created,
        text_length=result.text_length,
        page_count=result.extra.get("pageCount"),
        collection=result.collection if crawled else None,
        documents=result.documents if crawled else None,
    )
    return JSONResponse(status_code=200, content=payload.model_dump(mode="json", by_alias=True, exclude_none=True))


def map_error(e: Exception, not_found_status: int = 404) -> JSONResponse:
    """Map a service exception to its status code and {"error": ...} body."""
    if isinstance(e, (InvalidRequestError, InvalidFileTypeError)):
        return error_response(400, e.message)
    if isinstance(e, DocumentNotFoundError):
        return error_response(not_found_status, e.message)
    if isinstance(e, CollaboratorError):
        logger.warning("Collaborator failed: %s", e.message)
        return error_response(500, e.message)
    if isinstance(e, AppError):
        return error_response(500, e.message)
    logger.error("Request failed", exc_info=e)
    return error_response(500, str(e) or "Internal server error")


def run_service(call: Callable[[], JSONResponse], not_found_status: int = 404) -> JSONResponse:
    """Invoke a service call; application errors become error responses."""
    try:
        return call()
    except Exception as e:
        return map_error(e, not_found_status)


async def handle_upload(file: UploadFile | None, user_id: str) -> JSONResponse:
    """
    Read the uploaded file and index it for user_id. 401 without a userId,
    400 for a missing/invalid/oversized file or one with no extractable text.
    """
    if not (user_id or "").strip():
        return error_response(401, "Unauthorized")
    if file is None or not file.filename:
        return error_response(400, "No file uploaded")

    filename = file.filename
    raw = await file.read()
    logger.info("[api:handle_upload] IN  user_id=%s filename=%s bytes=%d", user_id[:16], filename, len(raw))
    try:
        # Extraction and embedding block; keep them off the event loop
        result = await asyncio.to_thread(ingest_file, user_id.strip(), filename, raw)
    except Exception as e:
        return map_error(e, not_found_status=400)
    return ingest_response(result, f"{filename} uploaded and processed successfully!")


def delete_response(result: dict[str, Any]) -> JSONResponse:
    payload = DeleteDocResponse(
        message=result["message"],
        deleted_count=result.get("deletedCount"),
        method=result.get("method"),
    )
    return JSONResponse(status_code=200, content=payload.model_dump(mode="json", by_alias=True, exclude_none=True))
