"""
API route aggregator: register endpoints; no logic — only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from app.api.handlers import (
    delete_response,
    get_rate_limiter,
    handle_chat,
    handle_upload,
    ingest_response,
    run_service,
)
from app.core.rate_limiter import FixedWindowRateLimiter
from app.schemas.chat import ChatRequest, ChatResponse, ErrorResponse
from app.schemas.ingest import (
    DebugCollectionRequest,
    DebugCollectionResponse,
    DeleteDocRequest,
    DeleteDocResponse,
    IngestResponse,
    IngestTextRequest,
    WebIngestRequest,
)
from app.services.ingestion_service import ingest_text, ingest_url, inspect_collection, remove_document

logger = logging.getLogger(__name__)
router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Document chat backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={**_ERRORS, 429: {"model": ErrorResponse}},
    tags=["chat"],
    summary="Ask a question about your documents",
    description="Rate limited per userId. Retrieves context from the user's collection and answers from it only. "
    "400 when query or userId is missing, 429 when the quota is used up, 500 on retrieval/LLM failure.",
)
def post_chat(
    body: ChatRequest,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> JSONResponse:
    logger.info("[api:post_chat] IN  user_id=%s query=%r history_len=%d", (body.user_id or "")[:16], body.query, len(body.history or []))
    return handle_chat(body, limiter)


# --- Ingestion ---

@router.post(
    "/ingest-text",
    response_model=IngestResponse,
    responses=_ERRORS,
    tags=["ingestion"],
    summary="Index a block of text",
)
def post_ingest_text(body: IngestTextRequest) -> JSONResponse:
    return run_service(
        lambda: ingest_response(
            ingest_text(body.user_id, body.text), "Text uploaded and embedded successfully!"
        )
    )


@router.post(
    "/upload",
    response_model=IngestResponse,
    responses={**_ERRORS, 401: {"model": ErrorResponse}},
    tags=["ingestion"],
    summary="Upload and index a PDF, text or image file",
    description="Multipart form with `file` and `userId`. PDFs and .txt/.md are read directly; "
    "images go through the vision model. Max 10MB.",
)
async def post_upload(
    file: UploadFile | None = File(None, description="A .pdf, .txt, .md, .png, .jpg, .jpeg, .gif or .webp file."),
    user_id: str = Form("", alias="userId"),
) -> JSONResponse:
    return await handle_upload(file, user_id)


@router.post(
    "/web-ingest",
    response_model=IngestResponse,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
    tags=["ingestion"],
    summary="Crawl a website and index its pages",
)
def post_web_ingest(body: WebIngestRequest) -> JSONResponse:
    return run_service(
        lambda: ingest_response(
            ingest_url(body.user_id, body.url),
            f"Successfully indexed {body.url.strip()} for user {body.user_id.strip()}",
            crawled=True,
        )
    )


# --- Documents ---

@router.post(
    "/delete-doc",
    response_model=DeleteDocResponse,
    responses=_ERRORS,
    tags=["documents"],
    summary="Delete one document's chunks from the user's collection",
)
def post_delete_doc(body: DeleteDocRequest) -> JSONResponse:
    return run_service(lambda: delete_response(remove_document(body.user_id, body.doc_id)))


@router.post(
    "/debug-collection",
    response_model=DebugCollectionResponse,
    responses=_ERRORS,
    tags=["documents"],
    summary="Show a few stored chunks for the user's collection",
)
def post_debug_collection(body: DebugCollectionRequest) -> JSONResponse:
    return run_service(
        lambda: JSONResponse(
            status_code=200,
            content=DebugCollectionResponse(points=inspect_collection(body.user_id)).model_dump(mode="json"),
        )
    )
