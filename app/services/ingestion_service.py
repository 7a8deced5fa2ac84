"""
Document ingestion: turn text, uploaded files and web pages into chunks stored in
the owning user's collection, and remove them again by doc id.

Responsibility: Orchestrate load -> clean -> chunk -> store. Called by the API
layer; no HTTP or FastAPI here.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from app.core.config import (
    ALLOWED_EXTENSIONS,
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    MAX_UPLOAD_BYTES,
    WEB_CRAWL_MAX_DEPTH,
    WEB_CRAWL_MAX_PAGES,
    WEB_FETCH_TIMEOUT,
    WEB_TEXT_WRAP,
)
from app.core.errors import DocumentNotFoundError, InvalidFileTypeError, InvalidRequestError
from app.ingest.loader import file_kind, html_to_text, read_image, read_pdf_pages
from app.services.chat_service import collection_name_for
from app.services.text_processing import chunk_text, clean_text
from app.services.vector_store import delete_document, sample_points, store_chunks

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """What was indexed for one document."""

    doc_id: str
    collection: str
    chunks_created: int
    text_length: int
    documents: int = 1
    extra: dict[str, Any] = field(default_factory=dict)


def _require(**values: str | None) -> dict[str, str]:
    stripped = {k: (v or "").strip() for k, v in values.items()}
    missing = [k for k, v in stripped.items() if not v]
    if missing:
        raise InvalidRequestError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
    return stripped


def _index(user_id: str, doc_id: str, pages: list[tuple[str, dict[str, Any]]]) -> IngestResult:
    """Clean and chunk each (text, metadata) page, then store every chunk for user_id."""
    collection = collection_name_for(user_id)
    chunks: list[dict] = []
    text_length = 0
    for text, metadata in pages:
        cleaned = clean_text(text)
        text_length += len(cleaned)
        for piece in chunk_text(cleaned, chunk_size=CHUNK_SIZE, overlap=CHUNK_OVERLAP):
            chunks.append({
                "text": piece,
                "metadata": {**metadata, "user_id": user_id, "doc_id": doc_id, "chunk_id": len(chunks)},
            })
    if not chunks:
        raise DocumentNotFoundError("No text chunks could be created from the document")
    stored = store_chunks(collection, chunks)
    logger.info("[ingest:_index] user_id=%s doc_id=%s pages=%d chunks=%d", user_id[:16], doc_id, len(pages), stored)
    return IngestResult(
        doc_id=doc_id,
        collection=collection,
        chunks_created=stored,
        text_length=text_length,
        documents=len(pages),
    )


def ingest_text(user_id: str | None, text: str | None) -> IngestResult:
    """Index a pasted block of text as one document."""
    values = _require(text=text, userId=user_id)
    text, user_id = values["text"], values["userId"]
    name = text[:30] + "..."
    metadata = {"name": name, "type": "text", "source": "manual-upload"}
    return _index(user_id, str(uuid.uuid4()), [(text, metadata)])


def ingest_file(user_id: str, filename: str, raw: bytes) -> IngestResult:
    """
    Index an uploaded .txt/.md, .pdf or image file.

    Raises:
        InvalidFileTypeError: unsupported extension.
        InvalidRequestError: empty or oversized file.
        DocumentNotFoundError: nothing could be extracted.
        CollaboratorError: vision model, embeddings or vector store failed.
    """
    kind = file_kind(filename)
    if kind is None:
        raise InvalidFileTypeError(filename, sorted(ALLOWED_EXTENSIONS))
    if not raw:
        raise InvalidRequestError("No file uploaded")
    if len(raw) > MAX_UPLOAD_BYTES:
        raise InvalidRequestError(f"File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")

    doc_id = str(uuid.uuid4())
    base = {
        "name": filename,
        "type": kind,
        "source": filename,
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
        "file_size": len(raw),
    }
    if kind == "pdf":
        texts = [t for t in read_pdf_pages(raw) if t.strip()]
        if not texts:
            raise DocumentNotFoundError("No content could be extracted from the PDF")
        base["page_count"] = len(texts)
        pages = [(t, {**base, "page": i + 1}) for i, t in enumerate(texts)]
    elif kind == "image":
        text = read_image(raw, filename)
        if not text.strip():
            raise DocumentNotFoundError("No text could be extracted from the image")
        pages = [(text, base)]
    else:
        pages = [(raw.decode("utf-8", errors="replace"), base)]

    result = _index(user_id, doc_id, pages)
    if kind == "pdf":
        result.extra["pageCount"] = base["page_count"]
    return result


def _same_scope(url: str, root: str) -> bool:
    return url.startswith(root) and url.split(":", 1)[0] in ("http", "https")


def crawl(url: str, max_depth: int = WEB_CRAWL_MAX_DEPTH, max_pages: int = WEB_CRAWL_MAX_PAGES) -> list[tuple[str, str]]:
    """
    Breadth-first crawl from url, following links under the same URL prefix up to
    max_depth. Returns (page_url, text) for each HTML page that had text.
    """
    seen = {url}
    queue = deque([(url, 1)])
    pages: list[tuple[str, str]] = []
    with httpx.Client(timeout=WEB_FETCH_TIMEOUT, follow_redirects=True) as client:
        while queue and len(pages) < max_pages:
            page_url, depth = queue.popleft()
            try:
                response = client.get(page_url)
            except httpx.HTTPError as e:
                logger.warning("[ingest:crawl] fetch failed url=%s: %s", page_url, e)
                continue
            if response.status_code != 200 or "html" not in response.headers.get("content-type", "html"):
                logger.info("[ingest:crawl] skip url=%s status=%s", page_url, response.status_code)
                continue
            text, links = html_to_text(response.text, base_url=page_url, wordwrap=WEB_TEXT_WRAP)
            if text.strip():
                pages.append((page_url, text))
            if depth >= max_depth:
                continue
            for link in links:
                if link not in seen and _same_scope(link, url):
                    seen.add(link)
                    queue.append((link, depth + 1))
    logger.info("[ingest:crawl] OUT url=%s pages=%d", url, len(pages))
    return pages


def ingest_url(user_id: str | None, url: str | None) -> IngestResult:
    """Crawl a website and index every page as part of one document."""
    values = _require(url=url, userId=user_id)
    url, user_id = values["url"], values["userId"]
    if not url.startswith(("http://", "https://")):
        raise InvalidRequestError("URL must start with http:// or https://")
    crawled = crawl(url)
    if not crawled:
        raise DocumentNotFoundError("No documents found to index")
    pages = [(text, {"name": url, "type": "url", "source": page_url}) for page_url, text in crawled]
    return _index(user_id, str(uuid.uuid4()), pages)


def remove_document(user_id: str | None, doc_id: str | None) -> dict[str, Any]:
    """Delete every chunk of doc_id from the user's collection."""
    values = _require(userId=user_id, docId=doc_id)
    user_id, doc_id = values["userId"], values["docId"]
    collection = collection_name_for(user_id)
    result = delete_document(collection, doc_id)
    if not result["deleted"]:
        return {"message": f"Collection {collection} does not exist - nothing to delete"}
    return {
        "message": f"Successfully deleted document {doc_id} from user {user_id}",
        "deletedCount": result["delete_count"],
        "method": result["method"],
    }


def inspect_collection(user_id: str | None, limit: int = 5) -> list[dict]:
    """A few stored chunks for the user's collection (debugging)."""
    user_id = _require(userId=user_id)["userId"]
    return sample_points(collection_name_for(user_id), limit=limit)
