"""
Vector store client: Milvus Cloud connection, embeddings (HF Inference API), and
per-user chunk storage.

Responsibility: Embed texts via all-MiniLM-L6-v2, keep one collection per user
("<user_id>_collection"), insert/search/delete chunks with their metadata.
"""

import logging
from typing import Any, Callable

import httpx

from app.core.config import (
    EMBED_API_TIMEOUT,
    EMBED_BATCH_SIZE,
    HF_API_KEY,
    HF_EMBED_MODEL,
    MILVUS_TOKEN,
    MILVUS_URI,
    VECTOR_DIM,
)
from app.core.errors import CollaboratorError

logger = logging.getLogger(__name__)

HF_API_URL_ROUTER = (
    "https://router.huggingface.co/hf-inference/models/"
    f"{HF_EMBED_MODEL}/pipeline/feature-extraction"
)
HF_API_URL_STANDARD = f"https://api-inference.huggingface.co/models/{HF_EMBED_MODEL}"
# Tried in order; a 403 from the router moves on to the standard endpoint
EMBED_API_URLS = (HF_API_URL_ROUTER, HF_API_URL_STANDARD)

# Scalar fields stored next to each vector (dynamic fields on the collection)
CHUNK_FIELDS = ["text", "user_id", "doc_id", "name", "type", "source", "chunk_id"]


def _post_embed_batch(client: httpx.Client, batch: list[str], headers: dict) -> list:
    payload = {"inputs": batch, "options": {"wait_for_model": True}}
    response = None
    last_error = ""
    for api_url in EMBED_API_URLS:
        try:
            response = client.post(api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            last_error = str(e)
            logger.warning("[vector_store:embed] %s failed: %s", api_url, e)
            continue
        if response.status_code == 403 and api_url != EMBED_API_URLS[-1]:
            last_error = response.text
            continue
        break

    if response is None:
        raise CollaboratorError(f"HF API unreachable: {last_error}")
    if response.status_code == 200:
        return response.json()
    if response.status_code == 503:
        raise CollaboratorError(f"HF model is loading. Retry later. {response.text}")
    if response.status_code == 401:
        raise CollaboratorError(
            "Invalid HF API key. Check HF_API_KEY at https://huggingface.co/settings/tokens"
        )
    if response.status_code == 403:
        raise CollaboratorError(
            f"HF token lacks Inference API permission. Create a token with read access. {response.text}"
        )
    raise CollaboratorError(f"HF API error: {response.text or last_error}")


def embed_texts(
    texts: list[str], batch_size: int | None = None
) -> list[list[float]]:
    """
    Batch embed texts using Hugging Face Inference API (all-MiniLM-L6-v2).

    Returns list of 384-dim vectors (normalized for cosine similarity).
    """
    batch_size = batch_size if batch_size is not None else EMBED_BATCH_SIZE
    if not texts:
        return []
    if not HF_API_KEY:
        raise CollaboratorError(
            "HF_API_KEY must be set in .env. Get a token from https://huggingface.co/settings/tokens"
        )

    headers = {
        "Authorization": f"Bearer {HF_API_KEY}",
        "Content-Type": "application/json",
    }
    all_embeddings: list[list[float]] = []

    with httpx.Client(timeout=EMBED_API_TIMEOUT) as client:
        for i in range(0, len(texts), batch_size):
            result = _post_embed_batch(client, texts[i : i + batch_size], headers)
            if isinstance(result, list) and result and isinstance(result[0], list):
                batch_emb = result
            else:
                batch_emb = [
                    item if isinstance(item, list) else [item]
                    for item in (result if isinstance(result, list) else [result])
                ]

            # Normalize for cosine similarity (Milvus COSINE)
            for vec in batch_emb:
                norm = sum(x * x for x in vec) ** 0.5
                if norm == 0:
                    norm = 1.0
                all_embeddings.append([x / norm for x in vec])

    return all_embeddings


def get_milvus_client() -> Any:
    """Connect to Milvus Cloud and return a client."""
    if not MILVUS_URI or not MILVUS_TOKEN:
        raise CollaboratorError("MILVUS_URI and MILVUS_TOKEN must be set in .env")

    from pymilvus import MilvusClient

    client = MilvusClient(uri=MILVUS_URI, token=MILVUS_TOKEN)
    logger.info("Milvus connection established")
    return client


def ensure_collection(client: Any, collection_name: str) -> None:
    """Create the collection (dim 384, COSINE, dynamic fields) if it does not exist."""
    if client.has_collection(collection_name):
        return
    client.create_collection(
        collection_name=collection_name,
        dimension=VECTOR_DIM,
        primary_field_name="id",
        vector_field_name="vector",
        metric_type="COSINE",
        auto_id=True,
        enable_dynamic_field=True,
    )
    logger.info("Collection %s created (dim=%s)", collection_name, VECTOR_DIM)


def store_chunks(collection_name: str, chunks: list[dict]) -> int:
    """
    Embed each chunk, insert into the user's collection with its metadata, then flush.
    Returns the number of rows inserted.
    """
    if not chunks:
        return 0

    texts = [c["text"] for c in chunks]
    embeddings = embed_texts(texts)

    client = get_milvus_client()
    ensure_collection(client, collection_name)
    rows = []
    for c, emb in zip(chunks, embeddings):
        meta = c.get("metadata", {})
        rows.append({"vector": emb, "text": c["text"], **meta})

    client.insert(collection_name=collection_name, data=rows)
    client.flush(collection_name=collection_name)
    logger.info("[vector_store:store_chunks] collection=%s stored=%d", collection_name, len(rows))
    return len(rows)


def search(collection_name: str, query_vector: list[float], limit: int) -> list[dict]:
    """Return raw Milvus hits for one query vector, best first."""
    client = get_milvus_client()
    if not client.has_collection(collection_name):
        logger.info("[vector_store:search] collection=%s missing, returning []", collection_name)
        return []
    results = client.search(
        collection_name=collection_name,
        data=[query_vector],
        limit=limit,
        output_fields=CHUNK_FIELDS,
    )
    # results: list of list of hits (one list per query vector)
    return list(results[0]) if results else []


def sample_points(collection_name: str, limit: int = 5) -> list[dict]:
    """Return a few stored chunks (no vectors) for inspection."""
    client = get_milvus_client()
    if not client.has_collection(collection_name):
        return []
    return client.query(
        collection_name=collection_name,
        filter="",
        limit=limit,
        output_fields=["id", *CHUNK_FIELDS],
    )


# --- Deletion: ordered strategies, first success wins ---

def _doc_filter(doc_id: str) -> str:
    escaped = doc_id.replace("\\", "\\\\").replace('"', '\\"')
    return f'doc_id == "{escaped}"'


def _delete_by_filter(client: Any, collection_name: str, doc_id: str) -> int:
    result = client.delete(collection_name=collection_name, filter=_doc_filter(doc_id))
    return int(result.get("delete_count", 0)) if isinstance(result, dict) else 0


def _delete_by_ids(client: Any, collection_name: str, doc_id: str) -> int:
    rows = client.query(
        collection_name=collection_name,
        filter=_doc_filter(doc_id),
        output_fields=["id"],
        limit=16_384,
    )
    ids = [r["id"] for r in rows]
    if not ids:
        return 0
    client.delete(collection_name=collection_name, ids=ids)
    return len(ids)


DELETE_STRATEGIES: list[tuple[str, Callable[[Any, str, str], int]]] = [
    ("filter", _delete_by_filter),
    ("ids", _delete_by_ids),
]


def delete_document(collection_name: str, doc_id: str) -> dict[str, Any]:
    """
    Delete every chunk of doc_id from the collection.

    Returns {"deleted": bool, "method": str | None, "delete_count": int}; deleted is
    False when the collection does not exist. Raises CollaboratorError when every
    strategy fails.
    """
    client = get_milvus_client()
    if not client.has_collection(collection_name):
        return {"deleted": False, "method": None, "delete_count": 0}

    errors: list[str] = []
    for name, strategy in DELETE_STRATEGIES:
        try:
            count = strategy(client, collection_name, doc_id)
        except Exception as e:
            logger.warning("[vector_store:delete_document] strategy=%s failed: %s", name, e)
            errors.append(f"{name}: {e}")
            continue
        client.flush(collection_name=collection_name)
        logger.info(
            "[vector_store:delete_document] collection=%s doc_id=%s method=%s delete_count=%d",
            collection_name, doc_id, name, count,
        )
        return {"deleted": True, "method": name, "delete_count": count}
    raise CollaboratorError(f"Failed to delete document {doc_id}: {'; '.join(errors)}")
