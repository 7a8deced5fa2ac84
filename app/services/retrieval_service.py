"""
Retrieval: semantic search over a user's collection.

Responsibility: Embed the query, search Milvus, return fragments in the order the
vector store ranked them (no rerank, no dedup).
"""

import logging
from typing import Any

from app.core.config import RETRIEVAL_TOP_K
from app.services.vector_store import embed_texts, search

logger = logging.getLogger(__name__)


def _to_fragment(hit: dict[str, Any]) -> dict[str, Any]:
    # Milvus returns dict with "distance", "id", and "entity" (output_fields)
    entity = hit.get("entity") or hit
    metadata = {k: v for k, v in entity.items() if k not in ("text", "vector")}
    metadata.setdefault("id", hit.get("id"))
    metadata["score"] = float(hit.get("distance", hit.get("score", 0.0)))
    return {"content": entity.get("text", ""), "metadata": metadata}


def retrieve_fragments(query: str, collection_name: str, k: int = RETRIEVAL_TOP_K) -> list[dict]:
    """
    Return up to k fragments {content, metadata} most similar to query.
    A missing or empty collection yields [].
    """
    logger.info("[retrieval:retrieve_fragments] IN  query=%r collection=%s k=%d", query, collection_name, k)
    query_vec = embed_texts([query.strip()])
    if not query_vec:
        logger.warning("[retrieval:retrieve_fragments] embed_texts returned empty")
        return []

    hits = search(collection_name, query_vec[0], limit=k)
    fragments = [_to_fragment(h) for h in hits]
    logger.info(
        "[retrieval:retrieve_fragments] OUT fragments=%d sources=%s scores=%s",
        len(fragments),
        [f["metadata"].get("source") for f in fragments],
        [round(f["metadata"]["score"], 4) for f in fragments],
    )
    return fragments
