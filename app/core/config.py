"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# Rate limiting (fixed window per user id)
RATE_LIMIT_WINDOW_SECONDS: int = _env_int("RATE_LIMIT_WINDOW_SECONDS", 60 * 60)
RATE_LIMIT_MAX_REQUESTS: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 20)
RATE_LIMIT_CAPACITY: int = _env_int("RATE_LIMIT_CAPACITY", 5000)

# Chat: history turns forwarded to the model, fragments retrieved per query
HISTORY_LIMIT: int = 10
RETRIEVAL_TOP_K: int = 3

# Per-user vector collections are named "<user_id>_collection"
COLLECTION_SUFFIX: str = "_collection"

# Upload limits
MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
TEXT_EXTENSIONS: frozenset[str] = frozenset({".txt", ".md"})
PDF_EXTENSIONS: frozenset[str] = frozenset({".pdf"})
IMAGE_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp"})
ALLOWED_EXTENSIONS: frozenset[str] = TEXT_EXTENSIONS | PDF_EXTENSIONS | IMAGE_EXTENSIONS

# Chunking defaults (tuning these affects retrieval quality)
CHUNK_SIZE: int = 1000
CHUNK_OVERLAP: int = 200

# Web ingestion crawl limits
WEB_CRAWL_MAX_DEPTH: int = 3
WEB_CRAWL_MAX_PAGES: int = 50
WEB_TEXT_WRAP: int = 130

# Milvus Cloud (from env)
MILVUS_URI: str = os.getenv("MILVUS_URI", "").strip()
MILVUS_TOKEN: str = os.getenv("MILVUS_TOKEN", "").strip()

# Hugging Face (embeddings)
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()

# Vector collection: default embedding dim (e.g. sentence-transformers/all-MiniLM-L6-v2 = 384)
VECTOR_DIM: int = 384
HF_EMBED_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
EMBED_BATCH_SIZE: int = 32

# API timeouts (seconds)
EMBED_API_TIMEOUT: float = 30.0
LLM_API_TIMEOUT: float = 60.0
WEB_FETCH_TIMEOUT: float = 15.0

# OpenAI (chat completions and image text extraction)
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)
OPENAI_VISION_MODEL: str = (
    os.getenv("OPENAI_VISION_MODEL", "gpt-4o").strip() or "gpt-4o"
)
VISION_MAX_TOKENS: int = 4096
