"""
LLM calls via OpenAI: chat completions for answers and vision for image text extraction.

Provider failures are raised as CollaboratorError with a user-facing message;
nothing here retries.
"""

import base64
import logging

import openai
from openai import OpenAI

from app.core.config import (
    LLM_API_TIMEOUT,
    OPENAI_API_KEY,
    OPENAI_LLM_MODEL,
    OPENAI_VISION_MODEL,
    VISION_MAX_TOKENS,
)
from app.core.errors import CollaboratorError

logger = logging.getLogger(__name__)

IMAGE_EXTRACTION_PROMPT = (
    "Extract all text and data from this document image. Provide a comprehensive "
    "extraction that includes:\n\n"
    "1. Company/Business Information (names, addresses, contact details)\n"
    "2. Document details (numbers, dates, due dates)\n"
    "3. Customer/Client Information\n"
    "4. Line Items (products/services, quantities, rates, amounts)\n"
    "5. Totals (subtotal, tax, total amount)\n"
    "6. Payment Information (if any)\n"
    "7. Any other relevant text or data\n\n"
    "Format the extracted text in a clear, structured way that preserves the document's "
    "information hierarchy. If this is not an invoice, extract all visible text "
    "maintaining its context and structure."
)


def _client() -> OpenAI:
    if not OPENAI_API_KEY:
        raise CollaboratorError("OPENAI_API_KEY must be set in .env")
    return OpenAI(api_key=OPENAI_API_KEY, timeout=LLM_API_TIMEOUT)


def _provider_error(e: openai.OpenAIError, action: str) -> CollaboratorError:
    """Translate an OpenAI SDK error into a message a user can act on."""
    code = getattr(e, "code", None)
    if code == "insufficient_quota":
        return CollaboratorError("OpenAI API quota exceeded. Please check your billing.")
    if code == "invalid_api_key" or isinstance(e, openai.AuthenticationError):
        return CollaboratorError("Invalid OpenAI API key. Please check your configuration.")
    if isinstance(e, openai.RateLimitError):
        return CollaboratorError("OpenAI API rate limit exceeded. Please try again later.")
    return CollaboratorError(f"Failed to {action}: {e}")


def complete_chat(messages: list[dict[str, str]]) -> str:
    """Send the assembled messages to the chat model and return the answer text."""
    logger.info("[llm:complete_chat] IN  messages=%d model=%s", len(messages), OPENAI_LLM_MODEL)
    client = _client()
    try:
        response = client.chat.completions.create(
            model=OPENAI_LLM_MODEL,
            messages=messages,
        )
    except openai.OpenAIError as e:
        logger.warning("[llm:complete_chat] provider error: %s", e)
        raise _provider_error(e, "generate an answer") from e
    msg = response.choices[0].message if response.choices else None
    out = (msg.content or "").strip() if msg else ""
    logger.info("[llm:complete_chat] OUT response_len=%d", len(out))
    return out


def extract_text_from_image(raw: bytes, mime_type: str) -> str:
    """Read the text out of an image with the vision model."""
    logger.info("[llm:extract_text_from_image] IN  bytes=%d mime_type=%s", len(raw), mime_type)
    client = _client()
    data_url = f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"
    try:
        response = client.chat.completions.create(
            model=OPENAI_VISION_MODEL,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": IMAGE_EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
            max_tokens=VISION_MAX_TOKENS,
        )
    except openai.OpenAIError as e:
        logger.warning("[llm:extract_text_from_image] provider error: %s", e)
        raise _provider_error(e, "extract text from image") from e
    msg = response.choices[0].message if response.choices else None
    out = (msg.content or "") if msg else ""
    logger.info("[llm:extract_text_from_image] OUT text_len=%d", len(out))
    return out
