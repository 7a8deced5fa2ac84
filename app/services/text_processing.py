"""
Text processing for RAG: cleaning and chunking.

Chunking is recursive: split on paragraphs first, then lines, then words, then
characters, only going finer when a piece is still larger than chunk_size.
Neighbouring chunks share up to `overlap` characters.
"""

import re
import unicodedata

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")


def clean_text(text: str) -> str:
    """
    Normalize extracted text: NFKC, trimmed lines, no repeated lines, at most one
    blank line between paragraphs.
    """
    if not text or not text.strip():
        return ""
    text = unicodedata.normalize("NFKC", text)
    out: list[str] = []
    for line in (ln.strip() for ln in text.splitlines()):
        if out and out[-1] == line:
            continue
        out.append(line)
    return re.sub(r"\n{3,}", "\n\n", "\n".join(out)).strip()


def _split_pieces(text: str, separator: str) -> list[str]:
    if separator == "":
        return list(text)
    return [p for p in text.split(separator) if p]


def _merge(pieces: list[str], separator: str, chunk_size: int, overlap: int) -> list[str]:
    """Greedily join pieces up to chunk_size, carrying a tail of up to `overlap` chars forward."""
    chunks: list[str] = []
    current: list[str] = []
    total = 0
    sep_len = len(separator)
    for piece in pieces:
        extra = len(piece) + (sep_len if current else 0)
        if current and total + extra > chunk_size:
            chunks.append(separator.join(current).strip())
            while current and (total > overlap or total + extra > chunk_size):
                total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                current.pop(0)
            extra = len(piece) + (sep_len if current else 0)
        current.append(piece)
        total += extra
    if current:
        chunks.append(separator.join(current).strip())
    return [c for c in chunks if c]


def _split(text: str, separators: tuple[str, ...], chunk_size: int, overlap: int) -> list[str]:
    separator = separators[-1]
    finer: tuple[str, ...] = ()
    for i, sep in enumerate(separators):
        if sep == "" or sep in text:
            separator, finer = sep, separators[i + 1:]
            break

    chunks: list[str] = []
    small: list[str] = []
    for piece in _split_pieces(text, separator):
        if len(piece) <= chunk_size:
            small.append(piece)
            continue
        if small:
            chunks.extend(_merge(small, separator, chunk_size, overlap))
            small = []
        if finer:
            chunks.extend(_split(piece, finer, chunk_size, overlap))
        else:
            chunks.append(piece)
    if small:
        chunks.extend(_merge(small, separator, chunk_size, overlap))
    return chunks


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    overlap: int = 200,
    separators: tuple[str, ...] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Split text into chunks of at most chunk_size characters with overlap between neighbours."""
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    if not text or not text.strip():
        return []
    text = text.strip()
    if len(text) <= chunk_size:
        return [text]
    return _split(text, separators, chunk_size, overlap)
