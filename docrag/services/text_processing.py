"""Text sanitising, extraction and small-to-big chunking."""

import io
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pypdf import PdfReader

from docrag.core.config import settings
from docrag.core.exceptions import ExtractionError
from docrag.models.document import ChunkData, VectorMetadata

TEXT_TYPES = (
    "text/plain",
    "text/markdown",
    "text/csv",
    "text/html",
    "application/json",
)

PDF_TYPE = "application/pdf"

_HIGH_SURROGATES = range(0xD800, 0xDC00)
_LOW_SURROGATES = range(0xDC00, 0xE000)


def _is_control(code: int) -> bool:
    # Tab, LF and CR are kept.
    return code <= 0x08 or code in (0x0B, 0x0C) or 0x0E <= code <= 0x1F or code == 0x7F


def sanitize_text(text: str) -> str:
    """
    Remove lone surrogates and control characters.

    A high surrogate directly followed by a low surrogate is joined into the
    code point it encodes; any other surrogate is dropped.

    Args:
        text: Raw text.

    Returns:
        Text that encodes cleanly to UTF-8.
    """
    result = []
    i = 0
    length = len(text)
    while i < length:
        code = ord(text[i])
        if code in _HIGH_SURROGATES:
            if i + 1 < length and ord(text[i + 1]) in _LOW_SURROGATES:
                low = ord(text[i + 1])
                result.append(chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)))
                i += 2
                continue
            i += 1
            continue
        if code in _LOW_SURROGATES or _is_control(code):
            i += 1
            continue
        result.append(text[i])
        i += 1
    return "".join(result)


def create_small_to_big_chunks(
    text: str,
    parent_size: int = 800,
    child_size: int = 200,
    parent_overlap: int = 100,
    child_overlap: int = 50,
) -> List[ChunkData]:
    """
    Split text into parent windows and, inside each parent, child windows.

    Children are the retrieval unit and parents the context returned on a
    hit. ``chunk_index`` runs across the whole document so it can address
    vectors.

    Args:
        text: Full document text.
        parent_size: Parent window size in characters.
        child_size: Child window size in characters.
        parent_overlap: Overlap between consecutive parents.
        child_overlap: Overlap between consecutive children.

    Returns:
        Chunks in document order.
    """
    parent_step = max(1, parent_size - parent_overlap)
    child_step = max(1, child_size - child_overlap)

    chunks: List[ChunkData] = []
    chunk_index = 0
    parent_start = 0

    while parent_start < len(text):
        parent_text = sanitize_text(text[parent_start:parent_start + parent_size]).strip()
        parent_start += parent_step
        if not parent_text:
            continue

        parent_id = str(uuid.uuid4())

        if len(parent_text) <= child_size:
            chunks.append(
                ChunkData(
                    child_text=parent_text,
                    parent_text=parent_text,
                    chunk_index=chunk_index,
                    parent_id=parent_id,
                )
            )
            chunk_index += 1
            continue

        child_start = 0
        while child_start < len(parent_text):
            child_text = sanitize_text(
                parent_text[child_start:child_start + child_size]).strip()
            child_start += child_step
            if not child_text:
                continue
            chunks.append(
                ChunkData(
                    child_text=child_text,
                    parent_text=parent_text,
                    chunk_index=chunk_index,
                    parent_id=parent_id,
                )
            )
            chunk_index += 1

    return chunks


def chunk_document(text: str) -> List[ChunkData]:
    """Chunk text with the configured sizes."""
    return create_small_to_big_chunks(
        text,
        parent_size=settings.parent_chunk_size,
        child_size=settings.child_chunk_size,
        parent_overlap=settings.parent_chunk_overlap,
        child_overlap=settings.child_chunk_overlap,
    )


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Truncate text so its UTF-8 encoding fits in ``max_bytes`` without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def build_vector_metadata(
    document_id: str,
    file_name: str,
    owner_id: str,
    chunk_index: int,
    total_chunks: int,
    text: str,
    parent_id: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> VectorMetadata:
    """
    Build the payload stored with a vector.

    Args:
        document_id: Source document.
        file_name: Original file name.
        owner_id: Owner of the document.
        chunk_index: Global chunk index.
        total_chunks: Number of chunks in the document.
        text: Parent text returned as context on a hit.
        parent_id: Parent window id.
        max_bytes: Byte budget for ``text``.

    Returns:
        Vector metadata.
    """
    budget = max_bytes if max_bytes is not None else settings.metadata_text_max_bytes
    return VectorMetadata(
        document_id=document_id,
        file_name=file_name,
        owner_id=owner_id,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        text=truncate_utf8(sanitize_text(text), budget),
        parent_id=parent_id,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def extract_text(data: bytes, content_type: str) -> str:
    """
    Extract sanitised text from an uploaded object.

    Args:
        data: Raw object bytes.
        content_type: MIME type recorded at upload time.

    Returns:
        Sanitised text.

    Raises:
        ExtractionError: If the content type is unsupported or parsing fails.
    """
    if content_type == PDF_TYPE:
        try:
            reader = PdfReader(io.BytesIO(data))
            text = "\n".join(page.extract_text() or "" for page in reader.pages)
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF: {str(e)}") from e
    elif content_type in TEXT_TYPES:
        text = data.decode("utf-8", errors="replace")
    else:
        raise ExtractionError(f"Unsupported content type: {content_type}")

    return sanitize_text(text)
