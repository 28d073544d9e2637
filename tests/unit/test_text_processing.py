"""Unit tests for sanitising, chunking, metadata building and text extraction."""

import pytest

from docrag.core.exceptions import ExtractionError
from docrag.services.text_processing import (
    build_vector_metadata,
    create_small_to_big_chunks,
    extract_text,
    sanitize_text,
    truncate_utf8,
)


class TestSanitizeText:
    """Lone surrogates and control characters are removed."""

    def test_keeps_tab_newline_and_carriage_return(self) -> None:
        assert sanitize_text("a\tb\nc\rd") == "a\tb\nc\rd"

    def test_drops_control_characters(self) -> None:
        assert sanitize_text("a\x00b\x07c\x1fd\x7fe") == "abcde"

    def test_drops_lone_surrogates(self) -> None:
        assert sanitize_text("a\ud800b\udc00c") == "abc"

    def test_joins_valid_surrogate_pair(self) -> None:
        assert sanitize_text("x\ud83d\ude00y") == "x\U0001F600y"

    def test_result_encodes_to_utf8(self) -> None:
        sanitize_text("\ud800bad\x01").encode("utf-8")


class TestSmallToBigChunks:
    """Parent windows carry child windows; indices are global."""

    def test_empty_text_has_no_chunks(self) -> None:
        assert create_small_to_big_chunks("") == []

    def test_whitespace_only_text_has_no_chunks(self) -> None:
        assert create_small_to_big_chunks("   \n\n  ") == []

    def test_short_parent_is_its_own_child(self) -> None:
        chunks = create_small_to_big_chunks("short text", 800, 200, 100, 50)
        assert len(chunks) == 1
        assert chunks[0].child_text == chunks[0].parent_text == "short text"
        assert chunks[0].chunk_index == 0

    def test_indices_are_contiguous_across_parents(self, sample_text: str) -> None:
        chunks = create_small_to_big_chunks(sample_text, 400, 100, 50, 20)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert len({c.parent_id for c in chunks}) > 1

    def test_children_are_inside_their_parent(self, sample_text: str) -> None:
        chunks = create_small_to_big_chunks(sample_text, 400, 100, 50, 20)
        for chunk in chunks:
            assert chunk.child_text in chunk.parent_text
            assert len(chunk.child_text) <= 100
            assert len(chunk.parent_text) <= 400

    def test_chunks_of_one_parent_share_parent_id(self) -> None:
        chunks = create_small_to_big_chunks("abcdefghij" * 30, 300, 100, 0, 0)
        assert len(chunks) == 3
        assert len({c.parent_id for c in chunks}) == 1
        assert [c.child_text for c in chunks] == ["abcdefghij" * 10] * 3

    def test_overlap_not_smaller_than_size_still_advances(self) -> None:
        chunks = create_small_to_big_chunks("x" * 20, 5, 5, 5, 5)
        assert len(chunks) == 20
        assert all(c.child_text == "xxxxx" or len(c.child_text) < 5 for c in chunks)


class TestTruncateUtf8:
    """Truncation never splits a multi-byte character."""

    def test_short_text_unchanged(self) -> None:
        assert truncate_utf8("hello", 10) == "hello"

    def test_multibyte_boundary(self) -> None:
        text = "é" * 10
        truncated = truncate_utf8(text, 5)
        assert truncated == "éé"
        assert len(truncated.encode("utf-8")) <= 5


class TestBuildVectorMetadata:
    """Parent text is stored within the byte budget."""

    def test_text_is_truncated_to_budget(self) -> None:
        metadata = build_vector_metadata(
            document_id="doc-1",
            file_name="a.txt",
            owner_id="owner-1",
            chunk_index=3,
            total_chunks=7,
            text="日本語" * 100,
            parent_id="p-1",
            max_bytes=30,
        )
        assert len(metadata.text.encode("utf-8")) <= 30
        assert metadata.chunk_index == 3
        assert metadata.total_chunks == 7
        assert metadata.parent_id == "p-1"


class TestExtractText:
    """Text types are decoded; unsupported types fail."""

    def test_plain_text(self) -> None:
        assert extract_text("héllo\x00".encode("utf-8"), "text/plain") == "héllo"

    def test_invalid_utf8_is_replaced(self) -> None:
        assert extract_text(b"ab\xffcd", "text/markdown") == "ab\ufffdcd"

    def test_unsupported_type(self) -> None:
        with pytest.raises(ExtractionError):
            extract_text(b"\x89PNG", "image/png")

    def test_broken_pdf(self) -> None:
        with pytest.raises(ExtractionError):
            extract_text(b"not a pdf", "application/pdf")
