"""Unit tests for opaque pagination cursors and session naming."""

import base64

import pytest

from docrag.services.chat_history import session_name_from_query
from docrag.services.database import decode_cursor, encode_cursor


class TestCursor:

    @pytest.mark.parametrize(
        "key",
        [
            {"createdAt": "2024-05-01T10:00:00+00:00", "historyId": "h-1"},
            {"sessionId": "セッション", "nested": {"list": [1, 2, {"x": None}]}},
        ],
    )
    def test_round_trip(self, key) -> None:
        assert decode_cursor(encode_cursor(key)) == key

    def test_cursor_is_base64(self) -> None:
        cursor = encode_cursor({"a": 1})
        assert base64.b64decode(cursor) == b'{"a":1}'

    @pytest.mark.parametrize("cursor", [None, "", "!!!not-base64!!!", base64.b64encode(b"{oops").decode()])
    def test_malformed_cursor_restarts_from_first_page(self, cursor) -> None:
        assert decode_cursor(cursor) is None


class TestSessionName:

    def test_short_query_is_used_as_is(self) -> None:
        assert session_name_from_query("hello") == "hello"

    def test_long_query_is_truncated_with_ellipsis(self) -> None:
        assert session_name_from_query("a" * 25, max_chars=20) == "a" * 20 + "..."
