"""
Tests for forum/codec.py - route tokens and reaction keys

Run with: pytest tests/test_codec.py -v
"""

import pytest

from forum.codec import build_reaction_key, decode_route_token, encode_route_token
from forum.errors import DecodeError


class TestRouteTokens:
    """Encoding / decoding of URIs into path-safe tokens"""

    @pytest.mark.parametrize(
        "uri",
        [
            "at://did:plc:abc123/app.echosky.board.thread/3kxyz",
            "at://did:web:example.com/app.echosky.board.post/3l2?x=1&y=2",
            "a",
            "ab",
            "abc",
            "",
            "at://did:plc:日本語/app.echosky.board.thread/スレッド",
        ],
    )
    def test_round_trip(self, uri):
        assert decode_route_token(encode_route_token(uri)) == uri

    def test_padding_is_stripped(self):
        assert encode_route_token("a") == "YQ"
        assert encode_route_token("ab") == "YWI"
        assert encode_route_token("abc") == "YWJj"

    def test_url_unsafe_characters_are_replaced(self):
        """'/' and '+' in standard base64 become '_' and '-'"""
        assert encode_route_token("???") == "Pz8_"
        assert encode_route_token(">>>") == "Pj4-"

    def test_token_is_path_safe(self):
        token = encode_route_token("at://did:plc:abc/app.echosky.board.thread/3k?~>>>???")
        assert "/" not in token
        assert "+" not in token
        assert "=" not in token

    def test_decode_rejects_foreign_characters(self):
        with pytest.raises(DecodeError):
            decode_route_token("abc!")

    def test_decode_rejects_standard_alphabet(self):
        with pytest.raises(DecodeError):
            decode_route_token("Pz8/")

    @pytest.mark.parametrize("token", ["YWI\n", "YWJj\n", "\nYWJj"])
    def test_decode_rejects_surrounding_newlines(self, token):
        with pytest.raises(DecodeError):
            decode_route_token(token)

    def test_decode_rejects_impossible_length(self):
        with pytest.raises(DecodeError):
            decode_route_token("YWJjZ")

    def test_decode_rejects_non_utf8_bytes(self):
        # b"\xff" -> "/w==" -> "_w"
        with pytest.raises(DecodeError):
            decode_route_token("_w")


class TestReactionKey:
    """Deterministic composite keys for reactions"""

    SUBJECT = "at://did:plc:alice/app.echosky.board.thread/3kabc"

    def test_same_inputs_same_key(self):
        first = build_reaction_key(self.SUBJECT, "like", "did:plc:me")
        for _ in range(5):
            assert build_reaction_key(self.SUBJECT, "like", "did:plc:me") == first

    def test_key_is_base64url_of_joined_triple(self):
        key = build_reaction_key(self.SUBJECT, "like", "did:plc:me")
        assert decode_route_token(key) == f"{self.SUBJECT}|like|did:plc:me"

    @pytest.mark.parametrize(
        "other",
        [
            ("at://did:plc:alice/app.echosky.board.thread/3kabd", "like", "did:plc:me"),
            (SUBJECT, "star", "did:plc:me"),
            (SUBJECT, "like", "did:plc:you"),
        ],
    )
    def test_any_changed_input_changes_key(self, other):
        assert build_reaction_key(*other) != build_reaction_key(self.SUBJECT, "like", "did:plc:me")

    def test_key_has_no_padding_or_unsafe_characters(self):
        key = build_reaction_key(self.SUBJECT, "laugh", "did:plc:me")
        assert all(c.isalnum() or c in "-_" for c in key)
