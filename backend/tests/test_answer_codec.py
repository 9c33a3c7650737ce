from __future__ import annotations
import hashlib
import pytest
from pydantic import ValidationError
from arena.errors import InvalidInput
from arena.schemas.challenge import NormalizationRules
from arena.services.answer_codec import normalize, validate_answer_input, hash_answer, hash_raw_answer, verify


@pytest.mark.parametrize("raw,rules,expected", [
    ("  Flag{ABC}  ", {}, "flag{abc}"),
    ("  Flag{ABC}  ", {"trim": False, "lowercase": False}, "  Flag{ABC}  "),
    ("192 .168. 0.1", {"remove_spaces": True}, "192.168.0.1"),
    ("192.168.0.1", {"remove_dots": True}, "19216801"),
    ("A-B-C", {"remove_hyphens": True}, "abc"),
    ("evil.com/path?x=1", {"remove_special_chars": True}, "evil.compathx1"),
    ("ÉCOLE", {}, "école"),
])
def test_normalize_rules(raw, rules, expected):
    assert normalize(raw, rules) == expected


def test_normalization_is_idempotent():
    rules = {"remove_spaces": True, "remove_special_chars": True}
    once = normalize(" Sub.Domain - Example .COM ", rules)
    assert normalize(once, rules) == once


def test_unknown_rule_rejected():
    with pytest.raises(ValidationError):
        NormalizationRules.model_validate({"strip_emoji": True})


@pytest.mark.parametrize("raw", ["", "   ", "x" * 501, None, 42])
def test_invalid_answers_rejected(raw):
    with pytest.raises(InvalidInput):
        validate_answer_input(raw)


def test_max_length_answer_accepted():
    assert validate_answer_input("a" * 500) == "a" * 500


def test_hash_is_sha256_hex_of_normalized_text():
    assert hash_answer("flag{abc}") == hashlib.sha256(b"flag{abc}").hexdigest()
    assert hash_raw_answer("  FLAG{abc} ") == hash_answer("flag{abc}")


def test_verify_matches_after_normalization():
    stored = hash_raw_answer("flag{abc}")
    assert verify("  FLAG{ABC}", stored)
    assert not verify("flag{abd}", stored)


def test_verify_accepts_uppercase_stored_digest():
    assert verify("flag{abc}", hash_raw_answer("flag{abc}").upper())


@pytest.mark.parametrize("stored", ["", "not-a-digest", "ab" * 31, None])
def test_verify_never_matches_malformed_digest(stored):
    assert verify("flag{abc}", stored) is False
