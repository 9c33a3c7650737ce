from __future__ import annotations
import hashlib
import hmac
import re
from typing import Any, Mapping

from arena.errors import InvalidInput
from arena.schemas.challenge import NormalizationRules

MAX_ANSWER_LENGTH = 500

_WHITESPACE = re.compile(r"\s+")
_SPECIAL = re.compile(r"[^a-z0-9.\-]")
_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def coerce_rules(rules: NormalizationRules | Mapping[str, Any] | None) -> NormalizationRules:
    if rules is None:
        return NormalizationRules()
    if isinstance(rules, NormalizationRules):
        return rules
    return NormalizationRules.model_validate(dict(rules))


def normalize(raw: str, rules: NormalizationRules | Mapping[str, Any] | None = None) -> str:
    if not isinstance(raw, str):
        raise InvalidInput("Answer must be a string.")
    r = coerce_rules(rules)
    answer = raw
    if r.trim:
        answer = answer.strip()
    if r.lowercase:
        answer = answer.casefold()
    if r.remove_spaces:
        answer = _WHITESPACE.sub("", answer)
    if r.remove_dots:
        answer = answer.replace(".", "")
    if r.remove_hyphens:
        answer = answer.replace("-", "")
    if r.remove_special_chars:
        answer = _SPECIAL.sub("", answer)
    return answer


def validate_answer_input(raw: Any, rules: NormalizationRules | Mapping[str, Any] | None = None) -> str:
    """Reject bad input before any state is touched. Returns the normalized text."""
    if not isinstance(raw, str) or not raw:
        raise InvalidInput("Answer is required.")
    if len(raw) > MAX_ANSWER_LENGTH:
        raise InvalidInput("Answer exceeds maximum length.")
    normalized = normalize(raw, rules)
    if not normalized:
        raise InvalidInput("Answer cannot be empty after normalization.")
    return normalized


def hash_answer(normalized: str) -> str:
    """SHA-256 hex digest of already-normalized text."""
    if not isinstance(normalized, str) or not normalized:
        raise InvalidInput("Cannot hash an empty answer.")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def hash_raw_answer(raw: str, rules: NormalizationRules | Mapping[str, Any] | None = None) -> str:
    """Publishing side: normalize with the challenge rules, then hash."""
    return hash_answer(validate_answer_input(raw, rules))


def verify(raw: str, stored_digest: str, rules: NormalizationRules | Mapping[str, Any] | None = None) -> bool:
    """
    Constant-time comparison of the submission digest against the stored one.
    Raises InvalidInput for unusable submissions; a malformed stored digest never matches.
    """
    submitted = hash_answer(validate_answer_input(raw, rules))
    if not isinstance(stored_digest, str) or not _HEX_DIGEST.match(stored_digest.lower()):
        return False
    return hmac.compare_digest(submitted.encode("ascii"), stored_digest.lower().encode("ascii"))
