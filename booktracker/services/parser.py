"""
Turns raw model output into typed candidate recommendations.

Parsing is strict first, lenient second:

  1. Strict: strip markdown fences and decode the outermost JSON array
     (or an object wrapping one, e.g. ``{"recommendations": [...]}``).
  2. Lenient: scan the text for standalone JSON objects, which covers
     JSON-lines output and objects scattered through prose.

Entries missing a mandatory field are dropped. If nothing survives, the
whole response is rejected with MalformedResponseError.
"""

import json
import logging
import math
import re
from typing import Any, Optional

from booktracker.domain.entities import CandidateRecommendation
from booktracker.domain.errors import MalformedResponseError

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 5.0

_FENCE = re.compile(r"```[a-zA-Z]*")
_NON_ALNUM = re.compile(r"[^a-z0-9]")

# normalised key -> canonical field
_KEY_ALIASES = {
    "title": "title",
    "booktitle": "title",
    "name": "title",
    "author": "author",
    "authors": "author",
    "bookauthor": "author",
    "genre": "genre",
    "genres": "genre",
    "reason": "reason",
    "reasoning": "reason",
    "why": "reason",
    "confidencescore": "confidence",
    "confidence": "confidence",
    "score": "confidence",
}

_WRAPPER_KEYS = ("recommendations", "books", "items", "results")

_decoder = json.JSONDecoder()


def _normalise_key(key: str) -> str:
    return _NON_ALNUM.sub("", key.lower())


def _text(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, str) and v.strip()), None)
    if not isinstance(value, str):
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def _confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if not match:
            return None
        value = match.group(0)
    try:
        number = float(value)
    except OverflowError:
        # integers too large for a float
        number = math.inf if value > 0 else -math.inf
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, number))


def to_candidate(entry: Any) -> Optional[CandidateRecommendation]:
    """Build a candidate from one decoded object, or None if it is unusable."""
    if not isinstance(entry, dict):
        return None

    fields: dict[str, Any] = {}
    for key, value in entry.items():
        canonical = _KEY_ALIASES.get(_normalise_key(str(key)))
        # first spelling wins when a model emits both "title" and "Title"
        if canonical and canonical not in fields:
            fields[canonical] = value

    title = _text(fields.get("title"))
    author = _text(fields.get("author"))
    reason = _text(fields.get("reason"))
    confidence = _confidence(fields.get("confidence"))
    if not title or not author or not reason or confidence is None:
        return None

    return CandidateRecommendation(
        title=title,
        author=author,
        reason=reason,
        confidence_score=confidence,
        genre=_text(fields.get("genre")),
    )


def _unwrap(payload: Any) -> Optional[list[Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key, value in payload.items():
            if _normalise_key(str(key)) in _WRAPPER_KEYS and isinstance(value, list):
                return value
    return None


def _strict_entries(text: str) -> Optional[list[Any]]:
    body = _FENCE.sub("", text).strip()
    for opener, closer in (("[", "]"), ("{", "}")):
        start = body.find(opener)
        end = body.rfind(closer)
        if start < 0 or end <= start:
            continue
        try:
            entries = _unwrap(json.loads(body[start : end + 1]))
        except (ValueError, RecursionError):
            # JSONDecodeError, oversized integer literals, absurd nesting
            continue
        if entries is not None:
            return entries
    return None


def _lenient_entries(text: str) -> list[Any]:
    entries: list[Any] = []
    index = text.find("{")
    while index >= 0:
        try:
            obj, end = _decoder.raw_decode(text, index)
        except (ValueError, RecursionError):
            index = text.find("{", index + 1)
            continue
        wrapped = _unwrap(obj)
        entries.extend(wrapped if wrapped is not None else [obj])
        index = text.find("{", end)
    return entries


def parse_recommendations(raw_text: str) -> list[CandidateRecommendation]:
    """
    Parse the model's text into candidates in model output order.

    Raises MalformedResponseError when no well-formed entry can be extracted.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponseError("empty completion")

    entries = _strict_entries(raw_text) or []
    candidates = [c for c in map(to_candidate, entries) if c is not None]

    if not candidates:
        logger.info("Strict parse found no usable entries; trying lenient scan")
        entries = _lenient_entries(raw_text)
        candidates = [c for c in map(to_candidate, entries) if c is not None]

    if not candidates:
        logger.warning("Could not extract recommendations from %d chars of output", len(raw_text))
        raise MalformedResponseError("no well-formed recommendation entries")

    dropped = len(entries) - len(candidates)
    if dropped > 0:
        logger.info("Dropped %d malformed recommendation entries", dropped)
    return candidates
