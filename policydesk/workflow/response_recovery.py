# policydesk/workflow/response_recovery.py

"""
Structured response recovery.

Models are told to answer with a bare JSON object but frequently wrap it
in prose. The helpers here pull the first decodable object out of the
raw text and read fields with defaults.

Nothing in this module raises for any string input. A response that
cannot be parsed produces a degraded result instead.
"""

import json
import logging
import math
from typing import Any, List, Optional

from policydesk import config
from policydesk.models import AnswerResult, DocumentAnalysis
from policydesk.prompts.system_prompts import (
    DEGRADED_KEY_POINTS,
    DEGRADED_SUMMARY,
    MISSING_SUMMARY,
    POLICY_NOT_FOUND_ANSWER,
)

logger = logging.getLogger(__name__)


# ============================================================
# JSON SPAN SCANNER
# ============================================================

def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace that closes text[start], or None."""

    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):

        ch = text[i]

        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1

    return None


def find_json_object(text: str) -> Optional[dict]:
    """
    Return the first balanced {...} span in text that decodes to a JSON object.

    Spans that are balanced but fail to decode are skipped and scanning
    resumes at the next opening brace.
    """

    if not isinstance(text, str):
        return None

    start = text.find("{")

    while start != -1:

        end = _balanced_end(text, start)

        if end is not None:

            try:
                value = json.loads(text[start:end])
            except (ValueError, RecursionError):
                value = None

            if isinstance(value, dict):
                return value

        start = text.find("{", start + 1)

    return None


# ============================================================
# FIELD READERS
# ============================================================

def _read_confidence(value: Any, default: float = config.DEFAULT_CONFIDENCE) -> float:

    if isinstance(value, bool):
        return default

    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default

    if math.isnan(number):
        return default

    return min(1.0, max(0.0, number))


def _read_policy_id(value: Any) -> Optional[int]:

    if isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float) and value.is_integer():
        return int(value)

    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value.strip())
        except ValueError:
            return None

    return None


def _read_text(value: Any, default: str) -> str:

    if value is None:
        return default

    text = value if isinstance(value, str) else str(value)
    text = text.strip()

    return text or default


def _read_key_points(value: Any) -> List[str]:

    if not isinstance(value, list):
        return []

    points = []

    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            points.append(text)

    return points


# ============================================================
# PUBLIC API
# ============================================================

def recover_answer(raw_text: str, not_found: str = POLICY_NOT_FOUND_ANSWER) -> AnswerResult:
    """
    Read {answer, confidence, policyId} out of a model response.

    No decodable object: the raw text becomes the answer with confidence 0.
    """

    data = find_json_object(raw_text)

    if data is None:

        raw = raw_text.strip() if isinstance(raw_text, str) else ""

        logger.warning(
            "response_parse_degraded",
            extra={"response_length": len(raw), "kind": "answer"},
        )

        return AnswerResult(answer=raw or not_found, confidence=0.0)

    return AnswerResult(
        answer=_read_text(data.get("answer"), not_found),
        confidence=_read_confidence(data.get("confidence")),
        policy_id=_read_policy_id(data.get("policyId")),
    )


def recover_analysis(raw_text: str) -> DocumentAnalysis:
    """Read {summary, keyPoints} out of a model response."""

    data = find_json_object(raw_text)

    if data is None:

        logger.warning(
            "response_parse_degraded",
            extra={
                "response_length": len(raw_text) if isinstance(raw_text, str) else 0,
                "kind": "analysis",
            },
        )

        return DocumentAnalysis(
            summary=DEGRADED_SUMMARY,
            key_points=list(DEGRADED_KEY_POINTS),
            degraded=True,
        )

    return DocumentAnalysis(
        summary=_read_text(data.get("summary"), MISSING_SUMMARY),
        key_points=_read_key_points(data.get("keyPoints")),
    )
