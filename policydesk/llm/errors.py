# policydesk/llm/errors.py

"""
Inference failure taxonomy.

Every exception the transport surfaces is mapped onto one of five kinds.
Each kind has one fixed, user-safe message. Raw exception text is logged
by the caller and never returned to end users.
"""

import asyncio
import re
from enum import Enum
from typing import List, Optional, Tuple

import httpx
import openai


class InferenceErrorKind(str, Enum):
    NETWORK = "network_error"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth_error"
    MODEL = "model_error"
    UNKNOWN = "unknown_error"


SAFE_MESSAGES = {
    InferenceErrorKind.NETWORK: (
        "The AI service could not be reached. Please try again later."
    ),
    InferenceErrorKind.RATE_LIMIT: (
        "The AI service has reached its usage limit. "
        "Please try again later or contact your administrator."
    ),
    InferenceErrorKind.AUTH: (
        "The AI service is not properly configured. Please contact your administrator."
    ),
    InferenceErrorKind.MODEL: (
        "The AI model is currently unavailable. Please try again later."
    ),
    InferenceErrorKind.UNKNOWN: (
        "An error occurred while processing your request. Please try again later."
    ),
}


class TransportError(Exception):
    """Raised by transports for failures that do not come from a client library."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InferenceError(Exception):
    """
    Every model in the chain failed.

    kind is the classification of the final attempt; attempts holds
    (model, kind) for each attempt in order.
    """

    def __init__(
        self,
        kind: InferenceErrorKind,
        attempts: List[Tuple[str, InferenceErrorKind]],
    ):
        self.kind = kind
        self.attempts = attempts
        super().__init__(f"All models failed ({kind.value})")

    @property
    def safe_message(self) -> str:
        return SAFE_MESSAGES[self.kind]


# ============================================================
# CLASSIFICATION
# ============================================================

_NETWORK_TYPES = (
    openai.APIConnectionError,  # includes APITimeoutError
    httpx.TransportError,
    ConnectionError,
    asyncio.TimeoutError,
    TimeoutError,
)

_NETWORK_PATTERN = re.compile(
    r"econnrefused|enotfound|econnreset|etimedout|getaddrinfo|"
    r"connection (refused|reset|error|aborted)|connect call failed|"
    r"name or service not known|network|timed out",
    re.IGNORECASE,
)
_RATE_PATTERN = re.compile(r"\brate.?limit|\bquota\b|too many requests", re.IGNORECASE)
_AUTH_PATTERN = re.compile(
    r"\bauth(entication|orization)?\b|\bapi.?key\b|unauthori[sz]ed|forbidden|"
    r"invalid token|access token",
    re.IGNORECASE,
)
_MODEL_PATTERN = re.compile(r"\bmodel", re.IGNORECASE)


def _status_code(exc: BaseException) -> Optional[int]:

    status = getattr(exc, "status_code", None)

    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)

    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> InferenceErrorKind:
    """Map a transport exception onto the inference error taxonomy."""

    message = str(exc)
    status = _status_code(exc)

    if isinstance(exc, _NETWORK_TYPES) or (status is None and _NETWORK_PATTERN.search(message)):
        return InferenceErrorKind.NETWORK

    if status == 429 or _RATE_PATTERN.search(message):
        return InferenceErrorKind.RATE_LIMIT

    if status in (401, 403) or _AUTH_PATTERN.search(message):
        return InferenceErrorKind.AUTH

    if _MODEL_PATTERN.search(message):
        return InferenceErrorKind.MODEL

    return InferenceErrorKind.UNKNOWN
