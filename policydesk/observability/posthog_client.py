# policydesk/observability/posthog_client.py

"""
PostHog product-event tracking.

Disabled when no API key is configured. Tracking failures are logged and
never reach the caller.
"""

import logging
from typing import Any, Dict, Optional

from posthog import Posthog

from policydesk import config

logger = logging.getLogger(__name__)


class PostHogClient:

    def __init__(
        self,
        api_key: str = config.POSTHOG_API_KEY,
        host: str = config.POSTHOG_HOST,
    ):

        self._enabled = False
        self._client: Optional[Posthog] = None

        if not api_key:
            logger.info("PostHog disabled: POSTHOG_API_KEY not set")
            return

        self._client = Posthog(
            project_api_key=api_key,
            host=host,
            timeout=5,
            flush_interval=1,
        )

        self._enabled = True

        logger.info("PostHog client initialized", extra={"host": host})

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={"event": event, "error": str(e)},
            )

    # ==========================================================
    # DOCUMENTS
    # ==========================================================

    def track_document_upload(
        self,
        distinct_id: str,
        document_id: int,
        file_type: str,
        file_size: int,
    ):

        self._track(
            distinct_id,
            "document_uploaded",
            {
                "document_id": document_id,
                "file_type": file_type,
                "file_size": file_size,
            },
        )

    def track_document_processed(
        self,
        distinct_id: str,
        document_id: int,
        status: str,
        latency: float,
    ):

        self._track(
            distinct_id,
            "document_processed",
            {
                "document_id": document_id,
                "status": status,
                "latency_seconds": latency,
            },
        )

    # ==========================================================
    # QUESTIONS AND SEARCH
    # ==========================================================

    def track_question(
        self,
        distinct_id: str,
        document_id: int,
        question: str,
        confidence: float,
        error: Optional[str],
    ):

        self._track(
            distinct_id,
            "question_asked",
            {
                "document_id": document_id,
                "question_length": len(question),
                "confidence": confidence,
                "error": error,
            },
        )

    def track_search(
        self,
        distinct_id: str,
        query: str,
        policy_id: Optional[int],
        confidence: float,
        error: Optional[str],
        latency: float,
    ):

        self._track(
            distinct_id,
            "search_completed",
            {
                "query_length": len(query),
                "policy_id": policy_id,
                "confidence": confidence,
                "error": error,
                "latency_seconds": latency,
            },
        )

    # ==========================================================
    # ERRORS
    # ==========================================================

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "endpoint": endpoint,
            },
        )
