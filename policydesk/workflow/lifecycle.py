# policydesk/workflow/lifecycle.py

"""
Document lifecycle.

    pending ──► processing ──► processed
       │             │
       └─────────────┴───────► error

processed and error are terminal. Every status change goes through
DocumentLifecycleManager._transition, which refuses anything not in
ALLOWED_TRANSITIONS before writing.

Processing runs detached from the upload request on the event loop.
In-flight work is not persisted: a restart leaves such documents in
pending or processing.
"""

import asyncio
import logging
import time
from typing import Any, Dict, FrozenSet, Optional, Set

from policydesk.exceptions import (
    ExtractionError,
    InvalidStatusTransition,
    UnsupportedFormatError,
)
from policydesk.extraction.extractor import detect_format, extract_text_async
from policydesk.llm.errors import InferenceError
from policydesk.models import (
    Document,
    DocumentCreate,
    DocumentStatus,
    StoredFile,
    UploadMetadata,
)
from policydesk.observability.metrics import MetricsTracker
from policydesk.observability.posthog_client import PostHogClient
from policydesk.storage.base import StorageBackend
from policydesk.workflow.analysis import DocumentAnalyzer

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.ERROR}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.PROCESSED, DocumentStatus.ERROR}),
    DocumentStatus.PROCESSED: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}

EXTRACTION_FAILED_MESSAGE = "The document text could not be extracted."
NO_TEXT_MESSAGE = "No text could be extracted from the document."
UNEXPECTED_FAILURE_MESSAGE = "An unexpected error occurred while processing the document."


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ============================================================
# BACKGROUND TASKS
# ============================================================

class BackgroundTaskRegistry:
    """
    Fire-and-forget tasks on the running event loop.

    Holds a strong reference to each task until it finishes so it cannot be
    garbage collected mid-flight. Exceptions that escape a task are logged
    from the done callback.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def schedule(self, coro, name: Optional[str] = None) -> asyncio.Task:

        task = asyncio.get_running_loop().create_task(coro, name=name)

        self._tasks.add(task)
        task.add_done_callback(self._on_done)

        return task

    def _on_done(self, task: asyncio.Task):

        self._tasks.discard(task)

        if task.cancelled():
            logger.warning("background_task_cancelled", extra={"task": task.get_name()})
            return

        exc = task.exception()

        if exc is not None:
            logger.error(
                "background_task_failed",
                extra={
                    "task": task.get_name(),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=exc,
            )

    async def wait_idle(self, timeout: Optional[float] = None):
        """Wait until every scheduled task, including ones scheduled meanwhile, is done."""

        deadline = None if timeout is None else time.monotonic() + timeout

        while self._tasks:

            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())

            done, pending = await asyncio.wait(set(self._tasks), timeout=remaining)

            if pending and deadline is not None and time.monotonic() >= deadline:
                raise asyncio.TimeoutError(f"{len(pending)} background tasks still running")

    async def cancel_all(self):

        tasks = list(self._tasks)

        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)


# ============================================================
# LIFECYCLE MANAGER
# ============================================================

class DocumentLifecycleManager:

    def __init__(
        self,
        storage: StorageBackend,
        analyzer: DocumentAnalyzer,
        tasks: Optional[BackgroundTaskRegistry] = None,
        metrics: Optional[MetricsTracker] = None,
        posthog: Optional[PostHogClient] = None,
    ):
        self._storage = storage
        self._analyzer = analyzer
        self._tasks = tasks or BackgroundTaskRegistry()
        self._metrics = metrics
        self._posthog = posthog

    @property
    def tasks(self) -> BackgroundTaskRegistry:
        return self._tasks

    # ============================================================
    # UPLOAD
    # ============================================================

    async def upload_and_process(
        self,
        stored_file: StoredFile,
        metadata: UploadMetadata,
        user_id: int,
    ) -> Document:
        """
        Record a pending document and schedule its processing.

        Returns as soon as the record exists; extraction and analysis
        continue in the background.
        """

        file_format = detect_format(stored_file.original_name)

        document = await self._storage.create_document(
            DocumentCreate(
                title=(metadata.title or "").strip() or stored_file.original_name,
                file_name=stored_file.original_name,
                file_path=stored_file.path,
                file_type=file_format,
                file_size=stored_file.size,
                uploaded_by=user_id,
                policy_id=metadata.policy_id,
            )
        )

        await self._storage.create_activity(
            user_id=user_id,
            action="upload",
            resource_type="document",
            resource_id=document.id,
            details=f'Uploaded document "{document.title}"',
        )

        if self._posthog:
            self._posthog.track_document_upload(
                distinct_id=str(user_id),
                document_id=document.id,
                file_type=file_format.value,
                file_size=stored_file.size,
            )

        self._tasks.schedule(
            self.process_document(document.id),
            name=f"process-document-{document.id}",
        )

        logger.info(
            "Document upload accepted",
            extra={
                "document_id": document.id,
                "file_type": file_format.value,
                "file_size": stored_file.size,
            },
        )

        return document

    # ============================================================
    # PROCESSING
    # ============================================================

    async def process_document(self, document_id: int) -> Optional[Document]:
        """
        Drive one pending document to processed or error.

        Documents that are missing or no longer pending are left alone.
        """

        document = await self._storage.get_document(document_id)

        if document is None:
            logger.warning("process_document_missing", extra={"document_id": document_id})
            return None

        if document.status != DocumentStatus.PENDING:
            logger.info(
                "process_document_skipped",
                extra={"document_id": document_id, "status": document.status.value},
            )
            return document

        start_time = time.time()

        document = await self._transition(document_id, DocumentStatus.PROCESSING)

        try:

            extracted_text = await extract_text_async(document.file_path, document.file_type)

        except (FileNotFoundError, UnsupportedFormatError, ExtractionError) as e:

            return await self._fail(document, EXTRACTION_FAILED_MESSAGE, e, start_time)

        except Exception as e:

            return await self._fail(document, UNEXPECTED_FAILURE_MESSAGE, e, start_time)

        # Image-only PDFs and empty files decode fine but carry no text
        if not extracted_text.strip():

            return await self._fail(
                document,
                NO_TEXT_MESSAGE,
                ExtractionError(NO_TEXT_MESSAGE, file_format=document.file_type.value),
                start_time,
            )

        try:

            analysis = await self._analyzer.analyze(extracted_text, title=document.title)

        except InferenceError as e:

            return await self._fail(
                document, e.safe_message, e, start_time, extracted_text=extracted_text
            )

        except Exception as e:

            return await self._fail(
                document, UNEXPECTED_FAILURE_MESSAGE, e, start_time, extracted_text=extracted_text
            )

        document = await self._transition(
            document_id,
            DocumentStatus.PROCESSED,
            extracted_text=extracted_text,
            summary=analysis.summary,
            key_points=analysis.key_points,
        )

        await self._storage.create_activity(
            user_id=document.uploaded_by,
            action="process",
            resource_type="document",
            resource_id=document.id,
            details=f'Document "{document.title}" processed successfully',
        )

        self._record_outcome(document, start_time)

        logger.info(
            "Document processed",
            extra={
                "document_id": document.id,
                "characters": len(extracted_text),
                "degraded_analysis": analysis.degraded,
            },
        )

        return document

    # ============================================================
    # INTERNALS
    # ============================================================

    async def _transition(self, document_id: int, target: DocumentStatus, **patch: Any) -> Document:

        current = await self._storage.get_document(document_id)

        if current is None:
            raise LookupError(f"Document disappeared during processing: {document_id}")

        if not can_transition(current.status, target):
            raise InvalidStatusTransition(document_id, current.status.value, target.value)

        updated = await self._storage.update_document(document_id, status=target, **patch)

        logger.info(
            "Document status changed",
            extra={
                "document_id": document_id,
                "from_status": current.status.value,
                "to_status": target.value,
            },
        )

        return updated

    async def _fail(
        self,
        document: Document,
        message: str,
        error: BaseException,
        start_time: float,
        extracted_text: Optional[str] = None,
    ) -> Document:

        logger.error(
            "Document processing failed",
            extra={
                "document_id": document.id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=not isinstance(error, (InferenceError, ExtractionError, FileNotFoundError)),
        )

        patch: Dict[str, Any] = {"error_message": message}

        if extracted_text is not None:
            patch["extracted_text"] = extracted_text

        document = await self._transition(document.id, DocumentStatus.ERROR, **patch)

        await self._storage.create_activity(
            user_id=document.uploaded_by,
            action="error",
            resource_type="document",
            resource_id=document.id,
            details=f"Error processing document: {message}",
        )

        self._record_outcome(document, start_time)

        return document

    def _record_outcome(self, document: Document, start_time: float):

        latency = time.time() - start_time

        if self._metrics:
            self._metrics.record_document_outcome(document.status.value)

        if self._posthog:
            self._posthog.track_document_processed(
                distinct_id=str(document.uploaded_by),
                document_id=document.id,
                status=document.status.value,
                latency=latency,
            )
