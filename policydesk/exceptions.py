# policydesk/exceptions.py

"""
Local error taxonomy.

Inference failures live in policydesk/llm/errors.py because they are
converted to data (AnswerResult.error) instead of propagating.
"""


class PolicyDeskError(Exception):
    """Base class for errors raised by this package."""


class UnsupportedFormatError(PolicyDeskError):

    def __init__(self, file_format: str):
        self.file_format = file_format
        super().__init__(f"Unsupported file format: {file_format!r}")


class ExtractionError(PolicyDeskError):
    """A decoder failed to read text out of a document."""

    def __init__(self, message: str, file_format: str = ""):
        self.file_format = file_format
        super().__init__(message)


class DocumentNotFoundError(PolicyDeskError):

    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class DocumentNotReadyError(PolicyDeskError):
    """Question asked about a document that has not reached `processed`."""

    def __init__(self, document_id: int, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(f"Document {document_id} is not processed (status={status})")


class InvalidStatusTransition(PolicyDeskError):

    def __init__(self, document_id: int, current: str, target: str):
        self.document_id = document_id
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal status transition for document {document_id}: {current} -> {target}"
        )
