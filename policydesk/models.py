# policydesk/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from policydesk.exceptions import UnsupportedFormatError
from policydesk.llm.errors import InferenceErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"

    @classmethod
    def parse(cls, value: str) -> "DocumentFormat":
        """Case-insensitive lookup, raising UnsupportedFormatError for anything else."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise UnsupportedFormatError(value) from None


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.PROCESSED, DocumentStatus.ERROR)


# ============================================================
# STORED RECORDS
# ============================================================

class Policy(BaseModel):
    """Read-only input to the search orchestrator."""
    id: int
    title: str
    policy_ref: str = ""
    content: str = ""
    category_id: Optional[int] = None
    status: str = "active"


class DocumentCreate(BaseModel):
    title: str
    file_name: str
    file_path: str
    file_type: DocumentFormat
    file_size: int = Field(..., ge=0)
    uploaded_by: int
    policy_id: Optional[int] = None

    @field_validator("file_type", mode="before")
    @classmethod
    def parse_file_type(cls, v):
        if isinstance(v, str):
            try:
                return DocumentFormat.parse(v)
            except UnsupportedFormatError as e:
                raise ValueError(str(e)) from e
        return v


class Document(DocumentCreate):
    id: int
    status: DocumentStatus = DocumentStatus.PENDING
    extracted_text: Optional[str] = None
    summary: Optional[str] = None
    key_points: Optional[List[str]] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def analysis_only_when_processed(self):
        if self.status != DocumentStatus.PROCESSED and (
            self.summary is not None or self.key_points is not None
        ):
            raise ValueError("summary/key_points are only set on processed documents")
        return self


class SearchQuery(BaseModel):
    id: int
    query: str
    user_id: int
    result: str
    timestamp: datetime = Field(default_factory=utcnow)


class Activity(BaseModel):
    id: int
    user_id: int
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    details: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


# ============================================================
# INFERENCE (EPHEMERAL)
# ============================================================

class GenerationParams(BaseModel):
    max_new_tokens: int = Field(800, gt=0)
    temperature: float = Field(0.2, ge=0.0)
    # False → only the generated continuation, not the echoed prompt
    return_full_text: bool = False


class InferenceRequest(BaseModel):
    model: str
    prompt: str
    params: GenerationParams


class InferenceResult(BaseModel):
    text: str
    model: str
    attempts: int


# ============================================================
# RESULTS
# ============================================================

class AnswerResult(BaseModel):
    """
    Externally visible contract of search and per-document questions.

    Serialize with by_alias=True, exclude_none=True for the wire shape.
    """
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    answer: str
    confidence: float
    policy_id: Optional[int] = Field(None, alias="policyId")
    policy_title: Optional[str] = Field(None, alias="policyTitle")
    document_id: Optional[int] = Field(None, alias="documentId")
    error: Optional[InferenceErrorKind] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return min(1.0, max(0.0, float(v)))

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class DocumentAnalysis(BaseModel):
    summary: str
    key_points: List[str]
    degraded: bool = False


# ============================================================
# UPLOAD INPUT
# ============================================================

class StoredFile(BaseModel):
    """An uploaded file already written to disk."""
    path: str
    original_name: str
    size: int = Field(..., ge=0)


class UploadMetadata(BaseModel):
    title: Optional[str] = None
    policy_id: Optional[int] = None


# ============================================================
# API
# ============================================================

class AskRequest(BaseModel):
    """Request to ask a question about a processed document."""
    question: str = Field(..., min_length=1, max_length=1000)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v):
        """Ensure question is not just whitespace."""
        if not v.strip():
            raise ValueError("Question cannot be empty or only whitespace")
        return v.strip()


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v):
        if not v.strip():
            raise ValueError("Query is required")
        return v.strip()


class SearchResponse(BaseModel):
    """Persisted search record plus the answer that was returned."""
    id: int
    query: str
    result: AnswerResult
    timestamp: datetime


class ListDocumentsResponse(BaseModel):
    documents: List[Document]
    total_documents: int


class HealthResponse(BaseModel):
    status: str
    total_policies: int
    models: List[str]
    documents_in_flight: int
