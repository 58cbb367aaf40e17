import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile

from policydesk import config
from policydesk.exceptions import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    UnsupportedFormatError,
)
from policydesk.extraction.extractor import detect_format
from policydesk.models import (
    Activity,
    AnswerResult,
    AskRequest,
    Document,
    HealthResponse,
    ListDocumentsResponse,
    Policy,
    SearchQuery,
    SearchRequest,
    SearchResponse,
    StoredFile,
    UploadMetadata,
)
from policydesk.services import Services
from policydesk.workflow.document_qa import ask_about_document


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# DEPENDENCIES
# ============================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_id(x_user_id: int = Header(1, alias="X-User-Id")) -> int:
    """Acting user. There is no authentication; callers identify themselves."""
    return x_user_id


# ============================================================
# HELPERS
# ============================================================

def validate_file_size(content: bytes):

    size_mb = len(content) / (1024 * 1024)

    if size_mb > config.MAX_FILE_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {size_mb:.2f}MB (limit {config.MAX_FILE_SIZE_MB}MB)",
        )


def save_upload(content: bytes, extension: str) -> str:

    upload_dir = Path(config.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)

    file_path = upload_dir / f"{uuid.uuid4().hex}.{extension}"

    with file_path.open("wb") as buffer:
        buffer.write(content)

    return str(file_path)


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)):

    policies = await services.storage.get_policies()

    return HealthResponse(
        status="healthy",
        total_policies=len(policies),
        models=services.llm_client.model_ids,
        documents_in_flight=services.tasks.in_flight,
    )


# ============================================================
# UPLOAD DOCUMENT
# ============================================================

@router.post("/documents/upload", response_model=Document, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(None),
    policy_id: int = Form(None),
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    try:
        file_format = detect_format(file.filename)
    except UnsupportedFormatError:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Allowed: {', '.join(config.SUPPORTED_FORMATS)}",
        )

    content = await file.read()

    validate_file_size(content)

    file_path = await asyncio.to_thread(save_upload, content, file_format.value)

    logger.info(
        "Upload saved",
        extra={
            "file_name": file.filename,
            "file_path": file_path,
            "file_size": len(content),
        },
    )

    return await services.lifecycle.upload_and_process(
        StoredFile(path=file_path, original_name=os.path.basename(file.filename), size=len(content)),
        UploadMetadata(title=title, policy_id=policy_id),
        user_id=user_id,
    )


# ============================================================
# DOCUMENTS
# ============================================================

@router.get("/documents", response_model=ListDocumentsResponse)
async def list_documents(
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    documents = await services.storage.get_documents_by_user(user_id)

    return ListDocumentsResponse(
        documents=documents,
        total_documents=len(documents),
    )


@router.get("/documents/{document_id}", response_model=Document)
async def get_document(
    document_id: int,
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    document = await services.storage.get_document(document_id)

    if document is None or document.uploaded_by != user_id:
        raise HTTPException(status_code=404, detail="Document not found")

    return document


# ============================================================
# ASK QUESTION
# ============================================================

@router.post(
    "/documents/{document_id}/answer",
    response_model=AnswerResult,
    response_model_exclude_none=True,
)
async def answer_document_question(
    document_id: int,
    payload: AskRequest,
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    try:

        return await ask_about_document(
            document_id,
            payload.question,
            user_id,
            storage=services.storage,
            llm_client=services.llm_client,
            posthog=services.posthog,
        )

    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Document not found")

    except DocumentNotReadyError as e:
        raise HTTPException(
            status_code=409,
            detail=f"Document is not ready for questions (status: {e.status})",
        )


# ============================================================
# SEARCH
# ============================================================

@router.post("/search", response_model=SearchResponse, response_model_exclude_none=True)
async def search_policies(
    payload: SearchRequest,
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    return await services.search.search_policies(payload.query, user_id)


@router.get("/searches", response_model=List[SearchQuery])
async def list_searches(
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Search history for the acting user, newest first."""

    return await services.storage.get_search_queries(user_id)


# ============================================================
# POLICIES
# ============================================================

@router.get("/policies/{policy_id}", response_model=Policy)
async def get_policy(
    policy_id: int,
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    policy = await services.storage.get_policy(policy_id)

    if policy is None:
        raise HTTPException(status_code=404, detail="Policy not found")

    await services.storage.create_activity(
        user_id=user_id,
        action="viewed",
        resource_type="policy",
        resource_id=policy.id,
        details=f'Viewed policy "{policy.title}"',
    )

    return policy


# ============================================================
# ACTIVITIES
# ============================================================

@router.get("/activities", response_model=List[Activity])
async def list_activities(
    user_id: int = Depends(get_user_id),
    services: Services = Depends(get_services),
):

    return await services.storage.get_activities(user_id=user_id)


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics(services: Services = Depends(get_services)):

    metrics = services.metrics.get_metrics()
    metrics["documents_in_flight"] = services.tasks.in_flight

    return metrics
