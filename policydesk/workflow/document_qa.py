# policydesk/workflow/document_qa.py

import logging
from typing import Optional

from policydesk import config
from policydesk.exceptions import DocumentNotFoundError, DocumentNotReadyError
from policydesk.llm.errors import InferenceError
from policydesk.llm.multi_model_client import MultiModelClient
from policydesk.models import AnswerResult, DocumentStatus, GenerationParams
from policydesk.observability.posthog_client import PostHogClient
from policydesk.prompts.prompt_builder import ContextDocument, build_prompt
from policydesk.prompts.system_prompts import (
    DOCUMENT_NOT_FOUND_ANSWER,
    DOCUMENT_QUESTION_TEMPLATE,
)
from policydesk.storage.base import StorageBackend
from policydesk.workflow.response_recovery import recover_answer

logger = logging.getLogger(__name__)

QUESTION_PARAMS = GenerationParams(
    max_new_tokens=config.QUESTION_MAX_NEW_TOKENS,
    temperature=config.INFERENCE_TEMPERATURE,
)


async def answer_from_text(
    question: str,
    title: str,
    text: str,
    llm_client: MultiModelClient,
) -> AnswerResult:
    """
    Answer a question against one document's text.

    Inference failures are returned as an error-tagged result with the
    fixed message for that failure kind.
    """

    prompt = build_prompt(
        DOCUMENT_QUESTION_TEMPLATE,
        [ContextDocument(title=title, content=text)],
        question=question,
    )

    try:
        result = await llm_client.generate(prompt, QUESTION_PARAMS)
    except InferenceError as e:
        return AnswerResult(answer=e.safe_message, confidence=0.0, error=e.kind)

    return recover_answer(result.text, not_found=DOCUMENT_NOT_FOUND_ANSWER)


async def ask_about_document(
    document_id: int,
    question: str,
    user_id: int,
    storage: StorageBackend,
    llm_client: MultiModelClient,
    posthog: Optional[PostHogClient] = None,
) -> AnswerResult:
    """
    Answer a question about a processed document and record it.

    Raises:
        DocumentNotFoundError: no document with this id
        DocumentNotReadyError: the document has not reached `processed`
    """

    document = await storage.get_document(document_id)

    if document is None:
        raise DocumentNotFoundError(document_id)

    if document.status != DocumentStatus.PROCESSED:
        raise DocumentNotReadyError(document_id, document.status.value)

    answer = await answer_from_text(
        question,
        document.title,
        document.extracted_text or "",
        llm_client,
    )

    # Source of a document answer is always the document itself
    answer = answer.model_copy(update={"document_id": document.id, "policy_id": None})

    await storage.create_search_query(
        query=question,
        user_id=user_id,
        result=answer.model_dump_json(by_alias=True, exclude_none=True),
    )

    await storage.create_activity(
        user_id=user_id,
        action="question",
        resource_type="document",
        resource_id=document.id,
        details=f'Asked: "{question[:100]}{"..." if len(question) > 100 else ""}"',
    )

    if posthog:
        posthog.track_question(
            distinct_id=str(user_id),
            document_id=document.id,
            question=question,
            confidence=answer.confidence,
            error=answer.error,
        )

    logger.info(
        "Document question answered",
        extra={
            "document_id": document.id,
            "confidence": answer.confidence,
            "error_kind": answer.error,
        },
    )

    return answer
