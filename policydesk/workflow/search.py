# policydesk/workflow/search.py

"""
Policy search.

The whole active corpus goes into one prompt: no ranking or pre-filtering,
each policy bounded only by the per-document truncation ceiling. The model
names the policy that answers the query; its id is resolved back to a
title against the same corpus.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence

from policydesk import config
from policydesk.llm.errors import InferenceError
from policydesk.llm.multi_model_client import MultiModelClient
from policydesk.models import AnswerResult, GenerationParams, Policy, SearchResponse
from policydesk.observability.posthog_client import PostHogClient
from policydesk.prompts.prompt_builder import ContextDocument, build_prompt
from policydesk.prompts.system_prompts import (
    NO_POLICIES_ANSWER,
    NO_POLICY_CONTENT_ANSWER,
    POLICY_NOT_FOUND_ANSWER,
    POLICY_SEARCH_TEMPLATE,
)
from policydesk.storage.base import StorageBackend
from policydesk.workflow.response_recovery import recover_answer

logger = logging.getLogger(__name__)


class SearchOrchestrator:

    def __init__(
        self,
        storage: StorageBackend,
        llm_client: MultiModelClient,
        posthog: Optional[PostHogClient] = None,
        max_new_tokens: int = config.SEARCH_MAX_NEW_TOKENS,
        temperature: float = config.INFERENCE_TEMPERATURE,
    ):
        self._storage = storage
        self._llm_client = llm_client
        self._posthog = posthog
        self._params = GenerationParams(
            max_new_tokens=max_new_tokens,
            temperature=temperature,
        )

    # ============================================================
    # CORE SEARCH (NO SIDE EFFECTS BEYOND INFERENCE)
    # ============================================================

    async def search(self, query: str, corpus: Sequence[Policy]) -> AnswerResult:
        """
        Answer a query from the given policies.

        Never raises for inference failures: they come back as a result
        carrying the error kind and its fixed message.
        """

        if not corpus:
            logger.info("search_empty_corpus")
            return AnswerResult(answer=NO_POLICIES_ANSWER, confidence=1.0)

        usable = [p for p in corpus if p.content and p.content.strip()]

        if not usable:
            logger.info("search_no_policy_content", extra={"policies": len(corpus)})
            return AnswerResult(answer=NO_POLICY_CONTENT_ANSWER, confidence=1.0)

        prompt = build_prompt(
            POLICY_SEARCH_TEMPLATE,
            [
                ContextDocument(label=f"POLICY #{p.id}", title=p.title, content=p.content)
                for p in usable
            ],
            question=query,
        )

        try:
            result = await self._llm_client.generate(prompt, self._params)
        except InferenceError as e:
            return AnswerResult(answer=e.safe_message, confidence=0.0, error=e.kind)

        answer = recover_answer(result.text, not_found=POLICY_NOT_FOUND_ANSWER)

        return self._resolve_source(answer, usable)

    @staticmethod
    def _resolve_source(answer: AnswerResult, corpus: List[Policy]) -> AnswerResult:

        if answer.policy_id is None:
            return answer

        titles: Dict[int, str] = {p.id: p.title for p in corpus}

        if answer.policy_id not in titles:

            logger.warning(
                "search_unknown_policy_id",
                extra={"policy_id": answer.policy_id},
            )

            return answer.model_copy(update={"policy_id": None})

        return answer.model_copy(update={"policy_title": titles[answer.policy_id]})

    # ============================================================
    # SEARCH + AUDIT TRAIL
    # ============================================================

    async def search_policies(self, query: str, user_id: int) -> SearchResponse:
        """Search the stored corpus and persist the query and an activity for every outcome."""

        start_time = time.time()

        corpus = [p for p in await self._storage.get_policies() if p.status == "active"]

        answer = await self.search(query, corpus)

        latency = time.time() - start_time

        record = await self._storage.create_search_query(
            query=query,
            user_id=user_id,
            result=answer.model_dump_json(by_alias=True, exclude_none=True),
        )

        if answer.error:
            await self._storage.create_activity(
                user_id=user_id,
                action="search_error",
                resource_type="policy",
                details=f'Search for "{query}" failed with error: {answer.error}',
            )
        else:
            await self._storage.create_activity(
                user_id=user_id,
                action="searched",
                resource_type="policy",
                resource_id=answer.policy_id,
                details=f'Searched for "{query}"',
            )

        if self._posthog:
            self._posthog.track_search(
                distinct_id=str(user_id),
                query=query,
                policy_id=answer.policy_id,
                confidence=answer.confidence,
                error=answer.error,
                latency=latency,
            )

        logger.info(
            "Search completed",
            extra={
                "search_id": record.id,
                "policies": len(corpus),
                "policy_id": answer.policy_id,
                "confidence": answer.confidence,
                "error_kind": answer.error,
                "latency_seconds": round(latency, 3),
            },
        )

        return SearchResponse(
            id=record.id,
            query=query,
            result=answer,
            timestamp=record.timestamp,
        )
