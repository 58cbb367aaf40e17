# policydesk/llm/multi_model_client.py

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from policydesk import config
from policydesk.llm.errors import InferenceError, classify_error
from policydesk.llm.transport import InferenceTransport
from policydesk.models import GenerationParams, InferenceRequest, InferenceResult
from policydesk.observability.metrics import MetricsTracker

logger = logging.getLogger(__name__)


class MultiModelClient:
    """
    Ordered-fallback text generation over one transport.

    Fallback order (STRICT):

    1. model_ids[0] (primary)
    2. model_ids[1] (fallback)
    ...

    Each model is attempted exactly once with identical parameters.
    No backoff and no retry loop beyond the list. Every failed attempt
    is classified; if all fail, InferenceError carries the classification
    of the last attempt.

    A semaphore bounds how many generate() calls reach the transport at
    the same time. Callers over the limit wait for a slot.
    """

    def __init__(
        self,
        transport: InferenceTransport,
        model_ids: Sequence[str] = tuple(config.MODEL_IDS),
        max_concurrency: int = config.MAX_CONCURRENT_INFERENCES,
        metrics: Optional[MetricsTracker] = None,
    ):

        if not model_ids:
            raise ValueError("At least one model id is required")

        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._transport = transport
        self._model_ids = list(model_ids)
        self._max_concurrency = max_concurrency
        self._gate = asyncio.Semaphore(max_concurrency)
        self._metrics = metrics

        logger.info(
            "Model client initialized",
            extra={
                "models": self._model_ids,
                "max_concurrency": max_concurrency,
            },
        )

    @property
    def model_ids(self) -> List[str]:
        return list(self._model_ids)

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def generate(self, prompt: str, params: GenerationParams) -> InferenceResult:

        logger.info(
            "Inference request started",
            extra={
                "prompt_length": len(prompt),
                "max_new_tokens": params.max_new_tokens,
            },
        )

        attempts = []

        async with self._gate:

            for model in self._model_ids:

                request = InferenceRequest(model=model, prompt=prompt, params=params)

                try:

                    text = await self._timed_call(request)

                    return InferenceResult(
                        text=text,
                        model=model,
                        attempts=len(attempts) + 1,
                    )

                except Exception as e:

                    kind = classify_error(e)
                    attempts.append((model, kind))

                    if self._metrics:
                        self._metrics.record_inference_failure(model, kind.value)

                    logger.warning(
                        "Model attempt failed",
                        extra={
                            "model": model,
                            "attempt": len(attempts),
                            "error_kind": kind.value,
                            "error": str(e),
                            "error_type": type(e).__name__,
                        },
                    )

        final_kind = attempts[-1][1]

        logger.error(
            "All models failed",
            extra={
                "models": [model for model, _ in attempts],
                "error_kind": final_kind.value,
            },
        )

        raise InferenceError(final_kind, attempts)

    # ============================================================
    # LATENCY OBSERVABILITY
    # ============================================================

    async def _timed_call(self, request: InferenceRequest) -> str:

        start = time.time()

        text = await self._transport.generate_text(
            request.model,
            request.prompt,
            request.params,
        )

        latency = time.time() - start

        if self._metrics:
            self._metrics.record_inference_success(request.model, latency)

        logger.info(
            "Model call succeeded",
            extra={
                "model": request.model,
                "latency_seconds": round(latency, 3),
                "response_length": len(text),
            },
        )

        return text

    # ============================================================
    # STATUS
    # ============================================================

    def get_usage_stats(self) -> Dict:

        return {
            "models": list(self._model_ids),
            "max_concurrency": self._max_concurrency,
        }
