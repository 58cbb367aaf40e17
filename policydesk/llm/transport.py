# policydesk/llm/transport.py

import asyncio
import logging
import threading
from typing import Dict, Optional, Protocol

from openai import AsyncOpenAI
from transformers import pipeline

from policydesk import config
from policydesk.llm.errors import TransportError
from policydesk.models import GenerationParams

logger = logging.getLogger(__name__)


class InferenceTransport(Protocol):
    """Raw text-generation call against one model id. Raises on any failure."""

    async def generate_text(
        self,
        model: str,
        prompt: str,
        params: GenerationParams,
    ) -> str:
        ...


class OpenAICompatibleTransport:
    """
    Text-completions client for OpenAI-compatible inference servers.

    Works against hosted OpenAI-style APIs as well as self-hosted
    text-generation-inference or vLLM deployments (`base_url`).
    The underlying client is created once and reused.
    """

    def __init__(
        self,
        api_key: str = config.INFERENCE_API_KEY,
        base_url: str = config.INFERENCE_BASE_URL,
        timeout: float = config.INFERENCE_TIMEOUT_SECONDS,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> AsyncOpenAI:

        if self._client is None:

            if not self._api_key:
                raise TransportError(
                    "Inference API key not configured", status_code=401
                )

            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )

            logger.info(
                "Inference client initialized",
                extra={"base_url": self._base_url},
            )

        return self._client

    async def generate_text(
        self,
        model: str,
        prompt: str,
        params: GenerationParams,
    ) -> str:

        client = self._get_client()

        response = await client.completions.create(
            model=model,
            prompt=prompt,
            max_tokens=params.max_new_tokens,
            temperature=params.temperature,
            echo=params.return_full_text,
        )

        if not response.choices:
            return ""

        return response.choices[0].text or ""


class LocalPipelineTransport:
    """
    In-process generation with transformers pipelines.

    Each model id gets its own pipeline, loaded on first use and cached.
    Generation runs in a worker thread so the event loop stays free.
    """

    def __init__(self, task: str = config.LOCAL_PIPELINE_TASK, device: int = -1):
        self._task = task
        self._device = device
        self._pipelines: Dict[str, object] = {}
        self._lock = threading.Lock()

    def _get_pipeline(self, model: str):

        with self._lock:

            if model not in self._pipelines:

                logger.info(
                    "Loading local pipeline",
                    extra={"model": model, "task": self._task},
                )

                self._pipelines[model] = pipeline(
                    self._task,
                    model=model,
                    device=self._device,
                )

            return self._pipelines[model]

    def _generate_sync(self, model: str, prompt: str, params: GenerationParams) -> str:

        generator = self._get_pipeline(model)

        kwargs = {
            "max_new_tokens": params.max_new_tokens,
            "do_sample": params.temperature > 0,
        }

        if params.temperature > 0:
            kwargs["temperature"] = params.temperature

        # text2text pipelines never echo the prompt
        if self._task == "text-generation":
            kwargs["return_full_text"] = params.return_full_text

        result = generator(prompt, **kwargs)

        return result[0]["generated_text"]

    async def generate_text(
        self,
        model: str,
        prompt: str,
        params: GenerationParams,
    ) -> str:

        return await asyncio.to_thread(self._generate_sync, model, prompt, params)


def build_transport(backend: str = config.INFERENCE_BACKEND) -> InferenceTransport:

    if backend == "local":
        return LocalPipelineTransport()

    if backend == "remote":
        return OpenAICompatibleTransport()

    raise ValueError(f"Unknown inference backend: {backend}")
