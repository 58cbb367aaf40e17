# tests/test_multi_model_client.py
import asyncio

import httpx
import openai
import pytest

from conftest import MODELS, FakeTransport
from policydesk.llm.errors import (
    SAFE_MESSAGES,
    InferenceError,
    InferenceErrorKind,
    TransportError,
    classify_error,
)
from policydesk.llm.multi_model_client import MultiModelClient
from policydesk.llm.transport import OpenAICompatibleTransport
from policydesk.models import GenerationParams
from policydesk.observability.metrics import MetricsTracker

PARAMS = GenerationParams(max_new_tokens=50, temperature=0.2)

_REQUEST = httpx.Request("POST", "http://inference.local/v1/completions")


def api_status_error(cls, status_code: int, message: str):
    response = httpx.Response(status_code, request=_REQUEST)
    return cls(message, response=response, body=None)


class TestErrorClassification:

    def test_openai_connection_error(self):
        exc = openai.APIConnectionError(request=_REQUEST)
        assert classify_error(exc) == InferenceErrorKind.NETWORK

    def test_openai_timeout(self):
        exc = openai.APITimeoutError(request=_REQUEST)
        assert classify_error(exc) == InferenceErrorKind.NETWORK

    def test_httpx_connect_error(self):
        exc = httpx.ConnectError("[Errno 111] Connection refused")
        assert classify_error(exc) == InferenceErrorKind.NETWORK

    def test_connect_refused_message(self):
        assert classify_error(Exception("connect ECONNREFUSED 127.0.0.1:443")) == InferenceErrorKind.NETWORK

    def test_rate_limit_status(self):
        exc = api_status_error(openai.RateLimitError, 429, "Slow down")
        assert classify_error(exc) == InferenceErrorKind.RATE_LIMIT

    def test_quota_message(self):
        assert classify_error(Exception("Monthly quota exceeded")) == InferenceErrorKind.RATE_LIMIT

    def test_auth_status(self):
        exc = api_status_error(openai.AuthenticationError, 401, "Bad credentials")
        assert classify_error(exc) == InferenceErrorKind.AUTH

    def test_missing_key_transport_error(self):
        exc = TransportError("Inference API key not configured", status_code=401)
        assert classify_error(exc) == InferenceErrorKind.AUTH

    def test_forbidden_status(self):
        exc = api_status_error(openai.PermissionDeniedError, 403, "Nope")
        assert classify_error(exc) == InferenceErrorKind.AUTH

    def test_model_message(self):
        exc = api_status_error(openai.NotFoundError, 404, "Model mistralai/foo is currently loading")
        assert classify_error(exc) == InferenceErrorKind.MODEL

    def test_unknown(self):
        assert classify_error(ValueError("something odd")) == InferenceErrorKind.UNKNOWN

    def test_rate_pattern_needs_word_boundary(self):
        exc = Exception("Failed to generate limit output")
        assert classify_error(exc) != InferenceErrorKind.RATE_LIMIT

    @pytest.mark.parametrize("message", ["Unknown author field", "Invalid authority header"])
    def test_auth_pattern_needs_word_boundary(self, message):
        assert classify_error(Exception(message)) == InferenceErrorKind.UNKNOWN

    def test_authentication_message(self):
        assert classify_error(Exception("Authentication failed for key")) == InferenceErrorKind.AUTH

    def test_every_kind_has_a_safe_message(self):
        for kind in InferenceErrorKind:
            assert SAFE_MESSAGES[kind]
            assert "Error" not in SAFE_MESSAGES[kind]


class TestFallback:

    @pytest.mark.asyncio
    async def test_primary_success_makes_one_call(self):
        transport = FakeTransport("hello")
        client = MultiModelClient(transport, model_ids=MODELS)

        result = await client.generate("prompt", PARAMS)

        assert result.text == "hello"
        assert result.model == MODELS[0]
        assert result.attempts == 1
        assert [c["model"] for c in transport.calls] == [MODELS[0]]

    @pytest.mark.asyncio
    async def test_fallback_used_with_identical_params(self):
        transport = FakeTransport(per_model={
            MODELS[0]: api_status_error(openai.RateLimitError, 429, "busy"),
            MODELS[1]: "from fallback",
        })
        client = MultiModelClient(transport, model_ids=MODELS)

        result = await client.generate("the prompt", PARAMS)

        assert result.text == "from fallback"
        assert result.model == MODELS[1]
        assert result.attempts == 2
        assert [c["model"] for c in transport.calls] == list(MODELS)
        assert transport.calls[0]["params"] == transport.calls[1]["params"]
        assert transport.calls[0]["prompt"] == transport.calls[1]["prompt"] == "the prompt"

    @pytest.mark.asyncio
    async def test_all_fail_uses_last_classification(self):
        transport = FakeTransport(per_model={
            MODELS[0]: api_status_error(openai.RateLimitError, 429, "busy"),
            MODELS[1]: httpx.ConnectError("Connection refused"),
        })
        client = MultiModelClient(transport, model_ids=MODELS)

        with pytest.raises(InferenceError) as exc_info:
            await client.generate("prompt", PARAMS)

        assert exc_info.value.kind == InferenceErrorKind.NETWORK
        assert exc_info.value.attempts == [
            (MODELS[0], InferenceErrorKind.RATE_LIMIT),
            (MODELS[1], InferenceErrorKind.NETWORK),
        ]
        assert exc_info.value.safe_message == SAFE_MESSAGES[InferenceErrorKind.NETWORK]

    @pytest.mark.asyncio
    async def test_no_retries_beyond_list(self):
        transport = FakeTransport(RuntimeError("boom"))
        client = MultiModelClient(transport, model_ids=("a", "b", "c"))

        with pytest.raises(InferenceError):
            await client.generate("prompt", PARAMS)

        assert [c["model"] for c in transport.calls] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_metrics_recorded(self):
        metrics = MetricsTracker()
        transport = FakeTransport(per_model={
            MODELS[0]: httpx.ConnectError("refused"),
            MODELS[1]: "ok",
        })
        client = MultiModelClient(transport, model_ids=MODELS, metrics=metrics)

        await client.generate("prompt", PARAMS)

        inference = metrics.get_metrics()["inference"]
        assert inference["calls"] == {MODELS[0]: 1, MODELS[1]: 1}
        assert inference["failures"] == {MODELS[0]: 1}
        assert inference["failures_by_kind"] == {"network_error": 1}

    def test_empty_model_list_rejected(self):
        with pytest.raises(ValueError):
            MultiModelClient(FakeTransport(), model_ids=())


class TestAdmissionGate:

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        transport = FakeTransport("ok", delay=0.02)
        client = MultiModelClient(transport, model_ids=MODELS, max_concurrency=2)

        results = await asyncio.gather(*[client.generate("p", PARAMS) for _ in range(6)])

        assert len(results) == 6
        assert transport.max_active == 2


class TestOpenAICompatibleTransport:

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_network(self):
        transport = OpenAICompatibleTransport(api_key="", base_url="http://127.0.0.1:9/v1")

        with pytest.raises(TransportError) as exc_info:
            await transport.generate_text("m", "prompt", PARAMS)

        assert classify_error(exc_info.value) == InferenceErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_completion_request_shape(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = request.read()
            return httpx.Response(
                200,
                json={
                    "id": "cmpl-1",
                    "object": "text_completion",
                    "created": 0,
                    "model": "m",
                    "choices": [{"index": 0, "text": '{"answer": "hi"}', "finish_reason": "stop", "logprobs": None}],
                },
            )

        client = openai.AsyncOpenAI(
            api_key="test-key",
            base_url="http://inference.local/v1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            max_retries=0,
        )
        transport = OpenAICompatibleTransport(client=client)

        text = await transport.generate_text("mistral", "prompt text", PARAMS)

        assert text == '{"answer": "hi"}'
        assert captured["url"].endswith("/v1/completions")
        assert b'"max_tokens":50' in captured["body"].replace(b" ", b"")
        assert b'"echo":false' in captured["body"].replace(b" ", b"")
