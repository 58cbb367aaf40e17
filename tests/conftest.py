# tests/conftest.py
import asyncio
import time
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from policydesk import config
from policydesk.models import Policy
from policydesk.observability.posthog_client import PostHogClient
from policydesk.services import build_services
from policydesk.storage.memory import MemoryStorage

MODELS = ("primary/model", "fallback/model")

DEFAULT_RESPONSE = '{"answer": "Default answer", "confidence": 0.9}'

ANALYSIS_RESPONSE = (
    '{"summary": "A short summary.", '
    '"keyPoints": ["First point", "Second point"]}'
)


class FakeTransport:
    """
    Scripted stand-in for an inference endpoint.

    Outcomes are consumed in order (the last one repeats). An outcome is a
    response string, an exception instance to raise, or a callable taking
    the prompt. `per_model` pins an outcome to a model id.
    """

    def __init__(self, *outcomes, per_model: Optional[Dict[str, object]] = None, delay: float = 0.0):
        self._outcomes = list(outcomes) or [DEFAULT_RESPONSE]
        self._per_model = per_model or {}
        self.delay = delay
        self.calls: List[dict] = []
        self.active = 0
        self.max_active = 0

    def _next(self, model: str):

        if model in self._per_model:
            return self._per_model[model]

        if len(self._outcomes) > 1:
            return self._outcomes.pop(0)

        return self._outcomes[0]

    async def generate_text(self, model, prompt, params):

        self.calls.append({"model": model, "prompt": prompt, "params": params})

        self.active += 1
        self.max_active = max(self.max_active, self.active)

        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self._next(model)
        finally:
            self.active -= 1

        if isinstance(outcome, BaseException):
            raise outcome

        if callable(outcome):
            return outcome(prompt)

        return outcome


def make_pdf_bytes(text: str) -> bytes:
    """Single-page PDF with one line of Helvetica text. Avoid parentheses in `text`."""

    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = b"%PDF-1.4\n"
    offsets = []

    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_position = len(out)

    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"

    for offset in offsets:
        out += b"%010d 00000 n \n" % offset

    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_position,
    )

    return out


def sample_policies() -> List[Policy]:
    return [
        Policy(id=3, title="Remote Work Policy", content="Employees may work remotely two days per week."),
        Policy(id=5, title="Vacation Policy", content="Full-time employees receive 20 vacation days per year."),
        Policy(id=8, title="Expense Policy", content="Receipts are required for all expenses over $25."),
    ]


async def wait_for_terminal(storage, document_id: int, timeout: float = 5.0):

    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:

        document = await storage.get_document(document_id)

        if document.status.is_terminal:
            return document

        await asyncio.sleep(0.01)

    raise AssertionError(f"Document {document_id} never reached a terminal status")


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def policy_storage():
    return MemoryStorage(policies=sample_policies())


@pytest.fixture
def make_services():
    """
    Build the service graph around a fake transport.

    Usage:
        services = make_services(FakeTransport('{"answer": ...}'))
    """

    def _make(transport=None, storage=None, max_concurrency=4):
        return build_services(
            storage=storage or MemoryStorage(),
            transport=transport or FakeTransport(),
            posthog=PostHogClient(api_key=""),
            model_ids=MODELS,
            max_concurrency=max_concurrency,
        )

    return _make


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(directory))
    return directory


@pytest.fixture
def api_factory(make_services, upload_dir):
    """
    FastAPI test client around an app with injected services.

    Used as a context manager so startup/shutdown events run.
    """
    from policydesk.main import create_app

    def _client(transport=None, storage=None):
        services = make_services(transport=transport, storage=storage)
        return TestClient(create_app(services)), services

    return _client
