# policydesk/services.py

import logging
from dataclasses import dataclass
from typing import Optional

from policydesk import config
from policydesk.llm.multi_model_client import MultiModelClient
from policydesk.llm.transport import InferenceTransport, build_transport
from policydesk.observability.metrics import MetricsTracker
from policydesk.observability.posthog_client import PostHogClient
from policydesk.storage.base import StorageBackend
from policydesk.storage.memory import MemoryStorage, load_policy_seed
from policydesk.workflow.analysis import DocumentAnalyzer
from policydesk.workflow.lifecycle import BackgroundTaskRegistry, DocumentLifecycleManager
from policydesk.workflow.search import SearchOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, constructed once per app."""
    storage: StorageBackend
    llm_client: MultiModelClient
    lifecycle: DocumentLifecycleManager
    search: SearchOrchestrator
    tasks: BackgroundTaskRegistry
    metrics: MetricsTracker
    posthog: PostHogClient


def build_services(
    storage: Optional[StorageBackend] = None,
    transport: Optional[InferenceTransport] = None,
    posthog: Optional[PostHogClient] = None,
    model_ids=None,
    max_concurrency: int = config.MAX_CONCURRENT_INFERENCES,
) -> Services:
    """
    Wire the service graph.

    Anything not passed in is built from config: storage is in-memory
    (seeded from POLICY_SEED_FILE when set), the transport follows
    INFERENCE_BACKEND.
    """

    if storage is None:
        seed = load_policy_seed(config.POLICY_SEED_FILE) if config.POLICY_SEED_FILE else []
        storage = MemoryStorage(policies=seed)

    if transport is None:
        transport = build_transport(config.INFERENCE_BACKEND)

    metrics = MetricsTracker()
    posthog = posthog or PostHogClient()
    tasks = BackgroundTaskRegistry()

    llm_client = MultiModelClient(
        transport,
        model_ids=tuple(model_ids or config.MODEL_IDS),
        max_concurrency=max_concurrency,
        metrics=metrics,
    )

    lifecycle = DocumentLifecycleManager(
        storage,
        DocumentAnalyzer(llm_client),
        tasks=tasks,
        metrics=metrics,
        posthog=posthog,
    )

    search = SearchOrchestrator(storage, llm_client, posthog=posthog)

    logger.info(
        "Services initialized",
        extra={
            "storage": type(storage).__name__,
            "transport": type(transport).__name__,
            "models": llm_client.model_ids,
        },
    )

    return Services(
        storage=storage,
        llm_client=llm_client,
        lifecycle=lifecycle,
        search=search,
        tasks=tasks,
        metrics=metrics,
        posthog=posthog,
    )
