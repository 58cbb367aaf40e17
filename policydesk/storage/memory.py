# policydesk/storage/memory.py

"""
In-memory storage backend.

All state lives in dictionaries owned by one event loop. Each method runs
to completion without awaiting, so every operation is atomic with respect
to other coroutines. Records are copied on the way in and out; callers
never hold a reference into the store.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from policydesk.models import (
    Activity,
    Document,
    DocumentCreate,
    Policy,
    SearchQuery,
)

logger = logging.getLogger(__name__)


class MemoryStorage:

    def __init__(self, policies: Optional[Iterable[Policy]] = None):

        self._policies: Dict[int, Policy] = {}
        self._documents: Dict[int, Document] = {}
        self._search_queries: Dict[int, SearchQuery] = {}
        self._activities: Dict[int, Activity] = {}

        self._next_ids = {
            "policy": 1,
            "document": 1,
            "search_query": 1,
            "activity": 1,
        }

        for policy in policies or []:
            self._policies[policy.id] = policy.model_copy()
            self._next_ids["policy"] = max(self._next_ids["policy"], policy.id + 1)

    def _allocate_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    # ============================================================
    # POLICIES
    # ============================================================

    async def get_policies(self) -> List[Policy]:
        return [p.model_copy() for p in sorted(self._policies.values(), key=lambda p: p.id)]

    async def get_policy(self, policy_id: int) -> Optional[Policy]:
        policy = self._policies.get(policy_id)
        return policy.model_copy() if policy else None

    async def create_policy(
        self,
        title: str,
        content: str,
        policy_ref: str = "",
        category_id: Optional[int] = None,
    ) -> Policy:

        policy = Policy(
            id=self._allocate_id("policy"),
            title=title,
            content=content,
            policy_ref=policy_ref,
            category_id=category_id,
        )

        self._policies[policy.id] = policy

        return policy.model_copy()

    # ============================================================
    # DOCUMENTS
    # ============================================================

    async def get_document(self, document_id: int) -> Optional[Document]:
        document = self._documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def get_documents_by_user(self, user_id: int) -> List[Document]:

        documents = [d for d in self._documents.values() if d.uploaded_by == user_id]
        documents.sort(key=lambda d: (d.created_at, d.id), reverse=True)

        return [d.model_copy(deep=True) for d in documents]

    async def create_document(self, document: DocumentCreate) -> Document:

        stored = Document(id=self._allocate_id("document"), **document.model_dump())

        self._documents[stored.id] = stored

        logger.info(
            "Document stored",
            extra={"document_id": stored.id, "status": stored.status.value},
        )

        return stored.model_copy(deep=True)

    async def update_document(self, document_id: int, **patch: Any) -> Optional[Document]:
        """
        Apply a partial update. The merged record is validated before it
        replaces the old one, so an invalid patch leaves the stored
        document untouched.
        """

        current = self._documents.get(document_id)

        if current is None:
            return None

        patch.pop("id", None)

        updated = Document.model_validate({**current.model_dump(), **patch})

        self._documents[document_id] = updated

        return updated.model_copy(deep=True)

    # ============================================================
    # AUDIT TRAIL
    # ============================================================

    async def create_search_query(self, query: str, user_id: int, result: str) -> SearchQuery:

        record = SearchQuery(
            id=self._allocate_id("search_query"),
            query=query,
            user_id=user_id,
            result=result,
        )

        self._search_queries[record.id] = record

        return record.model_copy()

    async def get_search_queries(self, user_id: int) -> List[SearchQuery]:

        records = [q for q in self._search_queries.values() if q.user_id == user_id]
        records.sort(key=lambda q: (q.timestamp, q.id), reverse=True)

        return [q.model_copy() for q in records]

    async def create_activity(
        self,
        user_id: int,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        details: Optional[str] = None,
    ) -> Activity:

        activity = Activity(
            id=self._allocate_id("activity"),
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
        )

        self._activities[activity.id] = activity

        return activity.model_copy()

    async def get_activities(self, user_id: Optional[int] = None) -> List[Activity]:

        activities = [
            a for a in self._activities.values()
            if user_id is None or a.user_id == user_id
        ]
        activities.sort(key=lambda a: a.id)

        return [a.model_copy() for a in activities]


# ============================================================
# SEEDING
# ============================================================

def load_policy_seed(path: str) -> List[Policy]:
    """
    Read a JSON list of policy objects.

    Entries without an id are numbered after the highest explicit id.
    Keys may be snake_case or camelCase (policyRef, categoryId).
    """

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise ValueError(f"Policy seed must be a JSON list: {path}")

    next_id = max((item.get("id", 0) for item in raw if isinstance(item, dict)), default=0) + 1

    policies = []

    for item in raw:

        if not isinstance(item, dict):
            raise ValueError(f"Policy seed entries must be objects: {item!r}")

        policy_id = item.get("id")

        if policy_id is None:
            policy_id = next_id
            next_id += 1

        policies.append(
            Policy(
                id=policy_id,
                title=item["title"],
                content=item.get("content", ""),
                policy_ref=item.get("policy_ref", item.get("policyRef", "")),
                category_id=item.get("category_id", item.get("categoryId")),
                status=item.get("status", "active"),
            )
        )

    logger.info("Policy seed loaded", extra={"path": path, "policies": len(policies)})

    return policies
