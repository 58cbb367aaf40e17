# policydesk/storage/base.py

from typing import Any, List, Optional, Protocol

from policydesk.models import (
    Activity,
    Document,
    DocumentCreate,
    Policy,
    SearchQuery,
)


class StorageBackend(Protocol):
    """
    Persistence collaborator used by the workflows.

    Every call is a single atomic operation from the caller's point of view.
    Failures propagate to the caller unchanged.
    """

    # Policies

    async def get_policies(self) -> List[Policy]: ...

    async def get_policy(self, policy_id: int) -> Optional[Policy]: ...

    async def create_policy(
        self,
        title: str,
        content: str,
        policy_ref: str = "",
        category_id: Optional[int] = None,
    ) -> Policy: ...

    # Documents

    async def get_document(self, document_id: int) -> Optional[Document]: ...

    async def get_documents_by_user(self, user_id: int) -> List[Document]: ...

    async def create_document(self, document: DocumentCreate) -> Document: ...

    async def update_document(self, document_id: int, **patch: Any) -> Optional[Document]: ...

    # Audit trail

    async def create_search_query(self, query: str, user_id: int, result: str) -> SearchQuery: ...

    async def get_search_queries(self, user_id: int) -> List[SearchQuery]: ...

    async def create_activity(
        self,
        user_id: int,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        details: Optional[str] = None,
    ) -> Activity: ...

    async def get_activities(self, user_id: Optional[int] = None) -> List[Activity]: ...
