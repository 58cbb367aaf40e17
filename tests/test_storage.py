# tests/test_storage.py
import json

import pytest
from pydantic import ValidationError

from policydesk.models import DocumentCreate, DocumentStatus
from policydesk.storage.memory import MemoryStorage, load_policy_seed


def new_document(user_id: int = 1) -> DocumentCreate:
    return DocumentCreate(
        title="Doc",
        file_name="doc.txt",
        file_path="/tmp/doc.txt",
        file_type="TXT",
        file_size=10,
        uploaded_by=user_id,
    )


class TestDocuments:

    @pytest.mark.asyncio
    async def test_ids_auto_increment(self):
        storage = MemoryStorage()

        first = await storage.create_document(new_document())
        second = await storage.create_document(new_document())

        assert (first.id, second.id) == (1, 2)
        assert first.status == DocumentStatus.PENDING
        assert first.file_type.value == "txt"

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        storage = MemoryStorage()
        document = await storage.create_document(new_document())

        document.title = "mutated"

        assert (await storage.get_document(document.id)).title == "Doc"

    @pytest.mark.asyncio
    async def test_partial_update(self):
        storage = MemoryStorage()
        document = await storage.create_document(new_document())

        updated = await storage.update_document(document.id, status=DocumentStatus.PROCESSING)

        assert updated.status == DocumentStatus.PROCESSING
        assert updated.title == "Doc"
        assert updated.created_at == document.created_at

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_record_untouched(self):
        storage = MemoryStorage()
        document = await storage.create_document(new_document())

        with pytest.raises(ValidationError):
            await storage.update_document(document.id, summary="too early")

        assert (await storage.get_document(document.id)).summary is None

    @pytest.mark.asyncio
    async def test_update_unknown(self):
        assert await MemoryStorage().update_document(5, title="x") is None

    @pytest.mark.asyncio
    async def test_documents_by_user(self):
        storage = MemoryStorage()
        await storage.create_document(new_document(1))
        await storage.create_document(new_document(2))
        await storage.create_document(new_document(1))

        documents = await storage.get_documents_by_user(1)

        assert {d.id for d in documents} == {1, 3}


class TestPolicies:

    @pytest.mark.asyncio
    async def test_create_after_seed_continues_ids(self, policy_storage):
        policy = await policy_storage.create_policy("New", "content")

        assert policy.id == 9
        assert (await policy_storage.get_policy(9)).title == "New"
        assert [p.id for p in await policy_storage.get_policies()] == [3, 5, 8, 9]

    def test_load_policy_seed(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps([
            {"id": 4, "title": "Security", "content": "Lock screens.", "policyRef": "SEC-1"},
            {"title": "Travel", "content": "Book economy."},
        ]))

        policies = load_policy_seed(str(path))

        assert [(p.id, p.title) for p in policies] == [(4, "Security"), (5, "Travel")]
        assert policies[0].policy_ref == "SEC-1"

    def test_seed_must_be_list(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"title": "x"}))

        with pytest.raises(ValueError):
            load_policy_seed(str(path))
