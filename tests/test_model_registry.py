"""
Tests for tenant model handles and the model registry cache.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pydantic import BaseModel

from jazzam_backend.database.model_registry import ModelRegistry, TenantModel, default_collection_name


class LeadSchema(BaseModel):
    id: Optional[str] = None
    name: str
    email: Optional[str] = None


class NoteSchema(BaseModel):
    body: str


def test_default_collection_name():
    assert default_collection_name("Lead") == "leads"
    assert default_collection_name("FollowUp") == "followups"
    assert default_collection_name("Status") == "status"


def test_same_connection_returns_same_handle(model_registry, make_connection):
    connection = make_connection("tenant-a")

    first = model_registry.get_model(connection, "Lead", LeadSchema)
    second = model_registry.get_model(connection, "Lead", LeadSchema)

    assert first is second
    assert len(model_registry) == 1
    assert connection.models["Lead"] is first


def test_handles_are_isolated_per_tenant(model_registry, make_connection):
    a = make_connection("tenant-a")
    b = make_connection("tenant-b")

    lead_a = model_registry.get_model(a, "Lead", LeadSchema)
    lead_b = model_registry.get_model(b, "Lead", LeadSchema)

    assert lead_a is not lead_b
    assert lead_a.connection is a
    assert lead_b.connection is b
    a.database.__getitem__.assert_called_with("leads")


def test_recreated_connection_gets_fresh_handle(model_registry, make_connection):
    old = make_connection("tenant-a")
    new = make_connection("tenant-a")

    assert model_registry.get_model(old, "Lead", LeadSchema) is not model_registry.get_model(new, "Lead", LeadSchema)


def test_model_already_on_connection_is_reused(model_registry, make_connection):
    connection = make_connection("tenant-a")
    existing = TenantModel(connection, "Lead", LeadSchema)
    connection.models["Lead"] = existing

    assert model_registry.get_model(connection, "Lead", LeadSchema) is existing


def test_clear_cache_removes_only_that_tenant(model_registry, make_connection):
    a = make_connection("tenant-a")
    b = make_connection("tenant-b")
    model_registry.get_model(a, "Lead", LeadSchema)
    model_registry.get_model(a, "Note", NoteSchema)
    model_registry.get_model(b, "Lead", LeadSchema)

    assert model_registry.clear_cache("tenant-a") == 2
    assert len(model_registry) == 1


def test_discard_connection(model_registry, make_connection):
    a = make_connection("tenant-a")
    model_registry.get_model(a, "Lead", LeadSchema)

    assert model_registry.discard_connection(a) == 1
    assert model_registry.discard_connection(a) == 0


@pytest.fixture
def lead_model(make_connection):
    return TenantModel(make_connection("tenant-a"), "Lead", LeadSchema)


@pytest.mark.asyncio
async def test_insert_validates_and_returns_id(lead_model):
    inserted_id = ObjectId()
    lead_model.collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=inserted_id))

    result = await lead_model.insert_one({"name": "Acme", "email": "ops@acme.io"})

    assert result == str(inserted_id)
    lead_model.collection.insert_one.assert_awaited_once_with({"name": "Acme", "email": "ops@acme.io"})


@pytest.mark.asyncio
async def test_insert_rejects_invalid_document(lead_model):
    lead_model.collection.insert_one = AsyncMock()

    with pytest.raises(ValueError):
        await lead_model.insert_one({"email": "missing-name@acme.io"})

    lead_model.collection.insert_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_by_id_maps_object_id(lead_model):
    oid = ObjectId()
    lead_model.collection.find_one = AsyncMock(return_value={"_id": oid, "name": "Acme"})

    lead = await lead_model.find_by_id(str(oid))

    assert lead.id == str(oid)
    assert lead.name == "Acme"
    lead_model.collection.find_one.assert_awaited_once_with({"_id": oid})


@pytest.mark.asyncio
async def test_find_one_missing_returns_none(lead_model):
    lead_model.collection.find_one = AsyncMock(return_value=None)

    assert await lead_model.find_by_id("not-an-object-id") is None
    lead_model.collection.find_one.assert_awaited_once_with({"_id": "not-an-object-id"})


@pytest.mark.asyncio
async def test_find_many_applies_paging(lead_model):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[{"_id": ObjectId(), "name": "A"}, {"_id": ObjectId(), "name": "B"}])
    lead_model.collection.find = MagicMock(return_value=cursor)

    leads = await lead_model.find_many({"status": "new"}, limit=2, skip=4, sort=[("name", 1)])

    assert [lead.name for lead in leads] == ["A", "B"]
    cursor.sort.assert_called_once_with([("name", 1)])
    cursor.skip.assert_called_once_with(4)
    cursor.limit.assert_called_once_with(2)


@pytest.mark.asyncio
async def test_update_and_delete_return_counts(lead_model):
    lead_model.collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1, modified_count=1))
    lead_model.collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    lead_model.collection.count_documents = AsyncMock(return_value=3)

    assert await lead_model.update_one({"name": "A"}, {"email": "a@acme.io"}) == 1
    lead_model.collection.update_one.assert_awaited_once_with({"name": "A"}, {"$set": {"email": "a@acme.io"}})
    assert await lead_model.delete_one({"name": "A"}) == 1
    assert await lead_model.count_documents() == 3
