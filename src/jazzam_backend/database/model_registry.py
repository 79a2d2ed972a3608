"""
# Tenant Model Registry

Typed data-access handles for tenant databases.

A `TenantModel` binds one entity (e.g. `"Lead"`) and its Pydantic schema to one tenant connection.
Because every tenant lives in its own database, a model never needs a `tenant_id` filter: the
connection it is bound to *is* the isolation boundary.

The `ModelRegistry` makes sure a handle is built at most once per (connection, entity name):

```
get_model(connection, "Lead", LeadSchema)
   │
   ├── cached for (db name, connection id, "Lead")? ──▶ return it
   ├── connection.models["Lead"] already set?        ──▶ cache + return it
   └── build TenantModel(connection, "Lead", LeadSchema), register on connection, cache, return
```

## Usage

```python
registry = ModelRegistry()
Lead = registry.get_model(request.state.tenant_connection, "Lead", LeadSchema)

lead_id = await Lead.insert_one({"name": "Acme", "email": "ops@acme.io"})
lead = await Lead.find_by_id(lead_id)  # LeadSchema instance
```
"""

from typing import Any, Dict, List, Optional, Tuple, Type, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

from jazzam_backend.database.tenant_uri import DEFAULT_TENANT_DB_PREFIX, tenant_database_name
from jazzam_backend.managers.logging_manager import get_logger

logger = get_logger(prefix="[Tenant Models]")

CacheKey = Tuple[str, str, str]


def default_collection_name(model_name: str) -> str:
    """`"Lead"` -> `"leads"`, `"FollowUp"` -> `"followups"`."""
    name = model_name.lower()
    return name if name.endswith("s") else f"{name}s"


class TenantModel:
    """
    Schema-bound accessor over one collection of one tenant database.

    Writes are validated with the schema before they reach MongoDB; reads are parsed back into
    schema instances (the MongoDB `_id` is exposed as `id` when the schema declares it).

    Attributes:
        connection: The `TenantConnection` this model is bound to.
        name (`str`): Entity name, e.g. `"Lead"`.
        schema (`Type[BaseModel]`): Pydantic schema for documents.
        collection: The underlying Motor collection.
    """

    def __init__(self, connection: Any, name: str, schema: Type[BaseModel], collection_name: Optional[str] = None):
        self.connection = connection
        self.name = name
        self.schema = schema
        self.collection_name = collection_name or default_collection_name(name)
        self.collection = connection.database[self.collection_name]

    def __repr__(self) -> str:
        return f"TenantModel(name={self.name!r}, database={self.connection.name!r})"

    def _to_document(self, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
        instance = data if isinstance(data, self.schema) else self.schema.model_validate(data)
        document = instance.model_dump(exclude_none=True)
        document.pop("id", None)
        return document

    def _from_document(self, document: Optional[Dict[str, Any]]) -> Optional[BaseModel]:
        if document is None:
            return None
        document = dict(document)
        if "_id" in document:
            document["id"] = str(document.pop("_id"))
        return self.schema.model_validate(document)

    @staticmethod
    def _id_filter(document_id: Any) -> Dict[str, Any]:
        if isinstance(document_id, str):
            try:
                return {"_id": ObjectId(document_id)}
            except InvalidId:
                return {"_id": document_id}
        return {"_id": document_id}

    async def find_one(self, filter: Optional[Dict[str, Any]] = None, *args, **kwargs) -> Optional[BaseModel]:
        document = await self.collection.find_one(filter or {}, *args, **kwargs)
        logger.debug(f"find_one {self.name} in {self.connection.name}: {'found' if document else 'not found'}")
        return self._from_document(document)

    async def find_by_id(self, document_id: Any) -> Optional[BaseModel]:
        return await self.find_one(self._id_filter(document_id))

    async def find_many(
        self, filter: Optional[Dict[str, Any]] = None, limit: int = 100, skip: int = 0, sort: Optional[List] = None
    ) -> List[BaseModel]:
        cursor = self.collection.find(filter or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [self._from_document(document) for document in documents]

    async def insert_one(self, data: Union[BaseModel, Dict[str, Any]]) -> str:
        """Validate and insert one document. Returns the new id as a string."""
        result = await self.collection.insert_one(self._to_document(data))
        logger.debug(f"insert_one {self.name} in {self.connection.name}: inserted_id={result.inserted_id}")
        return str(result.inserted_id)

    async def update_one(self, filter: Dict[str, Any], changes: Dict[str, Any], **kwargs) -> int:
        """Apply `$set: changes` to the first match. Returns the modified count."""
        result = await self.collection.update_one(filter, {"$set": changes}, **kwargs)
        logger.debug(
            "update_one %s in %s: matched=%d, modified=%d",
            self.name,
            self.connection.name,
            result.matched_count,
            result.modified_count,
        )
        return result.modified_count

    async def delete_one(self, filter: Dict[str, Any]) -> int:
        result = await self.collection.delete_one(filter)
        return result.deleted_count

    async def count_documents(self, filter: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection.count_documents(filter or {})


class ModelRegistry:
    """
    Cache of `TenantModel` handles keyed by (database name, connection id, entity name).

    Schemas are treated as immutable for the process lifetime: the first schema registered for a
    name on a connection wins.
    """

    def __init__(self, db_prefix: str = DEFAULT_TENANT_DB_PREFIX):
        self.db_prefix = db_prefix
        self._cache: Dict[CacheKey, TenantModel] = {}

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def _key(connection: Any, model_name: str) -> CacheKey:
        return (connection.name, connection.connection_id, model_name)

    def get_model(self, connection: Any, model_name: str, schema: Type[BaseModel]) -> TenantModel:
        """
        Return the handle for `model_name` on `connection`, building it on first use.

        Args:
            connection: A `TenantConnection` from the pool.
            model_name: Entity name, e.g. `"Lead"`.
            schema: Pydantic schema for the entity.
        """
        key = self._key(connection, model_name)
        model = self._cache.get(key)
        if model is not None:
            return model

        model = connection.models.get(model_name)
        if model is not None:
            self._cache[key] = model
            return model

        model = TenantModel(connection, model_name, schema)
        connection.models[model_name] = model
        self._cache[key] = model
        logger.info(f"Created model {model_name} for database: {connection.name}")
        return model

    def discard_connection(self, connection: Any) -> int:
        """Drop every handle bound to `connection`. Returns the number removed."""
        keys = [key for key in self._cache if key[1] == connection.connection_id]
        for key in keys:
            del self._cache[key]
        return len(keys)

    def clear_cache(self, tenant_id: str) -> int:
        """Drop every handle for the tenant's database, whichever connection built it."""
        db_name = tenant_database_name(tenant_id, self.db_prefix)
        keys = [key for key in self._cache if key[0] == db_name]
        for key in keys:
            del self._cache[key]
        logger.info(f"Cleared model cache for tenant: {tenant_id} ({len(keys)} models)")
        return len(keys)
