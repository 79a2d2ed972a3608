"""
Company directory: tenant-record lookups against the shared system database.
"""

from typing import Any, List, Optional

from bson import ObjectId

from jazzam_backend.managers.logging_manager import get_logger
from jazzam_backend.models.company_models import CompanyRecord

logger = get_logger(prefix="[CompanyDirectory]")


class CompanyDirectory:
    """
    Reads company accounts from the system database.

    Args:
        db_manager: A connected `DatabaseManager`.
        collection_name: Collection holding company accounts.
    """

    def __init__(self, db_manager: Any, collection_name: str = "companies"):
        self.db_manager = db_manager
        self.collection_name = collection_name

    @property
    def collection(self):
        return self.db_manager.get_collection(self.collection_name)

    async def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        """Return the company with `company_id`, or `None` if the id is not an ObjectId or unknown."""
        if not ObjectId.is_valid(company_id):
            logger.debug(f"Rejected non-ObjectId company id: {company_id}")
            return None
        document = await self.collection.find_one({"_id": ObjectId(company_id)})
        if document is None:
            return None
        return CompanyRecord.from_document(document)

    async def list_active_companies(self, limit: int = 20) -> List[CompanyRecord]:
        """Active company accounts, used to warm tenant connections at startup."""
        cursor = self.collection.find(
            {"userType": "company", "isActive": True},
            {"_id": 1, "email": 1, "userType": 1, "isActive": 1},
        ).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [CompanyRecord.from_document(document) for document in documents]
