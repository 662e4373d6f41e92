"""
Product Catalog (MongoDB)

Products are schema-flexible documents keyed by a string ``_id``. Only
title, author, price and imageUrl are guaranteed; series metadata and other
extension fields may appear on any document.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from pymongo.asynchronous.collection import AsyncCollection

logger = structlog.get_logger(__name__)

PUBLIC_FIELDS = ("title", "author", "price", "imageUrl")


def to_public(document: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored document to the API shape (``_id`` becomes ``id``)."""
    product = {"id": document["_id"]}
    for field_name in PUBLIC_FIELDS:
        product[field_name] = document.get(field_name)
    return product


class ProductCatalog:
    """Read/write access to the products collection."""

    def __init__(self, collection: AsyncCollection):
        self.collection = collection

    async def list_products(self) -> List[Dict[str, Any]]:
        documents = await self.documents()
        return [to_public(doc) for doc in documents]

    async def get(self, product_id: str) -> Optional[Dict[str, Any]]:
        document = await self.collection.find_one({"_id": product_id})
        return to_public(document) if document else None

    async def documents(self) -> List[Dict[str, Any]]:
        """Full collection scan returning raw documents."""
        cursor = self.collection.find({})
        return await cursor.to_list(length=None)

    async def replace_all(self, documents: Iterable[Dict[str, Any]]) -> int:
        """Delete every product and insert the given documents."""
        docs = [dict(doc) for doc in documents]
        await self.collection.delete_many({})
        if docs:
            await self.collection.insert_many(docs)
        logger.info("Products collection replaced", documents=len(docs))
        return len(docs)
