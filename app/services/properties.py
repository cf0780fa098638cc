from typing import List, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.database import PROPERTIES_COLL, USERS_COLL
from models.property import Property, PropertyCreate, PropertyRequest, PropertyStatus
from utils.exceptions import InvalidInputError, NotFoundError

logger = structlog.get_logger(__name__)


class PropertyService:
    def __init__(self, db: AsyncIOMotorDatabase, page_size: int = 6):
        self.properties = db[PROPERTIES_COLL]
        self.users = db[USERS_COLL]
        self.page_size = page_size

    async def get(self, property_id) -> Property:
        doc = await self.properties.find_one({"_id": property_id})
        if not doc:
            raise NotFoundError("Property not found")
        return Property.model_validate(doc)

    async def create(self, data: PropertyCreate) -> Property:
        prop = Property(**data.model_dump())
        await self.properties.insert_one(prop.to_mongo())
        logger.info("property_added", property_id=str(prop.id), rent=prop.rent)
        return prop

    async def list_page(self, page: int = 1) -> Tuple[List[Property], int]:
        page = max(page, 1)
        total = await self.properties.count_documents({})
        cursor = self.properties.find({}).skip((page - 1) * self.page_size).limit(self.page_size)
        docs = await cursor.to_list(length=self.page_size)
        return [Property.model_validate(d) for d in docs], total

    async def request(self, data: PropertyRequest) -> Property:
        """Tenant asks for an available property; it becomes `requested`."""
        prop = await self.get(data.property_id)
        if prop.status != PropertyStatus.AVAILABLE:
            raise InvalidInputError("Property not available")

        result = await self.properties.update_one(
            {"_id": prop.id, "status": PropertyStatus.AVAILABLE.value},
            {"$set": {"status": PropertyStatus.REQUESTED.value, "tenant_id": data.tenant_id}},
        )
        if result.modified_count != 1:
            raise InvalidInputError("Property not available")

        prop.status = PropertyStatus.REQUESTED
        prop.tenant_id = data.tenant_id
        logger.info("property_requested", property_id=str(prop.id), tenant_id=str(data.tenant_id))
        return prop

    async def pending_requests(self) -> List[dict]:
        """Requested properties with the requesting tenant's name and email."""
        cursor = self.properties.find({"status": PropertyStatus.REQUESTED.value})
        docs = await cursor.to_list(length=None)
        requests = []
        for doc in docs:
            prop = Property.model_validate(doc)
            item = prop.model_dump(by_alias=True)
            tenant = await self.users.find_one({"_id": prop.tenant_id}) if prop.tenant_id else None
            item["tenant"] = (
                {"_id": tenant["_id"], "name": tenant.get("name"), "email": tenant.get("email")}
                if tenant else None
            )
            requests.append(item)
        return requests
