from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.MongoORJSONResponse import bson_default
from core.config import Settings, get_settings
from core.database import get_database
from models.property import ApproveRequest, PropertyCreate, PropertyRequest
from services.leases import LeaseService
from services.properties import PropertyService

router = APIRouter(prefix="/api", tags=["properties"])


def get_property_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    settings: Settings = Depends(get_settings),
) -> PropertyService:
    return PropertyService(db, page_size=settings.PROPERTIES_PAGE_SIZE)


def get_lease_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> LeaseService:
    return LeaseService(db)


@router.get("/properties")
async def list_properties(
    page: int = Query(1, ge=1),
    properties: PropertyService = Depends(get_property_service),
):
    items, total = await properties.list_page(page)
    return bson_default({"properties": items, "total": total})


@router.post("/properties")
async def add_property(data: PropertyCreate, properties: PropertyService = Depends(get_property_service)):
    prop = await properties.create(data)
    return bson_default({"msg": "Property added", "prop": prop})


@router.post("/tenant/request")
async def request_property(data: PropertyRequest, properties: PropertyService = Depends(get_property_service)):
    prop = await properties.request(data)
    return bson_default({"msg": "Request sent to manager", "prop": prop})


@router.get("/manager/requests")
async def manager_requests(properties: PropertyService = Depends(get_property_service)):
    return bson_default({"requests": await properties.pending_requests()})


@router.post("/manager/approve")
async def approve_request(data: ApproveRequest, leases: LeaseService = Depends(get_lease_service)):
    lease = await leases.approve(data.property_id)
    return bson_default({"msg": "Lease generated and property approved", "lease": lease})
