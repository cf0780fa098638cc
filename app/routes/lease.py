from fastapi import APIRouter, Depends

from core.MongoORJSONResponse import PyObjectId, bson_default
from models.lease import LeasePayRequest
from routes.properties import get_lease_service
from services.leases import LeaseService

router = APIRouter(prefix="/api", tags=["leases"])


@router.get("/tenant/lease/{tenant_id}")
async def tenant_lease(tenant_id: PyObjectId, leases: LeaseService = Depends(get_lease_service)):
    lease, prop = await leases.for_tenant(tenant_id)
    data = bson_default(lease)
    data["property"] = bson_default(prop)
    return {"lease": data}


@router.post("/lease/pay")
async def pay_lease(data: LeasePayRequest, leases: LeaseService = Depends(get_lease_service)):
    """Settle the current calendar month of a lease (initial or monthly payment)."""
    lease, entry = await leases.pay_current_month(data)
    return bson_default({
        "success": True,
        "message": f"Payment for {entry.month} recorded successfully.",
        "lease": lease,
    })
