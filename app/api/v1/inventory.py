from fastapi import APIRouter, Depends

from app.api.dependencies import Services, get_services
from app.schemas.response import SuccessResponse

router = APIRouter()


@router.get("", response_model=SuccessResponse)
async def list_inventory(services: Services = Depends(get_services)):
    """Lists the current stock of every ingredient."""
    items = await services.inventory.list()
    return SuccessResponse(data=[item.model_dump(mode="json") for item in items])


@router.get("/{ingredient_id}", response_model=SuccessResponse)
async def get_inventory_stock(ingredient_id: int, services: Services = Depends(get_services)):
    """Fetches the available stock for a specific ingredient."""
    item = await services.inventory.get_by_id(ingredient_id)
    return SuccessResponse(data=item.model_dump(mode="json"))
