import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.api.dependencies import Services, get_services
from app.core.errors import ServiceError
from app.schemas.order import BatchOrderRequest, OrderRequest, OrderUpdateRequest
from app.schemas.response import SuccessResponse

router = APIRouter()
log = logging.getLogger("uvicorn")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest, services: Services = Depends(get_services)):
    """
    Places a new order. Stock for every ingredient is reserved before the order is stored.
    """
    try:
        order = await services.fulfillment.create_order(request_data)
        log.info(f"Order {order.id} placed successfully for {order.customer_name}.")
        return SuccessResponse(data=order.model_dump(mode="json"))
    except ServiceError as e:
        log.error(f"Failed to create order: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error placing order: {e}")
        raise HTTPException(status_code=500, detail="Server failed to place order.")


@router.post("/batch-process", response_model=SuccessResponse)
async def batch_process_endpoint(request_data: BatchOrderRequest, services: Services = Depends(get_services)):
    """
    Processes several orders in one transaction. Orders that cannot be covered by
    stock are rejected individually; a storage failure rolls back the whole batch.
    """
    try:
        summary = await services.fulfillment.process_batch(request_data.orders)
        return SuccessResponse(data=summary.model_dump(mode="json"))
    except ServiceError as e:
        log.error(f"Failed to process batch: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error processing batch: {e}")
        raise HTTPException(status_code=500, detail="Server failed to process orders.")


@router.get("", response_model=SuccessResponse)
async def list_orders_endpoint(services: Services = Depends(get_services)):
    orders = await services.orders.list_orders()
    return SuccessResponse(data=[order.model_dump(mode="json") for order in orders])


@router.get("/numberOfOrderedItems", response_model=SuccessResponse)
async def ordered_items_count_endpoint(
    start_date: Optional[date] = Query(None, alias="startDate", description="YYYY-MM-DD, inclusive"),
    end_date: Optional[date] = Query(None, alias="endDate", description="YYYY-MM-DD, inclusive"),
    services: Services = Depends(get_services),
):
    """Counts ordered quantities per menu item for orders created in the period."""
    counts = await services.orders.get_ordered_items_count(start_date, end_date)
    return SuccessResponse(data=counts)


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: int, services: Services = Depends(get_services)):
    """Fetches details for a specific order."""
    order = await services.orders.get_order(order_id)
    return SuccessResponse(data=order.model_dump(mode="json"))


@router.get("/{order_id}/history", response_model=SuccessResponse)
async def get_order_history_endpoint(order_id: int, services: Services = Depends(get_services)):
    """Returns the field-level change records and status history of an order."""
    changes = await services.orders.get_change_history(order_id)
    statuses = await services.orders.get_status_history(order_id)
    return SuccessResponse(data={
        "changes": [change.model_dump(mode="json") for change in changes],
        "status_history": [row.model_dump(mode="json") for row in statuses],
    })


@router.put("/{order_id}", response_model=SuccessResponse)
async def update_order_endpoint(
    order_id: int, payload: OrderUpdateRequest, services: Services = Depends(get_services)
):
    """
    Updates customer name, items, special instructions or status. Completed orders are read-only.
    """
    try:
        order = await services.orders.update_order(order_id, payload)
        return SuccessResponse(data=order.model_dump(mode="json"))
    except ServiceError as e:
        log.error(f"Failed to update order {order_id}: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error updating order {order_id}: {e}")
        raise HTTPException(status_code=500, detail="Server failed to update order.")


@router.post("/{order_id}/close", response_model=SuccessResponse)
async def close_order_endpoint(order_id: int, services: Services = Depends(get_services)):
    """Marks the order completed."""
    try:
        order = await services.orders.close_order(order_id)
        return SuccessResponse(data=order.model_dump(mode="json"))
    except ServiceError as e:
        log.error(f"Failed to close order {order_id}: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error closing order {order_id}: {e}")
        raise HTTPException(status_code=500, detail="Server failed to close order.")


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_endpoint(order_id: int, services: Services = Depends(get_services)):
    await services.orders.delete_order(order_id)
    log.info(f"Order {order_id} deleted.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
