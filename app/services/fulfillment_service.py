import logging
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Union

from app.core.errors import ConflictError, InsufficientStock
from app.models.order import OrderStatus
from app.repositories.base import OrderRepository, Storage
from app.schemas.inventory import InventoryReservation
from app.schemas.order import AcceptedOrder, BatchSummary, OrderRecord, OrderRequest, RejectedOrder
from app.services.inventory_service import InventoryLedger

log = logging.getLogger(__name__)

REJECTED_INSUFFICIENT_INVENTORY = "insufficient_inventory"
REJECTED_DUPLICATE = "duplicate_order"


class FulfillmentEngine:
    """
    Turns submitted orders into persisted orders with reserved stock.

    Both entry points hold one transaction around check-and-reserve and the
    order inserts, so stock is never deducted for an order that was not saved
    and an order is never saved without its stock.
    """

    def __init__(self, storage: Storage, ledger: InventoryLedger, orders: OrderRepository):
        self.storage = storage
        self.ledger = ledger
        self.orders = orders

    async def create_order(self, request: OrderRequest) -> OrderRecord:
        """
        Places a single order. Raises InsufficientStock (nothing is written) when
        any ingredient falls short.
        """
        async with self.storage.transaction() as conn:
            if request.idempotency_key:
                existing = await self.orders.find_by_idempotency_key(request.idempotency_key, conn)
                if existing:
                    raise ConflictError(
                        f"order already exists with ID {existing.id}",
                        details={"order_id": existing.id},
                    )

            reservation = await self.ledger.check_and_reserve(request.items, conn)
            order = await self.orders.create(
                request,
                OrderStatus.PENDING,
                reservation.total_amount,
                reservation.unit_prices,
                conn,
                idempotency_key=request.idempotency_key,
            )

        log.info(f"Order {order.id} created for {order.customer_name}, total {order.total_amount}")
        return order

    async def process_batch(self, requests: Sequence[OrderRequest]) -> BatchSummary:
        """
        Processes orders in submission order inside one transaction, so earlier
        orders get the first claim on scarce stock. Orders that cannot be covered
        are stored as rejected and the batch carries on; a storage failure rolls
        back every decision made so far.
        """
        outcomes: List[Union[AcceptedOrder, RejectedOrder]] = []
        inventory_updates: Dict[int, InventoryReservation] = {}
        total_revenue = Decimal("0")

        try:
            async with self.storage.transaction() as conn:
                for request in requests:
                    outcome = await self._process_one(request, conn, inventory_updates)
                    if isinstance(outcome, AcceptedOrder):
                        total_revenue += outcome.total
                    outcomes.append(outcome)
        except Exception as e:
            log.error(f"Batch of {len(requests)} orders rolled back: {e}")
            raise

        accepted = sum(1 for outcome in outcomes if isinstance(outcome, AcceptedOrder))
        summary = BatchSummary(
            total_orders=len(requests),
            accepted=accepted,
            rejected=len(outcomes) - accepted,
            total_revenue=total_revenue,
            processed_orders=outcomes,
            inventory_updates=list(inventory_updates.values()),
        )
        log.info(
            f"Batch processed: {summary.accepted} accepted, {summary.rejected} rejected, revenue {summary.total_revenue}"
        )
        return summary

    async def _process_one(
        self,
        request: OrderRequest,
        conn: Any,
        inventory_updates: Dict[int, InventoryReservation],
    ) -> Union[AcceptedOrder, RejectedOrder]:
        if request.idempotency_key:
            existing = await self.orders.find_by_idempotency_key(request.idempotency_key, conn)
            if existing:
                return RejectedOrder(
                    customer_name=request.customer_name,
                    reason=REJECTED_DUPLICATE,
                    details={"order_id": existing.id},
                )

        demand = await self.ledger.resolve_demand(request.items, conn)
        try:
            # A key committed by a concurrent request after the lookup above only
            # shows up on insert; the savepoint undoes this order's deductions
            async with self.storage.savepoint(conn) as savepoint:
                reservations = await self.ledger.reserve(demand, savepoint)
                order = await self.orders.create(
                    request,
                    OrderStatus.ACCEPTED,
                    demand.total_amount,
                    demand.unit_prices,
                    savepoint,
                    idempotency_key=request.idempotency_key,
                )
        except ConflictError as e:
            log.info(f"Order for {request.customer_name} rejected: {e.message}")
            return RejectedOrder(
                customer_name=request.customer_name,
                reason=REJECTED_DUPLICATE,
                details=e.details,
            )
        except InsufficientStock as e:
            # Rejected orders keep no idempotency key so the client can resubmit
            order = await self.orders.create(
                request, OrderStatus.REJECTED, demand.total_amount, demand.unit_prices, conn
            )
            log.info(f"Order {order.id} for {request.customer_name} rejected: {e.message}")
            return RejectedOrder(
                order_id=order.id,
                customer_name=request.customer_name,
                reason=REJECTED_INSUFFICIENT_INVENTORY,
                details=e.details,
            )

        for reservation in reservations:
            merged = inventory_updates.get(reservation.ingredient_id)
            if merged is None:
                inventory_updates[reservation.ingredient_id] = reservation
            else:
                merged.quantity_used += reservation.quantity_used
                merged.remaining = reservation.remaining

        log.info(f"Order {order.id} for {request.customer_name} accepted, total {order.total_amount}")
        return AcceptedOrder(order_id=order.id, customer_name=order.customer_name, total=order.total_amount)
