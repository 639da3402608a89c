"""
Inventory Service — コマンドハンドラ (在庫引き当て)

実際の在庫は減らさない。要求数量に関わらず残数 95 を返す。
"""

import logging

from opentelemetry.context import Context
from opentelemetry.trace import SpanKind

from services.shared.tracing import SpanEmitter, SpanStatus

from . import sentinels

logger = logging.getLogger(__name__)

REMAINING_QUANTITY = 95


async def reserve_inventory(
    emitter: SpanEmitter,
    order_id: str,
    product_id: str,
    quantity: int,
    parent: Context | None = None,
    delay: float = sentinels.SIMULATED_DELAY,
) -> dict:
    """在庫引き当てコマンド"""
    logger.info(
        "Reserving inventory for order: %s, product: %s, quantity: %d",
        order_id,
        product_id,
        quantity,
    )

    with emitter.span(
        "inventory-reservation",
        {
            "order.id": order_id,
            "product.id": product_id,
            "order.quantity": quantity,
        },
        parent=parent,
        kind=SpanKind.SERVER,
    ) as span:
        try:
            await sentinels.apply(product_id, "inventory reservation", delay)

            logger.info(
                "Reserved %d units of product %s. Remaining: %d",
                quantity,
                product_id,
                REMAINING_QUANTITY,
            )
            span.set_attribute("inventory.remaining", REMAINING_QUANTITY)
            span.add_event("Inventory successfully reserved")

            return {
                "success": True,
                "message": "Inventory reserved successfully",
                "remaining_quantity": REMAINING_QUANTITY,
            }
        except Exception as e:
            logger.exception("Error during inventory reservation")
            span.record_exception(e)
            span.set_status(SpanStatus.ERROR, f"Error reserving inventory: {e}")
            raise
