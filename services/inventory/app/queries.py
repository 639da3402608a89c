"""
Inventory Service — クエリハンドラ (在庫確認)

永続化は無いので、在庫数は固定値を返す。
"""

import logging

from opentelemetry.context import Context
from opentelemetry.trace import SpanKind

from services.shared.tracing import SpanEmitter, SpanStatus

from . import sentinels

logger = logging.getLogger(__name__)

AVAILABLE_QUANTITY = 100


async def check_availability(
    emitter: SpanEmitter,
    product_id: str,
    parent: Context | None = None,
    delay: float = sentinels.SIMULATED_DELAY,
) -> dict:
    """
    在庫確認クエリ

    1. inventory-lookup スパンを開く
    2. センチネルを評価 (エラー / 遅延)
    3. 在庫あり・数量 100 を返す
    例外はスパンに記録してから呼び出し元に再送出する。
    """
    logger.info("Checking inventory for product: %s", product_id)

    with emitter.span(
        "inventory-lookup",
        {"product.id": product_id},
        parent=parent,
        kind=SpanKind.SERVER,
    ) as span:
        try:
            span.add_event("Starting inventory database lookup")
            await sentinels.apply(product_id, "inventory", delay)

            available = True
            quantity = AVAILABLE_QUANTITY
            logger.info("Found %d units of product %s", quantity, product_id)

            span.set_attribute("inventory.available", available)
            span.set_attribute("inventory.quantity", quantity)
            span.add_event("Product available")

            return {"available": available, "quantity": quantity}
        except Exception as e:
            logger.exception("Error during inventory check")
            span.record_exception(e)
            span.set_status(SpanStatus.ERROR, f"Error checking inventory: {e}")
            raise
