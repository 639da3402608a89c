"""
Shipping Service — コマンドハンドラ (出荷作成)

スタブの協力者。常に成功し、確認メッセージを返すだけ。
"""

import logging

from opentelemetry.context import Context
from opentelemetry.trace import SpanKind

from services.shared.tracing import SpanEmitter

logger = logging.getLogger(__name__)

SHIPMENT_ACK = "Shipped!"


async def create_shipment(
    emitter: SpanEmitter,
    order_id: str,
    parent: Context | None = None,
) -> str:
    with emitter.span(
        "shipment-creation",
        {"order.id": order_id},
        parent=parent,
        kind=SpanKind.SERVER,
    ) as span:
        logger.info("Creating shipment for order: %s", order_id)
        span.add_event("Shipment created")
        return SHIPMENT_ACK
