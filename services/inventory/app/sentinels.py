"""
Inventory Service — デモ用センチネル

productId の末尾 (大文字小文字を区別) でエラーや遅延を意図的に起こし、
トレース上でどう見えるかを確認できるようにする。

  xxx-with-error → SimulatedInventoryError
  xxx-with-delay → delay 秒待ってから通常どおり応答
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

ERROR_SUFFIX = "-with-error"
DELAY_SUFFIX = "-with-delay"
SIMULATED_DELAY = 1.0


class SimulatedInventoryError(RuntimeError):
    """センチネルで意図的に発生させる在庫エラー"""


def is_error_product(product_id: str) -> bool:
    return product_id.endswith(ERROR_SUFFIX)


def is_delay_product(product_id: str) -> bool:
    return product_id.endswith(DELAY_SUFFIX)


async def apply(product_id: str, operation: str, delay: float = SIMULATED_DELAY) -> None:
    """センチネルに応じて例外を投げるか、遅延させる。"""
    if is_error_product(product_id):
        logger.error("Detected error-triggering product ID: %s", product_id)
        raise SimulatedInventoryError(
            f"Intentional {operation} error for product: {product_id}"
        )

    if is_delay_product(product_id):
        logger.info("Detected delay-triggering product ID: %s", product_id)
        await asyncio.sleep(delay)
        logger.info("Delay complete for product: %s", product_id)
