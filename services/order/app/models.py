"""
Order Service — モデル定義

Order / OrderOutcome はリクエストごとに作られ、保存されない。
下流サービスのレスポンスモデルもここで受ける側として定義する。
"""

from enum import Enum

from pydantic import BaseModel, Field

from services.shared.schemas import CamelModel


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    FAILED = "FAILED"
    ERROR = "ERROR"


class SagaState(str, Enum):
    """
    注文作成 Saga の状態

        START → INVENTORY_CHECK → INVENTORY_RESERVE → SHIPMENT_CREATE → DONE
        どの状態からでも FAILED / ERROR へ遷移しうる
    """

    START = "START"
    INVENTORY_CHECK = "INVENTORY_CHECK"
    INVENTORY_RESERVE = "INVENTORY_RESERVE"
    SHIPMENT_CREATE = "SHIPMENT_CREATE"
    DONE = "DONE"
    FAILED = "FAILED"
    ERROR = "ERROR"


class Order(BaseModel):
    order_id: str
    product_id: str
    amount: int = Field(gt=0)


class OrderOutcome(CamelModel):
    order_id: str
    status: OrderStatus
    message: str


class StepResult(BaseModel):
    """Saga の1ステップの結果。下流の失敗は例外ではなくこの値で返す。"""
    ok: bool
    detail: str


# ── Request Models ───────────────────────────────


class CreateOrderRequest(CamelModel):
    product_id: str = Field(min_length=1)
    amount: int = Field(gt=0)


# ── 下流サービスのレスポンス ─────────────────────


class InventoryResponse(CamelModel):
    available: bool
    quantity: int


class ReserveInventoryResponse(CamelModel):
    success: bool
    message: str
    remaining_quantity: int
