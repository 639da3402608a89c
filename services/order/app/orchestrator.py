"""
Saga Orchestrator — 注文作成 Saga

Saga パターン（オーケストレーション型）:
  Order Service が中央のオーケストレーターとなり、下流サービスを
  順番に同期呼び出しする。どこかのステップが失敗した時点で打ち切る。
  補償トランザクションは行わない。

  フロー:
  ┌─────────────────────────────────────────────────────────┐
  │  1. Inventory Service に在庫確認を依頼                    │
  │  2. Inventory Service に在庫引き当てを依頼                │
  │  3. Shipping Service に出荷作成を依頼                     │
  │     ├─ すべて成功 → CREATED                              │
  │     ├─ いずれか失敗 → FAILED (以降のステップは実行しない) │
  │     └─ 想定外の例外 → ERROR                               │
  └─────────────────────────────────────────────────────────┘

トレース:
  Saga 全体で order-creation-process スパンを1つ開き、各ステップは
  その子スパンになる。子スパンの traceparent を下流へのリクエストに
  載せるので、下流のスパンはステップスパンの子としてつながる。

下流呼び出しの失敗 (エラーステータス・通信エラー・空のレスポンス) は
各ステップ内で StepResult に変換し、例外として Saga の制御に漏らさない。
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import uuid4

import httpx
from opentelemetry.context import Context
from opentelemetry.trace import SpanKind
from pydantic import BaseModel, ValidationError

from services.shared.tracing import SpanEmitter, SpanHandle, SpanStatus

from .models import (
    InventoryResponse,
    Order,
    OrderOutcome,
    OrderStatus,
    ReserveInventoryResponse,
    SagaState,
    StepResult,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Step = Callable[[Order, SpanHandle], Awaitable[StepResult]]


class OrderSagaOrchestrator:
    """注文作成 Saga のオーケストレーター"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        emitter: SpanEmitter,
        inventory_service_url: str,
        shipping_service_url: str,
    ):
        self.client = client
        self.emitter = emitter
        self.inventory_url = inventory_service_url.rstrip("/")
        self.shipping_url = shipping_service_url.rstrip("/")

    async def execute(
        self,
        product_id: str,
        amount: int,
        parent: Context | None = None,
    ) -> OrderOutcome:
        """
        Saga を実行する。

        parent はクライアントから受け取ったトレースコンテキスト。
        無ければ新しいトレースを開始する。
        """
        order = Order(order_id=str(uuid4()), product_id=product_id, amount=amount)
        logger.info(
            "Creating order %s for product %s with quantity %d",
            order.order_id,
            order.product_id,
            order.amount,
        )

        with self.emitter.span(
            "order-creation-process",
            {
                "order.id": order.order_id,
                "product.id": order.product_id,
                "order.quantity": order.amount,
                "saga.state": SagaState.START.value,
            },
            parent=parent,
        ) as root:
            try:
                return await self._run_steps(order, root)
            except Exception as e:
                logger.exception("Unexpected error creating order %s", order.order_id)
                self._transition(root, SagaState.ERROR)
                root.record_exception(e)
                root.set_status(SpanStatus.ERROR, f"Unexpected error: {e}")
                return OrderOutcome(
                    order_id=order.order_id,
                    status=OrderStatus.ERROR,
                    message=f"Unexpected error: {e}",
                )

    async def _run_steps(self, order: Order, root: SpanHandle) -> OrderOutcome:
        steps: list[tuple[SagaState, str, str, Step]] = [
            (
                SagaState.INVENTORY_CHECK,
                "Starting inventory check",
                "Inventory check failed",
                self.check_inventory,
            ),
            (
                SagaState.INVENTORY_RESERVE,
                "Starting inventory reservation",
                "Inventory reservation failed",
                self.reserve_inventory,
            ),
            (
                SagaState.SHIPMENT_CREATE,
                "Starting shipment creation",
                "Shipment creation failed",
                self.create_shipment,
            ),
        ]

        for state, event, failure, step in steps:
            self._transition(root, state)
            root.add_event(event)
            result = await step(order, root)

            if not result.ok:
                logger.warning(
                    "Order %s failed during %s", order.order_id, state.value
                )
                self._transition(root, SagaState.FAILED)
                root.set_status(SpanStatus.ERROR, failure)
                return OrderOutcome(
                    order_id=order.order_id,
                    status=OrderStatus.FAILED,
                    message=f"{failure}: {result.detail}",
                )

        logger.info("Order %s successfully created", order.order_id)
        self._transition(root, SagaState.DONE)
        root.set_status(SpanStatus.OK)
        return OrderOutcome(
            order_id=order.order_id,
            status=OrderStatus.CREATED,
            message="Order successfully created",
        )

    # ── Step 1: 在庫確認 ──────────────────────────

    async def check_inventory(self, order: Order, root: SpanHandle) -> StepResult:
        with self._step_span("check-inventory", order, root) as span:
            logger.debug("Checking inventory for product %s", order.product_id)
            try:
                resp = await self._post(
                    span,
                    f"{self.inventory_url}/inventory/check",
                    {"productId": order.product_id},
                )
            except httpx.HTTPError as e:
                return self._step_failed(span, "checking inventory", e)

            body = _parse(resp, InventoryResponse)
            if body is None:
                return self._invalid_response(span, "inventory")

            span.set_attribute("inventory.available", body.available)
            span.set_attribute("inventory.quantity", body.quantity)
            logger.info("Inventory check successful for product %s", order.product_id)
            return StepResult(ok=True, detail="Inventory available")

    # ── Step 2: 在庫引き当て ──────────────────────

    async def reserve_inventory(self, order: Order, root: SpanHandle) -> StepResult:
        with self._step_span("reserve-inventory", order, root) as span:
            logger.debug(
                "Reserving inventory for order %s, product %s, quantity %d",
                order.order_id,
                order.product_id,
                order.amount,
            )
            try:
                resp = await self._post(
                    span,
                    f"{self.inventory_url}/inventory/reserve",
                    {
                        "orderId": order.order_id,
                        "productId": order.product_id,
                        "quantity": order.amount,
                    },
                )
            except httpx.HTTPError as e:
                return self._step_failed(span, "reserving inventory", e)

            body = _parse(resp, ReserveInventoryResponse)
            if body is None:
                return self._invalid_response(span, "inventory")

            span.set_attribute("reservation.success", body.success)
            span.set_attribute("inventory.remaining", body.remaining_quantity)
            logger.info("Successfully reserved inventory for order %s", order.order_id)
            return StepResult(ok=True, detail="Inventory reserved successfully")

    # ── Step 3: 出荷作成 ──────────────────────────

    async def create_shipment(self, order: Order, root: SpanHandle) -> StepResult:
        with self._step_span(
            "create-shipment", order, root, {"order.id": order.order_id}
        ) as span:
            logger.debug("Creating shipment for order %s", order.order_id)
            try:
                resp = await self._post(
                    span,
                    f"{self.shipping_url}/shipments/create",
                    {"orderId": order.order_id},
                )
            except httpx.HTTPError as e:
                return self._step_failed(span, "creating shipment", e)

            if not resp.text.strip():
                return self._invalid_response(span, "shipping")

            span.set_attribute("shipment.acknowledgement", resp.text)
            logger.info("Shipment created for order %s: %s", order.order_id, resp.text)
            return StepResult(ok=True, detail="Shipment created successfully")

    # ── 共通処理 ────────────────────────────────────

    def _step_span(
        self,
        name: str,
        order: Order,
        root: SpanHandle,
        attributes: dict[str, Any] | None = None,
    ):
        if attributes is None:
            attributes = {
                "order.id": order.order_id,
                "product.id": order.product_id,
                "order.quantity": order.amount,
            }
        return self.emitter.span(
            name, attributes, parent=root.context, kind=SpanKind.CLIENT
        )

    async def _post(
        self, span: SpanHandle, url: str, payload: dict
    ) -> httpx.Response:
        """ステップスパンの traceparent を付けて POST する。"""
        headers = self.emitter.inject(span, {})
        span.set_attribute("http.request.method", "POST")
        span.set_attribute("url.full", url)

        resp = await self.client.post(url, json=payload, headers=headers)
        span.set_attribute("http.response.status_code", resp.status_code)
        resp.raise_for_status()
        return resp

    @staticmethod
    def _step_failed(span: SpanHandle, action: str, exc: httpx.HTTPError) -> StepResult:
        if isinstance(exc, httpx.HTTPStatusError):
            if exc.response.is_server_error:
                kind = "Server error"
            elif exc.response.is_client_error:
                kind = "Client error"
            else:
                kind = "Error"
            detail = f"{kind} {action}: {_describe(exc.response)}"
        else:
            detail = f"Error {action}: {str(exc) or type(exc).__name__}"

        logger.error("%s", detail, exc_info=exc)
        span.record_exception(exc)
        span.set_status(SpanStatus.ERROR, detail)
        return StepResult(ok=False, detail=detail)

    @staticmethod
    def _invalid_response(span: SpanHandle, service: str) -> StepResult:
        logger.warning("Received empty response from %s service", service)
        span.set_status(SpanStatus.ERROR, f"Null response from {service} service")
        return StepResult(ok=False, detail=f"Invalid response from {service} service")

    @staticmethod
    def _transition(root: SpanHandle, state: SagaState) -> None:
        root.set_attribute("saga.state", state.value)


def _parse(resp: httpx.Response, model: type[M]) -> M | None:
    """空のボディや形式の合わないボディは None"""
    if not resp.content:
        return None
    try:
        return model.model_validate_json(resp.content)
    except ValidationError:
        return None


def _describe(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and "detail" in payload:
        detail = payload["detail"]
    else:
        detail = resp.text
    return f"{resp.status_code} {detail}".strip()
