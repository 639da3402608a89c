"""
Order Service — FastAPI エントリーポイント

注文作成リクエストを受け取り、Saga オーケストレーターを実行する。
業務上の失敗 (FAILED) も想定外のエラー (ERROR) も HTTP 200 のボディで返す。
5xx になるのはこのサービス自身の通信レベルの障害だけ。
"""

from contextlib import asynccontextmanager
from functools import lru_cache

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from opentelemetry.sdk.trace import TracerProvider

from services.shared.config import Settings
from services.shared.log import configure_logging
from services.shared.tracing import SpanEmitter, create_tracer_provider

from .models import CreateOrderRequest, OrderOutcome, OrderStatus
from .orchestrator import OrderSagaOrchestrator

SERVICE_NAME = "order-service"

router = APIRouter()


# ── Command Endpoints ────────────────────────────


@router.post("/orders/create", response_model=OrderOutcome)
async def create_order(req: CreateOrderRequest, request: Request, response: Response):
    """
    注文作成 Saga を実行する。

    CREATED なら 201 と Location ヘッダーを返す。
    """
    state = request.app.state
    outcome = await state.orchestrator.execute(
        req.product_id,
        req.amount,
        parent=state.emitter.extract(request.headers),
    )
    if outcome.status is OrderStatus.CREATED:
        response.status_code = 201
        response.headers["Location"] = str(
            request.url_for("get_order", order_id=outcome.order_id)
        )
    return outcome


# ── Query Endpoints ──────────────────────────────


@router.get("/orders/{order_id}")
async def get_order(order_id: str):
    """注文は保存しないので、常に見つからない"""
    raise HTTPException(404, "Order not found")


@router.get("/health")
async def health():
    return {"status": "ok", "service": SERVICE_NAME}


def create_app(
    settings: Settings,
    tracer_provider: TracerProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    tracer_provider / http_client を渡さなければ設定から作り、
    終了時にこのアプリが閉じる。渡されたものは呼び出し側が管理する。
    """
    provider = tracer_provider or create_tracer_provider(settings)
    client = http_client or httpx.AsyncClient(timeout=settings.downstream_timeout)
    emitter = SpanEmitter(provider, SERVICE_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if http_client is None:
            await client.aclose()
        if tracer_provider is None:
            provider.shutdown()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.emitter = emitter
    app.state.orchestrator = OrderSagaOrchestrator(
        client,
        emitter,
        settings.inventory_service_url,
        settings.shipping_service_url,
    )
    app.include_router(router)
    return app


@lru_cache(maxsize=1)
def get_app() -> FastAPI:
    """環境変数から組み立てるプロセス全体のアプリ。初回アクセス時に1度だけ作る。"""
    settings = Settings.from_env(SERVICE_NAME)
    configure_logging(settings.log_level, SERVICE_NAME)
    return create_app(settings)


def __getattr__(name: str):
    # `uvicorn services..app.main:app` はここを通る
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    import uvicorn

    app = get_app()
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
