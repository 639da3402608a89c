"""
Inventory Service — FastAPI エントリーポイント

在庫確認 (Query) と在庫引き当て (Command) を提供する。
受信した traceparent を親として、処理ごとにスパンを1つ開く。
"""

from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import APIRouter, FastAPI, HTTPException, Request
from opentelemetry.sdk.trace import TracerProvider
from pydantic import Field

from services.shared.config import Settings
from services.shared.log import configure_logging
from services.shared.schemas import CamelModel
from services.shared.tracing import SpanEmitter, create_tracer_provider

from . import commands, queries
from .sentinels import SimulatedInventoryError

SERVICE_NAME = "inventory-service"

router = APIRouter()


# ── Request / Response Models ────────────────────


class CheckInventoryRequest(CamelModel):
    product_id: str = Field(min_length=1)


class InventoryResponse(CamelModel):
    available: bool
    quantity: int


class ReserveInventoryRequest(CamelModel):
    order_id: str
    product_id: str = Field(min_length=1)
    quantity: int


class ReserveInventoryResponse(CamelModel):
    success: bool
    message: str
    remaining_quantity: int


# ── Endpoints ────────────────────────────────────


@router.post("/inventory/check", response_model=InventoryResponse)
async def check_inventory(req: CheckInventoryRequest, request: Request):
    """在庫確認クエリ"""
    state = request.app.state
    try:
        result = await queries.check_availability(
            state.emitter,
            req.product_id,
            parent=state.emitter.extract(request.headers),
            delay=state.settings.simulated_delay,
        )
    except SimulatedInventoryError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return InventoryResponse(**result)


@router.post("/inventory/reserve", response_model=ReserveInventoryResponse)
async def reserve_inventory(req: ReserveInventoryRequest, request: Request):
    """在庫引き当てコマンド"""
    state = request.app.state
    try:
        result = await commands.reserve_inventory(
            state.emitter,
            req.order_id,
            req.product_id,
            req.quantity,
            parent=state.emitter.extract(request.headers),
            delay=state.settings.simulated_delay,
        )
    except SimulatedInventoryError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return ReserveInventoryResponse(**result)


@router.get("/health")
async def health():
    return {"status": "ok", "service": SERVICE_NAME}


def create_app(
    settings: Settings,
    tracer_provider: TracerProvider | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    tracer_provider を渡さなければ設定から作り、終了時に flush する。
    """
    provider = tracer_provider or create_tracer_provider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if tracer_provider is None:
            provider.shutdown()

    app = FastAPI(title="Inventory Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.emitter = SpanEmitter(provider, SERVICE_NAME)
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
