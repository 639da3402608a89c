"""
Shipping Service — FastAPI エントリーポイント

出荷作成のみを受け付ける。レスポンスはプレーンテキスト。
"""

from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse
from opentelemetry.sdk.trace import TracerProvider

from services.shared.config import Settings
from services.shared.log import configure_logging
from services.shared.schemas import CamelModel
from services.shared.tracing import SpanEmitter, create_tracer_provider

from . import commands

SERVICE_NAME = "shipping-service"

router = APIRouter()


class CreateShipmentRequest(CamelModel):
    order_id: str


@router.post("/shipments/create", response_class=PlainTextResponse)
async def create_shipment(req: CreateShipmentRequest, request: Request):
    """出荷作成コマンド（Order Service の Saga から呼ばれる）"""
    state = request.app.state
    return await commands.create_shipment(
        state.emitter,
        req.order_id,
        parent=state.emitter.extract(request.headers),
    )


@router.get("/health")
async def health():
    return {"status": "ok", "service": SERVICE_NAME}


def create_app(
    settings: Settings,
    tracer_provider: TracerProvider | None = None,
) -> FastAPI:
    provider = tracer_provider or create_tracer_provider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if tracer_provider is None:
            provider.shutdown()

    app = FastAPI(title="Shipping Service", lifespan=lifespan)
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
