"""
テスト共通フィクスチャ

3つのサービスを httpx.ASGITransport で同一プロセス内につなぎ、
スパンは InMemorySpanExporter と記録用 SpanProcessor で検査する。
TracerProvider はテストごとに作り、グローバルには登録しない。
"""

from collections.abc import Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from services.inventory.app.main import create_app as create_inventory_app
from services.order.app.main import create_app as create_order_app
from services.order.app.orchestrator import OrderSagaOrchestrator
from services.shared.config import Settings
from services.shared.tracing import SpanEmitter
from services.shipping.app.main import create_app as create_shipping_app

INVENTORY_URL = "http://inventory"
SHIPPING_URL = "http://shipping"


class RecordingSpanProcessor(SpanProcessor):
    """開始・終了したスパンの ID を記録する"""

    def __init__(self) -> None:
        self.started: list[int] = []
        self.ended: list[int] = []

    def on_start(self, span, parent_context=None) -> None:
        self.started.append(span.context.span_id)

    def on_end(self, span: ReadableSpan) -> None:
        self.ended.append(span.context.span_id)


class CountingTransport(httpx.AsyncBaseTransport):
    """下流サービスへのリクエストを数える"""

    def __init__(self, transport: httpx.AsyncBaseTransport) -> None:
        self._transport = transport
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()


# ── Tracing ──────────────────────────────────────


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def span_recorder() -> RecordingSpanProcessor:
    return RecordingSpanProcessor()


@pytest.fixture
def tracer_provider(span_exporter, span_recorder):
    provider = TracerProvider()
    provider.add_span_processor(span_recorder)
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def emitter(tracer_provider) -> SpanEmitter:
    return SpanEmitter(tracer_provider, "tests")


@pytest.fixture
def find_spans(span_exporter) -> Callable[[str], list[ReadableSpan]]:
    def _find_spans(name: str) -> list[ReadableSpan]:
        return [s for s in span_exporter.get_finished_spans() if s.name == name]

    return _find_spans


@pytest.fixture
def find_span(find_spans) -> Callable[[str], ReadableSpan | None]:
    def _find_span(name: str) -> ReadableSpan | None:
        return next(iter(find_spans(name)), None)

    return _find_span


# ── Services ─────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        service_name="tests",
        inventory_service_url=INVENTORY_URL,
        shipping_service_url=SHIPPING_URL,
        simulated_delay=0.2,
    )


@pytest.fixture
def inventory_app(settings, tracer_provider):
    return create_inventory_app(settings, tracer_provider)


@pytest.fixture
def shipping_app(settings, tracer_provider):
    return create_shipping_app(settings, tracer_provider)


@pytest.fixture
def inventory_transport(inventory_app) -> CountingTransport:
    return CountingTransport(httpx.ASGITransport(app=inventory_app))


@pytest.fixture
def shipping_transport(shipping_app) -> CountingTransport:
    return CountingTransport(httpx.ASGITransport(app=shipping_app))


def downstream_mounts(
    inventory: httpx.AsyncBaseTransport, shipping: httpx.AsyncBaseTransport
) -> dict[str, Any]:
    return {INVENTORY_URL: inventory, SHIPPING_URL: shipping}


@pytest_asyncio.fixture
async def downstream_client(inventory_transport, shipping_transport):
    async with httpx.AsyncClient(
        mounts=downstream_mounts(inventory_transport, shipping_transport)
    ) as client:
        yield client


@pytest.fixture
def orchestrator(downstream_client, emitter) -> OrderSagaOrchestrator:
    return OrderSagaOrchestrator(downstream_client, emitter, INVENTORY_URL, SHIPPING_URL)


@pytest_asyncio.fixture
async def make_orchestrator(emitter, inventory_transport, shipping_transport):
    """
    下流の一部を差し替えたオーケストレーターを作る。

    inventory / shipping に httpx.MockTransport などを渡すと
    そのサービスだけ置き換わる。
    """
    clients: list[httpx.AsyncClient] = []

    def _make(inventory=None, shipping=None) -> OrderSagaOrchestrator:
        client = httpx.AsyncClient(
            mounts=downstream_mounts(
                inventory_transport if inventory is None else inventory,
                shipping_transport if shipping is None else shipping,
            )
        )
        clients.append(client)
        return OrderSagaOrchestrator(client, emitter, INVENTORY_URL, SHIPPING_URL)

    yield _make

    for client in clients:
        await client.aclose()


@pytest_asyncio.fixture
async def order_client(settings, tracer_provider, downstream_client):
    app = create_order_app(settings, tracer_provider, http_client=downstream_client)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://orders"
    ) as client:
        yield client
