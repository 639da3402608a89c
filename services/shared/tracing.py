"""
Shared — Span Emitter

全サービス共通のトレーシング規約。OpenTelemetry の TracerProvider を
ラップし、スパンの作成・注釈・終了を一定の形で提供する。

  ┌──────────────────────────┐
  │ order-creation-process   │  (Order Service, ルートスパン)
  │  ├─ check-inventory      │──▶ inventory-lookup      (Inventory Service)
  │  ├─ reserve-inventory    │──▶ inventory-reservation (Inventory Service)
  │  └─ create-shipment      │──▶ shipment-creation     (Shipping Service)
  └──────────────────────────┘

親子関係はグローバル (スレッドローカル) なコンテキストに頼らず、
Context を引数で明示的に受け渡す。プロセス境界を越えるときは
W3C traceparent ヘッダーに注入・抽出する。
"""

import contextlib
import logging
from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .config import Settings

logger = logging.getLogger(__name__)

propagator = TraceContextTextMapPropagator()


class SpanStatus(str, Enum):
    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"


_STATUS_CODES = {
    SpanStatus.UNSET: StatusCode.UNSET,
    SpanStatus.OK: StatusCode.OK,
    SpanStatus.ERROR: StatusCode.ERROR,
}


class SpanHandle:
    """
    開始済みスパンへのハンドル。

    end() は冪等: 2回目以降の呼び出しは何もしない。
    """

    def __init__(self, span: trace.Span) -> None:
        self._span = span
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def context(self) -> Context:
        """このスパンを親とする子スパン用のコンテキスト"""
        return trace.set_span_in_context(self._span, Context())

    @property
    def trace_id(self) -> str:
        return format(self._span.get_span_context().trace_id, "032x")

    @property
    def span_id(self) -> str:
        return format(self._span.get_span_context().span_id, "016x")

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def add_event(self, name: str, attributes: dict[str, Any] | None = None) -> None:
        self._span.add_event(name, attributes=attributes)

    def record_exception(self, exc: BaseException) -> None:
        self._span.record_exception(exc)

    def set_status(self, status: SpanStatus, message: str | None = None) -> None:
        # OpenTelemetry は ERROR 以外の description を無視する
        description = message if status is SpanStatus.ERROR else None
        self._span.set_status(Status(_STATUS_CODES[status], description))

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._span.end()


class SpanEmitter:
    """TracerProvider を明示的に受け取ってスパンを発行する。"""

    def __init__(self, tracer_provider: trace.TracerProvider, instrumentation_name: str):
        self._tracer = tracer_provider.get_tracer(instrumentation_name)

    def start_span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        parent: Context | None = None,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> SpanHandle:
        """
        スパンを開始する。呼び出し側が end() する責任を持つ。

        parent が None なら新しいトレースのルートになる。
        """
        span = self._tracer.start_span(
            name,
            context=parent if parent is not None else Context(),
            kind=kind,
            attributes=dict(attributes or {}),
        )
        return SpanHandle(span)

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        parent: Context | None = None,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> Iterator[SpanHandle]:
        """どの経路で抜けても必ず end() されるスパン"""
        handle = self.start_span(name, attributes, parent=parent, kind=kind)
        try:
            yield handle
        finally:
            handle.end()

    def inject(self, span: SpanHandle, headers: dict[str, str]) -> dict[str, str]:
        """送信ヘッダーに traceparent を書き込む"""
        propagator.inject(headers, context=span.context)
        return headers

    def extract(self, headers: Mapping[str, str]) -> Context:
        """受信ヘッダーから親コンテキストを取り出す。無ければ空のコンテキスト。"""
        return propagator.extract(headers)


def create_tracer_provider(settings: Settings) -> TracerProvider:
    """
    サービスごとの TracerProvider を作る。

    OTLP エンドポイントが設定されていればバッチでエクスポートする
    (呼び出し側はエクスポートを待たない)。
    """
    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.service_name})
    )
    if settings.otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info("Exporting spans to %s", settings.otlp_endpoint)
    else:
        logger.info("No OTLP endpoint configured, spans are not exported")
    return provider
