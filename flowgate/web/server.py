"""FastAPI 상태 서버: 헬스체크, 통계, Prometheus 메트릭."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from flowgate import __version__
from flowgate.pipeline.orchestrator import PipelineOrchestrator, PipelineState
from flowgate.web.metrics import CONTENT_TYPE, get_metrics_output
from flowgate.web.routes.stats import create_stats_router

logger = logging.getLogger("flowgate.web.server")


# ---------------------------------------------------------------------------
# 시스템 엔드포인트 (헬스체크, 메트릭)
# ---------------------------------------------------------------------------
def _register_system_endpoints(app: FastAPI, orchestrator: PipelineOrchestrator) -> None:
    """헬스체크(/health)와 Prometheus 메트릭(/metrics) 엔드포인트를 등록한다."""

    @app.get("/health")
    async def health_check():
        """파이프라인 상태와 스토리지 쓰기 상태를 점검한다."""
        observer = orchestrator.observer
        checks = {
            "pipeline": orchestrator.state.value,
            "storage": "ok" if observer.delivery_healthy else "unavailable",
            "buffer_occupancy": observer.buffer_occupancy,
        }
        ok = orchestrator.state is PipelineState.RUNNING and observer.delivery_healthy
        overall = "ok" if ok else "degraded"
        return JSONResponse(
            {"status": overall, "checks": checks},
            status_code=200 if ok else 503,
        )

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus 형식의 메트릭 데이터를 반환한다."""
        return Response(
            content=get_metrics_output(orchestrator.observer.registry),
            media_type=CONTENT_TYPE,
        )


# ---------------------------------------------------------------------------
# 애플리케이션 팩토리
# ---------------------------------------------------------------------------
def create_app(orchestrator: PipelineOrchestrator, enable_docs: bool = False) -> FastAPI:
    """FastAPI 애플리케이션을 생성하고 구성한다."""
    app = FastAPI(
        title="flowgate",
        description="Flow record classification and delivery status",
        version=__version__,
        docs_url="/docs" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
    )

    _register_system_endpoints(app, orchestrator)
    app.include_router(create_stats_router(orchestrator), prefix="/api")

    return app
