"""파이프라인 통계 REST API."""

from __future__ import annotations

from fastapi import APIRouter

from flowgate.pipeline.orchestrator import PipelineOrchestrator


def create_stats_router(orchestrator: PipelineOrchestrator) -> APIRouter:
    router = APIRouter(prefix="/stats", tags=["stats"])

    @router.get("")
    async def get_stats():
        snap = orchestrator.observer.snapshot()
        return {
            "state": orchestrator.state.value,
            "delivery_state": orchestrator.delivery.state.value,
            "backpressure": orchestrator.buffer.backpressure,
            "pending_lines": orchestrator.pending_lines,
            "source": {
                "name": orchestrator.source.name,
                "dropped": orchestrator.source.dropped,
            },
            "counters": {k: v for k, v in snap.items() if k not in ("last_error", "delivery_healthy", "buffer_occupancy")},
            "buffer_occupancy": snap["buffer_occupancy"],
            "delivery_healthy": snap["delivery_healthy"],
            "last_error": snap["last_error"],
        }

    return router
