"""StatsReporter - 주기적 파이프라인 통계 로그."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowgate.pipeline.observer import PipelineObserver
    from flowgate.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger("flowgate.services.stats_report")


class StatsReporter:
    """interval초마다 처리·필터·전송 카운터를 한 줄로 기록한다."""

    def __init__(
        self,
        observer: PipelineObserver,
        orchestrator: PipelineOrchestrator | None = None,
        interval: float = 60.0,
    ) -> None:
        self.observer     = observer
        self.orchestrator = orchestrator
        self.interval     = interval
        self._task: asyncio.Task | None = None
        self._last: dict[str, int] = {}

    async def start(self) -> None:
        """통계 로그 루프 비동기 태스크를 시작한다."""
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """루프 태스크를 취소하고 마지막 통계를 한 번 기록한다."""
        if self._task:
            self._task.cancel()
            self._task = None
        self.report()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.report()
            except Exception:
                logger.exception("Stats report failed")

    def report(self) -> str:
        """현재 통계를 로그로 남기고 그 메시지를 반환한다."""
        snap = self.observer.snapshot()
        filtered = (
            snap["records_dropped_lan_lan"]
            + snap["records_dropped_wan_wan"]
            + snap["records_dropped_ambiguous"]
        )
        # 직전 보고 이후 증가분
        delta = snap["records_decoded"] - self._last.get("records_decoded", 0)
        self._last = {k: v for k, v in snap.items() if isinstance(v, int)}

        state = self.orchestrator.state.value if self.orchestrator is not None else "-"
        message = (
            f"Processed {snap['records_decoded']} records (+{delta}), "
            f"filtered {filtered}, kept {snap['records_kept']}, "
            f"delivered {snap['records_delivered']}, failed {snap['records_decode_failed']}, "
            f"pending {snap['buffer_occupancy']}, state {state}"
        )
        logger.info(message)
        if snap["last_error"] and not snap["delivery_healthy"]:
            logger.warning(
                "Storage unhealthy, last error %s: %s",
                snap["last_error"]["kind"], snap["last_error"]["message"],
            )
        return message
