"""파이프라인 카운터와 최근 오류를 보관하는 관찰자 객체.

프로세스 시작 시 명시적으로 생성하여 각 컴포넌트에 핸들로 전달한다 (전역 싱글턴 없음).
정수 카운터가 원본이며, 같은 값을 인스턴스 전용 Prometheus CollectorRegistry에도 반영한다.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge

from flowgate.flow.models import Direction

COUNTER_NAMES: tuple[str, ...] = (
    "records_decoded",
    "records_decode_failed",
    "records_dropped_lan_lan",
    "records_dropped_wan_wan",
    "records_dropped_ambiguous",
    "records_kept",
    "batches_delivered",
    "records_delivered",
    "batches_failed_permanent",
    "records_delivery_dropped",
    "delivery_retries",
    "records_overflow_dropped",
    "records_lost_on_shutdown",
)

_DESCRIPTIONS = {
    "records_decoded":           "Flow records decoded from exporter JSON",
    "records_decode_failed":     "Lines rejected by the decoder",
    "records_dropped_lan_lan":   "Records dropped as LAN-to-LAN",
    "records_dropped_wan_wan":   "Records dropped as WAN-to-WAN",
    "records_dropped_ambiguous": "Records dropped because classification was ambiguous",
    "records_kept":              "Records classified LanToWan or WanToLan",
    "batches_delivered":         "Batches written to storage",
    "records_delivered":         "Records written to storage",
    "batches_failed_permanent":  "Batches dropped after a permanent delivery failure",
    "records_delivery_dropped":  "Records dropped after a permanent delivery failure",
    "delivery_retries":          "Delivery attempts retried after a transient failure",
    "records_overflow_dropped":  "Oldest records dropped at the buffer hard ceiling",
    "records_lost_on_shutdown":  "Records that could not be delivered during shutdown",
}

_DROP_COUNTERS = {
    Direction.LAN_TO_LAN: "records_dropped_lan_lan",
    Direction.WAN_TO_WAN: "records_dropped_wan_wan",
}


@dataclass(frozen=True)
class ErrorInfo:
    """가장 최근 오류의 분류와 메시지."""
    kind:      str
    message:   str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "timestamp": self.timestamp}


class PipelineObserver:
    """디코드·분류·배치·전송 단계의 카운터 모음."""

    def __init__(self, registry: CollectorRegistry | None = None, namespace: str = "flowgate") -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._counts: dict[str, int] = {name: 0 for name in COUNTER_NAMES}
        self._prom: dict[str, Counter] = {
            name: Counter(name, _DESCRIPTIONS[name], namespace=namespace, registry=self.registry)
            for name in COUNTER_NAMES
        }
        self._occupancy_gauge = Gauge(
            "buffer_occupancy", "Records currently held in the batch buffer",
            namespace=namespace, registry=self.registry,
        )
        self._healthy_gauge = Gauge(
            "delivery_healthy", "1 while the storage backend accepts writes",
            namespace=namespace, registry=self.registry,
        )
        self._healthy_gauge.set(1)
        self.buffer_occupancy = 0
        self.delivery_healthy = True
        self.last_error: ErrorInfo | None = None

    def increment(self, name: str, amount: int = 1) -> None:
        """이름으로 카운터를 증가시킨다. 알 수 없는 이름은 KeyError."""
        if amount <= 0:
            return
        self._counts[name] += amount
        self._prom[name].inc(amount)

    def count(self, name: str) -> int:
        return self._counts[name]

    def __getattr__(self, name: str) -> int:
        # observer.records_kept 형태의 읽기 전용 접근
        counts = self.__dict__.get("_counts")
        if counts is not None and name in counts:
            return counts[name]
        raise AttributeError(name)

    # ── 단계별 헬퍼 ────────────────────────────────────────────────────

    def record_decoded(self) -> None:
        self.increment("records_decoded")

    def record_decode_failed(self, exc: Exception) -> None:
        self.increment("records_decode_failed")
        self.record_error(exc)

    def record_classified(self, direction: Direction) -> None:
        """분류 결과를 보존/폐기 카운터에 반영한다."""
        if direction.kept:
            self.increment("records_kept")
        else:
            self.increment(_DROP_COUNTERS[direction])

    def record_ambiguous(self, exc: Exception) -> None:
        self.increment("records_dropped_ambiguous")
        self.record_error(exc)

    def record_overflow(self, dropped: int) -> None:
        self.increment("records_overflow_dropped", dropped)

    def set_buffer_occupancy(self, size: int) -> None:
        self.buffer_occupancy = size
        self._occupancy_gauge.set(size)

    def set_delivery_healthy(self, healthy: bool) -> None:
        self.delivery_healthy = healthy
        self._healthy_gauge.set(1 if healthy else 0)

    def record_error(self, exc: BaseException) -> None:
        """최근 오류로 기록한다. CLI와 상태 API가 이 값을 노출한다."""
        self.last_error = ErrorInfo(
            kind=type(exc).__name__,
            message=str(exc),
            timestamp=time.time(),
        )

    def snapshot(self) -> dict[str, Any]:
        """현재 카운터, 버퍼 점유량, 최근 오류를 dict로 반환한다."""
        data: dict[str, Any] = dict(self._counts)
        data["buffer_occupancy"] = self.buffer_occupancy
        data["delivery_healthy"] = self.delivery_healthy
        data["last_error"] = self.last_error.to_dict() if self.last_error else None
        return data
