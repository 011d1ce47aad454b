"""DeliveryEngine — 배치를 스토리지 쓰기로 변환하고 재시도·역압을 관리한다."""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from typing import Callable, Sequence

from flowgate.errors import DeliveryPermanentError, DeliveryTransientError
from flowgate.flow.models import ClassifiedRecord
from flowgate.pipeline.observer import PipelineObserver
from flowgate.pipeline.settings import PipelineSettings
from flowgate.storage.base import PointWriter
from flowgate.storage.points import DEFAULT_MEASUREMENT, record_to_point

logger = logging.getLogger("flowgate.pipeline.delivery")


class DeliveryState(str, enum.Enum):
    """재시도 상태 기계의 상태."""
    IDLE       = "idle"
    ATTEMPTING = "attempting"
    BACKOFF    = "backoff"
    SUCCEEDED  = "succeeded"
    EXHAUSTED  = "exhausted"
    FAILED     = "failed"


def backoff_delay(
    attempt: int,
    base: float,
    cap: float,
    jitter: float = 0.0,
    rng: Callable[[float, float], float] = random.uniform,
) -> float:
    """attempt번째 실패 후 대기 시간: min(cap, base * 2^(attempt-1)) ± jitter."""
    delay = min(cap, base * (2 ** (attempt - 1)))
    if jitter:
        delay *= rng(1.0 - jitter, 1.0 + jitter)
    return delay


async def sleep_or_stop(delay: float, stop: asyncio.Event | None) -> bool:
    """delay초 대기한다. 그 사이 stop이 설정되면 즉시 True를 반환한다."""
    if stop is None:
        await asyncio.sleep(delay)
        return False
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), delay)
    except asyncio.TimeoutError:
        return False
    return True


class DeliveryEngine:
    """단일 비행(single-flight) 전송기. 동시에 두 번 호출하지 않는 것을 전제로 한다.

    상태 전이: IDLE → ATTEMPTING → BACKOFF(n) → SUCCEEDED | EXHAUSTED | FAILED.
    BACKOFF 동안은 비정상(unhealthy)으로 보고 on_backpressure(True)로 상류에 알린다.
    """

    def __init__(
        self,
        writer: PointWriter,
        settings: PipelineSettings,
        observer: PipelineObserver,
        measurement: str = DEFAULT_MEASUREMENT,
        on_backpressure: Callable[[bool], None] | None = None,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._writer          = writer
        self._settings        = settings
        self._observer        = observer
        self._measurement     = measurement
        self._on_backpressure = on_backpressure
        self._rng             = rng
        self._state           = DeliveryState.IDLE
        self._attempt         = 0
        self._healthy         = True

    @property
    def state(self) -> DeliveryState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def healthy(self) -> bool:
        return self._healthy

    async def deliver(
        self,
        batch: Sequence[ClassifiedRecord],
        stop: asyncio.Event | None = None,
    ) -> None:
        """배치 전체를 한 번의 bulk_write로 기록한다.

        Args:
            batch: 전송할 레코드. 실패 시 호출자가 소유권을 되찾는다.
            stop: 설정되면 백오프 대기를 중단하고 즉시 EXHAUSTED로 끝낸다.

        Raises:
            DeliveryTransientError: 재시도 한도 소진 또는 종료 요청으로 중단됨.
                호출자는 배치를 버퍼에 되돌려야 한다.
            DeliveryPermanentError: 재시도 불가 오류. 배치는 이미 폐기·집계되었다.
        """
        if not batch:
            return

        points = [record_to_point(record, self._measurement) for record in batch]
        max_attempts = self._settings.retry_max_attempts
        self._attempt = 0

        while True:
            self._attempt += 1
            self._state = DeliveryState.ATTEMPTING
            try:
                await self._writer.bulk_write(points)
            except DeliveryTransientError as exc:
                self._observer.record_error(exc)
                if self._attempt >= max_attempts:
                    self._state = DeliveryState.EXHAUSTED
                    self._set_healthy(False)
                    logger.error(
                        "Delivery of %d records failed after %d attempts: %s",
                        len(batch), self._attempt, exc,
                    )
                    raise

                delay = backoff_delay(
                    self._attempt,
                    self._settings.retry_backoff_base,
                    self._settings.retry_backoff_max,
                    self._settings.retry_jitter,
                    self._rng,
                )
                logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %.2fs...",
                    self._attempt, max_attempts, exc, delay,
                )
                self._state = DeliveryState.BACKOFF
                self._set_healthy(False)
                self._observer.increment("delivery_retries")
                if await sleep_or_stop(delay, stop):
                    self._state = DeliveryState.EXHAUSTED
                    raise DeliveryTransientError(
                        f"delivery interrupted by shutdown after {self._attempt} attempts",
                        status=exc.status,
                    ) from exc
            except DeliveryPermanentError as exc:
                self._fail_permanent(batch, exc)
                raise
            except Exception as exc:
                # 분류되지 않은 오류는 재시도하지 않는다
                logger.exception("Unexpected error from %r", self._writer)
                error = DeliveryPermanentError(f"{type(exc).__name__}: {exc}")
                self._fail_permanent(batch, error)
                raise error from exc
            else:
                self._state = DeliveryState.SUCCEEDED
                self._set_healthy(True)
                self._observer.increment("batches_delivered")
                self._observer.increment("records_delivered", len(batch))
                logger.info("Successfully wrote batch of %d points", len(batch))
                return

    def _fail_permanent(self, batch: Sequence[ClassifiedRecord], exc: DeliveryPermanentError) -> None:
        self._state = DeliveryState.FAILED
        # 백엔드가 응답은 했으므로 역압은 해제한다
        self._set_healthy(True)
        self._observer.increment("batches_failed_permanent")
        self._observer.increment("records_delivery_dropped", len(batch))
        self._observer.record_error(exc)
        logger.error("Dropping batch of %d records after permanent failure: %s", len(batch), exc)

    def _set_healthy(self, healthy: bool) -> None:
        if healthy == self._healthy:
            return
        self._healthy = healthy
        self._observer.set_delivery_healthy(healthy)
        if self._on_backpressure is not None:
            self._on_backpressure(not healthy)
