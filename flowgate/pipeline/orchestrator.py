"""PipelineOrchestrator — 소스 → 디코더 → 분류기 → 버퍼 → 전송 엔진을 연결하고 수명주기를 관리한다.

상태: STARTING → RUNNING → DRAINING → STOPPED

  reader ──► lines(Queue) ──► worker × N ──► BatchBuffer ──► delivery loop ──► PointWriter
                               (decode+classify)                (single-flight)

종료 요청 또는 소스 종료 시 DRAINING으로 전환하여, 큐에 남은 라인을 처리하고
버퍼를 한 번 강제로 비운 뒤 유예 시간(shutdown_grace_period) 안에 전송한다.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
import time
from typing import Callable, Sequence

from flowgate.errors import (
    ClassificationAmbiguous,
    DecodeError,
    DeliveryPermanentError,
    DeliveryTransientError,
)
from flowgate.flow.decoder import decode_flow
from flowgate.flow.models import ClassifiedRecord
from flowgate.ingest.base import LineSource
from flowgate.pipeline.buffer import BatchBuffer
from flowgate.pipeline.delivery import DeliveryEngine, sleep_or_stop
from flowgate.pipeline.observer import PipelineObserver
from flowgate.pipeline.settings import PipelineSettings
from flowgate.storage.base import PointWriter
from flowgate.storage.points import DEFAULT_MEASUREMENT

logger = logging.getLogger("flowgate.pipeline.orchestrator")


class PipelineState(str, enum.Enum):
    STARTING = "starting"
    RUNNING  = "running"
    DRAINING = "draining"
    STOPPED  = "stopped"


class PipelineOrchestrator:
    """파이프라인 전체를 한 번 실행한다. run()은 인스턴스당 한 번만 호출할 수 있다."""

    def __init__(
        self,
        settings: PipelineSettings,
        source: LineSource,
        writer: PointWriter,
        observer: PipelineObserver,
        measurement: str = DEFAULT_MEASUREMENT,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._settings   = settings
        self._source     = source
        self._writer     = writer
        self._observer   = observer
        self._classifier = settings.build_classifier()

        self.buffer = BatchBuffer(
            max_records  = settings.batch_max_records,
            max_age      = settings.batch_max_age,
            hard_ceiling = settings.buffer_hard_ceiling,
            observer     = observer,
            clock        = clock,
        )
        self.delivery = DeliveryEngine(
            writer          = writer,
            settings        = settings,
            observer        = observer,
            measurement     = measurement,
            on_backpressure = self.buffer.set_backpressure,
            rng             = rng,
        )

        self._state = PipelineState.STARTING
        self._stop  = asyncio.Event()
        self._lines: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=settings.queue_size)
        # 전송 중인 배치 (유예 시간 초과 시 손실 집계용)
        self._in_flight: list[ClassifiedRecord] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def observer(self) -> PipelineObserver:
        return self._observer

    @property
    def source(self) -> LineSource:
        return self._source

    @property
    def pending_lines(self) -> int:
        """워커가 아직 처리하지 않은 라인 수."""
        return self._lines.qsize()

    def request_stop(self) -> None:
        """DRAINING 전환을 요청한다. 시그널 핸들러에서 호출해도 안전하다."""
        if not self._stop.is_set():
            logger.info("Pipeline stop requested")
        self._stop.set()

    # ── 수명주기 ───────────────────────────────────────────────────────

    async def run(self) -> None:
        """소스가 끝나거나 request_stop()이 호출될 때까지 실행한 뒤 정상 종료한다."""
        if self._state is not PipelineState.STARTING:
            raise RuntimeError(f"pipeline already {self._state.value}")

        try:
            await self._writer.start()
            await self._source.start()

            reader   = asyncio.create_task(self._read_lines(), name="flowgate-reader")
            workers  = [
                asyncio.create_task(self._work(i), name=f"flowgate-worker-{i}")
                for i in range(self._settings.workers)
            ]
            delivery = asyncio.create_task(self._delivery_loop(), name="flowgate-delivery")

            self._state = PipelineState.RUNNING
            logger.info(
                "Pipeline running (source=%s, workers=%d, batch=%d records/%.1fs)",
                self._source.name, len(workers),
                self._settings.batch_max_records, self._settings.batch_max_age,
            )

            stop_wait = asyncio.create_task(self._stop.wait())
            await asyncio.wait({reader, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            stop_wait.cancel()
            if reader.done():
                logger.info("Ingestion source exhausted")

            await self._shutdown(reader, workers, delivery)
        finally:
            self._state = PipelineState.STOPPED
            await self._writer.close()
            logger.info("Pipeline stopped: %s", self._observer.snapshot())

    async def _shutdown(
        self,
        reader: asyncio.Task,
        workers: list[asyncio.Task],
        delivery: asyncio.Task,
    ) -> None:
        self._state = PipelineState.DRAINING
        grace = self._settings.shutdown_grace_period
        logger.info("Draining pipeline (grace period %.1fs)", grace)

        # 백오프 대기 중인 전송을 깨운다
        self._stop.set()
        try:
            await asyncio.wait_for(self._drain(reader, workers, delivery), grace)
        except asyncio.TimeoutError:
            lost = len(self.buffer) + len(self._in_flight)
            self._record_lost(lost, f"grace period of {grace:.1f}s expired")
            for task in (reader, delivery, *workers):
                task.cancel()
            await asyncio.gather(reader, delivery, *workers, return_exceptions=True)

    async def _drain(
        self,
        reader: asyncio.Task,
        workers: list[asyncio.Task],
        delivery: asyncio.Task,
    ) -> None:
        # 1. 수신 중단, push 대기 해제
        await self._source.close()
        self.buffer.close()

        # 2. 이미 받은 라인은 끝까지 분류하여 버퍼에 넣는다
        await reader
        for _ in workers:
            await self._lines.put(None)
        await asyncio.gather(*workers)

        # 3. 진행 중인 전송은 중단하지 않고 끝나기를 기다린다
        await delivery

        # 4. 남은 레코드를 한 번 강제로 비워 전송한다
        batch = self.buffer.drain()
        if not batch:
            return
        logger.info("Flushing %d buffered records before exit", len(batch))
        try:
            await self._deliver_chunks(batch, stop=None)
        except DeliveryTransientError as exc:
            lost = len(self.buffer)
            self.buffer.drain()
            self._record_lost(lost, str(exc))
        except DeliveryPermanentError:
            pass

    def _record_lost(self, lost: int, reason: str) -> None:
        if lost <= 0:
            return
        self._observer.increment("records_lost_on_shutdown", lost)
        logger.error("%d records could not be delivered before shutdown: %s", lost, reason)

    # ── 태스크 ─────────────────────────────────────────────────────────

    async def _read_lines(self) -> None:
        """소스에서 라인을 당겨 와 라인 큐에 넣는다. 큐가 가득 차면 읽기도 멈춘다."""
        try:
            async for line in self._source:
                await self._lines.put(line)
        except Exception as exc:
            # 소스 오류는 소스 종료와 같이 취급한다
            self._observer.record_error(exc)
            logger.exception("Ingestion source %r failed", self._source)

    async def _work(self, worker_id: int) -> None:
        while True:
            line = await self._lines.get()
            if line is None:
                logger.debug("Worker %d finished", worker_id)
                return
            try:
                record = self.process_line(line)
            except Exception as exc:
                self._observer.record_error(exc)
                logger.exception("Unexpected error while processing line")
                continue
            if record is not None:
                await self.buffer.push(record)

    def process_line(self, line: bytes | str) -> ClassifiedRecord | None:
        """라인 하나를 디코드·분류한다. 버려지는 레코드는 집계 후 None을 반환한다."""
        if not line.strip():
            return None

        try:
            flow = decode_flow(line)
        except DecodeError as exc:
            self._observer.record_decode_failed(exc)
            logger.debug("Skipping undecodable line: %s", exc)
            return None
        self._observer.record_decoded()

        try:
            direction = self._classifier.classify(flow)
        except ClassificationAmbiguous as exc:
            self._observer.record_ambiguous(exc)
            logger.warning("Dropping record with ambiguous classification: %s", exc)
            return None
        self._observer.record_classified(direction)

        if not direction.kept:
            return None
        return ClassifiedRecord(record=flow, direction=direction)

    async def _delivery_loop(self) -> None:
        """플러시 조건마다 버퍼를 비워 전송한다. 한 번에 하나의 deliver만 실행된다."""
        while True:
            await self.buffer.wait_until_due()
            if self.buffer.closed:
                return

            batch = self.buffer.drain()
            try:
                await self._deliver_chunks(batch, stop=self._stop)
            except DeliveryTransientError:
                # 배치는 버퍼로 돌아갔다. 백엔드 회복을 기다린 뒤 다시 시도한다
                await sleep_or_stop(self._settings.retry_backoff_max, self._stop)
            except DeliveryPermanentError:
                continue

    async def _deliver_chunks(
        self,
        batch: Sequence[ClassifiedRecord],
        stop: asyncio.Event | None,
    ) -> None:
        """batch_max_records 단위로 나누어 순서대로 전송한다.

        일시적 실패 시 실패한 묶음과 아직 보내지 않은 묶음을 버퍼 앞쪽에 되돌리고 예외를 다시 던진다.
        영구 실패한 묶음은 이미 폐기·집계되었으므로 다음 묶음을 계속 보낸다.
        """
        size = self._settings.batch_max_records
        permanent: DeliveryPermanentError | None = None
        for offset in range(0, len(batch), size):
            # 취소되면 남은 레코드 전체가 _in_flight에 남는다
            self._in_flight = list(batch[offset:])
            try:
                await self.delivery.deliver(self._in_flight[:size], stop=stop)
            except DeliveryTransientError:
                self._in_flight = []
                self.buffer.restore(batch[offset:])
                raise
            except DeliveryPermanentError as exc:
                permanent = exc
        self._in_flight = []
        if permanent is not None:
            raise permanent
