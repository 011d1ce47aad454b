"""BatchBuffer — 분류된 레코드를 배치로 모으는 유일한 공유 가변 상태."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Iterable

from flowgate.errors import BufferOverflow
from flowgate.flow.models import ClassifiedRecord
from flowgate.pipeline.observer import PipelineObserver

logger = logging.getLogger("flowgate.pipeline.buffer")


class BatchBuffer:
    """크기(max_records)와 나이(max_age) 두 가지 플러시 조건을 가진 순서 보존 버퍼.

    모든 변경 연산(push_nowait, drain, restore)은 await 지점이 없는 동기 구간이므로
    같은 이벤트 루프 안에서는 락 없이 상호 배제된다.

    역압(backpressure)이 켜져 있으면 push()는 버퍼가 max_records 이상 차 있는 동안 대기한다.
    전송 실패로 배치가 되돌아와(restore) hard_ceiling을 넘으면 가장 오래된 레코드부터 버린다.
    장애가 길어질 때 메모리를 무한히 늘리지 않기 위한 의도된 손실 정책이다.
    """

    def __init__(
        self,
        max_records: int,
        max_age: float,
        hard_ceiling: int,
        observer: PipelineObserver,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if hard_ceiling < max_records:
            raise ValueError("hard_ceiling must be >= max_records")
        self._max_records  = max_records
        self._max_age      = max_age
        self._hard_ceiling = hard_ceiling
        self._observer     = observer
        self._clock        = clock

        self._records: deque[ClassifiedRecord] = deque()
        self._oldest_at: float | None = None
        self._backpressure = False
        self._closed       = False

        # 전송 루프 깨우기 (첫 레코드, 가득 참, 종료)
        self._signal   = asyncio.Event()
        # push 진행 가능 여부
        self._writable = asyncio.Event()
        self._writable.set()

    def __len__(self) -> int:
        return len(self._records)

    @property
    def backpressure(self) -> bool:
        return self._backpressure

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def oldest_age(self) -> float | None:
        """가장 오래된 레코드가 버퍼에 머문 시간 (초). 비어 있으면 None."""
        if self._oldest_at is None:
            return None
        return self._clock() - self._oldest_at

    # ── 입력 ───────────────────────────────────────────────────────────

    async def push(self, record: ClassifiedRecord) -> None:
        """레코드를 추가한다. 역압 상태에서 버퍼가 가득 차 있으면 공간이 날 때까지 대기한다."""
        while not self._writable.is_set():
            await self._writable.wait()
        self.push_nowait(record)

    def push_nowait(self, record: ClassifiedRecord) -> None:
        """대기 없이 레코드를 추가한다. 하드 상한은 항상 적용된다."""
        if not self._records:
            self._oldest_at = self._clock()
            self._signal.set()
        self._records.append(record)
        self._after_change()

    def restore(self, batch: Iterable[ClassifiedRecord]) -> None:
        """전송에 실패한 배치를 원래 순서대로 버퍼 앞쪽에 되돌린다."""
        batch = list(batch)
        if not batch:
            return
        self._records.extendleft(reversed(batch))
        if self._oldest_at is None:
            self._oldest_at = self._clock()
        self._signal.set()
        self._after_change()

    # ── 출력 ───────────────────────────────────────────────────────────

    def drain(self) -> list[ClassifiedRecord]:
        """버퍼의 모든 레코드를 가져가고 빈 상태로 초기화한다."""
        records, self._records = self._records, deque()
        self._oldest_at = None
        self._signal.clear()
        self._after_change()
        return list(records)

    def flush_due(self) -> bool:
        """크기 또는 나이 조건을 만족하면 True를 반환한다."""
        if not self._records:
            return False
        if len(self._records) >= self._max_records:
            return True
        return self.oldest_age >= self._max_age

    def time_until_due(self) -> float | None:
        """다음 플러시까지 남은 시간 (초). 비어 있으면 None."""
        if not self._records:
            return None
        if len(self._records) >= self._max_records:
            return 0.0
        return max(0.0, self._max_age - self.oldest_age)

    async def wait_until_due(self) -> None:
        """플러시 조건이 충족되거나 버퍼가 닫힐 때까지 대기한다."""
        while not self._closed and not self.flush_due():
            timeout = self.time_until_due()
            self._signal.clear()
            try:
                await asyncio.wait_for(self._signal.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    # ── 제어 ───────────────────────────────────────────────────────────

    def set_backpressure(self, active: bool) -> None:
        """전송 엔진이 비정상 상태일 때 켜고, 쓰기가 성공하면 끈다."""
        if active != self._backpressure:
            logger.info("Buffer backpressure %s (size=%d)", "on" if active else "off", len(self._records))
        self._backpressure = active
        self._update_writable()

    def close(self) -> None:
        """종료 단계 진입: push 대기를 해제하고 전송 루프를 깨운다."""
        self._closed = True
        self._backpressure = False
        self._update_writable()
        self._signal.set()

    # ── 내부 ───────────────────────────────────────────────────────────

    def _after_change(self) -> None:
        self._enforce_ceiling()
        if len(self._records) >= self._max_records:
            self._signal.set()
        self._update_writable()
        self._observer.set_buffer_occupancy(len(self._records))

    def _enforce_ceiling(self) -> None:
        excess = len(self._records) - self._hard_ceiling
        if excess <= 0:
            return
        for _ in range(excess):
            self._records.popleft()
        self._observer.record_overflow(excess)
        self._observer.record_error(BufferOverflow(excess))
        logger.warning(
            "Buffer hard ceiling (%d) reached; dropped %d oldest records",
            self._hard_ceiling, excess,
        )

    def _update_writable(self) -> None:
        if self._backpressure and not self._closed and len(self._records) >= self._max_records:
            self._writable.clear()
        else:
            self._writable.set()
