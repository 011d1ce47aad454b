"""라인 소스 추상 기본 클래스.

오케스트레이터는 소스를 `async for line in source`로 당겨서(pull) 읽는다.
소스가 닫히면 이미 받은 라인을 모두 내보낸 뒤 반복이 끝난다.
"""

from __future__ import annotations

import abc
import asyncio
from typing import AsyncIterator


class LineSource(abc.ABC):
    """익스포터 출력 라인을 비동기 반복자로 제공하는 소스의 기본 클래스."""

    name: str = ""

    def __init__(self) -> None:
        self.dropped = 0

    @abc.abstractmethod
    async def start(self) -> None:
        """수신을 시작한다."""

    @abc.abstractmethod
    async def close(self) -> None:
        """수신을 중단한다. 반복은 남은 라인을 내보낸 뒤 끝난다."""

    @abc.abstractmethod
    def __aiter__(self) -> AsyncIterator[bytes]:
        """다음 라인 또는 종료를 내보내는 비동기 반복자."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class QueueLineSource(LineSource):
    """수신 콜백이 큐에 넣은 라인을 반복자로 내보내는 소스.

    close() 시 큐에 종료 표식(None)을 넣는다. 큐가 가득 차 표식을 넣지 못하면
    큐가 빌 때 종료 플래그로 반복을 끝낸다.
    """

    def __init__(self, queue_size: int = 10000) -> None:
        super().__init__()
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_lines()

    async def _iter_lines(self) -> AsyncIterator[bytes]:
        while True:
            if self._closed and self._queue.empty():
                return
            line = await self._queue.get()
            if line is None:
                return
            yield line
