"""UDPLineSource — asyncio UDP 기반 JSON 라인 수신기."""

from __future__ import annotations

import asyncio
import logging

from flowgate.ingest.base import QueueLineSource

logger = logging.getLogger("flowgate.ingest.udp")


class _LineDatagramProtocol(asyncio.DatagramProtocol):
    """asyncio UDP DatagramProtocol — 수신된 데이터그램을 라인 단위로 소스 큐에 넣는다."""

    def __init__(self, source: UDPLineSource) -> None:
        self._source = source

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        logger.debug("UDP line source started")

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._source.feed(data)

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP receive error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        logger.info("UDP line source stopped")


class UDPLineSource(QueueLineSource):
    """데이터그램 하나에 JSON 객체가 한 줄 이상 담겨 오는 UDP 소스.

    UDP에는 흐름 제어가 없으므로 큐가 가득 차면 라인을 버리고 dropped에 집계한다.
    """

    name = "udp"

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 2056,
        queue_size: int = 10000,
    ) -> None:
        super().__init__(queue_size)
        self._host = host
        self._port = port
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def local_address(self) -> tuple[str, int] | None:
        """바인딩된 (host, port). 포트 0으로 시작한 경우 실제 포트를 확인할 때 쓴다."""
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")[:2]

    async def start(self) -> None:
        """UDP 소켓을 열고 수신을 시작한다."""
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _LineDatagramProtocol(self),
            local_addr=(self._host, self._port),
        )
        self._transport = transport
        logger.info("UDP line source listening on %s:%d", self._host, self._port)

    def feed(self, data: bytes) -> None:
        """데이터그램을 줄 단위로 나누어 큐에 넣는다."""
        if self._closed:
            return
        for line in data.splitlines():
            if not line.strip():
                continue
            try:
                self._queue.put_nowait(line)
            except asyncio.QueueFull:
                self.dropped += 1
                if self.dropped % 1000 == 1:
                    logger.warning("UDP line queue full; %d lines dropped so far", self.dropped)

    async def close(self) -> None:
        """UDP 소켓을 닫는다."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._mark_closed()
