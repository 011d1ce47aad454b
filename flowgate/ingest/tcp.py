"""TCPLineSource — 줄바꿈으로 구분된 JSON 스트림을 받는 TCP 수신기."""

from __future__ import annotations

import asyncio
import logging

from flowgate.ingest.base import QueueLineSource

logger = logging.getLogger("flowgate.ingest.tcp")

# 한 줄 최대 길이
_LINE_LIMIT = 1 << 20


class TCPLineSource(QueueLineSource):
    """여러 익스포터 연결을 받아 하나의 라인 큐로 합친다.

    큐가 가득 차면 연결별 읽기가 멈추므로 TCP 흐름 제어가 익스포터까지 전달된다.
    """

    name = "tcp"

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 2057,
        queue_size: int = 10000,
    ) -> None:
        super().__init__(queue_size)
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._connections: set[asyncio.Task] = set()

    @property
    def local_address(self) -> tuple[str, int] | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[:2]

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection, self._host, self._port, limit=_LINE_LIMIT,
        )
        logger.info("TCP line source listening on %s:%d", self._host, self._port)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """연결 하나에서 EOF까지 라인을 읽어 큐에 넣는다."""
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        peer = writer.get_extra_info("peername")
        logger.info("Exporter connected from %s", peer)
        try:
            while not self._closed:
                try:
                    line = await reader.readline()
                except ValueError:
                    self.dropped += 1
                    logger.warning("Line from %s exceeds %d bytes, skipped", peer, _LINE_LIMIT)
                    continue
                if not line:
                    break
                if line.strip():
                    await self._queue.put(line)
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            logger.warning("Exporter connection %s lost: %s", peer, exc)
        finally:
            writer.close()
            if task is not None:
                self._connections.discard(task)
            logger.info("Exporter disconnected: %s", peer)

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            self._server = None
        for task in list(self._connections):
            task.cancel()
        self._mark_closed()
