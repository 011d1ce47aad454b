"""FileLineSource — 표준 입력 또는 파일에서 라인을 읽는다.

`goflow2 -format=json | python -m flowgate` 형태의 파이프 입력이 기본 사용 방식이다.
파이프·소켓·터미널은 asyncio 파이프 트랜스포트로, 일반 파일은 executor 스레드로 읽는다.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import sys
from typing import AsyncIterator, BinaryIO

from flowgate.ingest.base import LineSource

logger = logging.getLogger("flowgate.ingest.file")

STDIN_PATHS = ("-", "/dev/stdin")

# 한 줄 최대 길이
_LINE_LIMIT = 1 << 20


class FileLineSource(LineSource):
    """경로가 '-' 또는 '/dev/stdin'이면 표준 입력을 읽는다."""

    name = "file"

    def __init__(self, path: str = "-", chunk_size: int = 1 << 16) -> None:
        super().__init__()
        self._path       = path
        self._chunk_size = chunk_size
        self._file: BinaryIO | None = None
        self._owns_file  = False
        self._reader: asyncio.StreamReader | None = None
        self._transport: asyncio.ReadTransport | None = None
        self._closed     = False
        self._iterating  = False

    @property
    def path(self) -> str:
        return self._path

    async def start(self) -> None:
        """파일을 열고, 파이프 계열이면 비동기 스트림 리더를 연결한다."""
        if self._path in STDIN_PATHS:
            self._file = sys.stdin.buffer
        else:
            self._file = open(self._path, "rb")
            self._owns_file = True

        mode = os.fstat(self._file.fileno()).st_mode
        if stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode) or stat.S_ISCHR(mode):
            loop = asyncio.get_running_loop()
            reader = asyncio.StreamReader(limit=_LINE_LIMIT)
            transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), self._file,
            )
            self._reader = reader
            self._transport = transport
            logger.info("Reading flow lines from pipe %s", self._path)
        else:
            logger.info("Reading flow lines from file %s", self._path)

    async def close(self) -> None:
        """읽기를 중단한다. 파이프는 EOF를 받은 것처럼 반복이 끝난다."""
        self._closed = True
        if self._transport is not None:
            # 트랜스포트가 파이프 파일 객체도 함께 닫는다
            self._transport.close()
            self._transport = None
            return
        # executor 읽기 중이면 반복이 끝날 때 닫는다
        if self._owns_file and self._file is not None and not self._iterating:
            self._file.close()
            self._file = None

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._reader is not None:
            return self._iter_pipe()
        return self._iter_file()

    async def _iter_pipe(self) -> AsyncIterator[bytes]:
        assert self._reader is not None
        while not self._closed:
            try:
                line = await self._reader.readline()
            except ValueError:
                self.dropped += 1
                logger.warning("Input line exceeds %d bytes, skipped", _LINE_LIMIT)
                continue
            if not line:
                break
            yield line

    async def _iter_file(self) -> AsyncIterator[bytes]:
        if self._file is None:
            raise RuntimeError("FileLineSource.start() must be called before iterating")
        loop = asyncio.get_running_loop()
        self._iterating = True
        try:
            while not self._closed:
                chunk = await loop.run_in_executor(None, self._file.readlines, self._chunk_size)
                if not chunk:
                    break
                for line in chunk:
                    if self._closed:
                        return
                    yield line
        finally:
            self._iterating = False
            if self._owns_file and self._file is not None:
                self._file.close()
                self._file = None
