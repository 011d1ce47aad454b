"""Shared fixtures for flowgate tests."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import AsyncIterator, Sequence

import pytest
import pytest_asyncio
from aiohttp import web

from flowgate.ingest.base import LineSource
from flowgate.pipeline.observer import PipelineObserver
from flowgate.storage.base import PointWriter
from flowgate.storage.points import Point
from flowgate.utils.config import Config

_FLOWGATE_ENV = (
    "FLOWGATE_CONFIG",
    "FLOWGATE_INFLUXDB_URL",
    "FLOWGATE_INFLUXDB_TOKEN",
    "FLOWGATE_INFLUXDB_ORG",
    "FLOWGATE_INFLUXDB_BUCKET",
    "FLOWGATE_INPUT_PATH",
    "FLOWGATE_BATCH_SIZE",
    "FLOWGATE_FLUSH_INTERVAL_SECONDS",
    "FLOWGATE_RETRY_ATTEMPTS",
    "FLOWGATE_RETRY_DELAY_MS",
    "FLOWGATE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clear_flowgate_env(monkeypatch):
    """개발자 셸의 FLOWGATE_* 환경변수가 테스트 설정을 덮어쓰지 않도록 지운다."""
    for name in _FLOWGATE_ENV:
        monkeypatch.delenv(name, raising=False)


class RecordingWriter(PointWriter):
    """bulk_write 호출을 기록하는 테스트용 writer.

    failures에 예외를 넣어 두면 호출마다 하나씩 꺼내 던진다 (None이면 성공).
    """

    name = "recording"

    def __init__(self) -> None:
        self.calls: list[list[Point]] = []
        self.failures: list[BaseException | None] = []
        self.attempts = 0
        self.started = False
        self.closed = False
        self.delay = 0.0

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def bulk_write(self, points: Sequence[Point]) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            exc = self.failures.pop(0)
            if exc is not None:
                raise exc
        self.calls.append(list(points))

    @property
    def points(self) -> list[Point]:
        return [p for call in self.calls for p in call]


class ListLineSource(LineSource):
    """주어진 라인을 내보낸 뒤 끝나는 소스. hold=True이면 close()까지 대기한다."""

    name = "list"

    def __init__(self, lines: Sequence[bytes | str], hold: bool = False) -> None:
        super().__init__()
        self._lines = [l.encode() if isinstance(l, str) else l for l in lines]
        self._hold = hold
        self._closed = asyncio.Event()
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self._closed.set()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[bytes]:
        for line in self._lines:
            if self._closed.is_set():
                return
            yield line
        if self._hold:
            await self._closed.wait()


def _flow_json(src: str = "192.168.1.10", dst: str = "8.8.8.8", **extra) -> str:
    """goflow2 형식 JSON 한 줄을 만든다."""
    obj = {
        "type": "NETFLOW_V9",
        "time_received_ns": 1_700_000_000_000_000_000,
        "time_flow_start_ns": 1_699_999_999_000_000_000,
        "time_flow_end_ns": 1_699_999_999_500_000_000,
        "sequence_num": 42,
        "sampling_rate": 1,
        "sampler_address": "10.0.0.1",
        "src_addr": src,
        "dst_addr": dst,
        "bytes": 100,
        "packets": 1,
        "etype": "IPv4",
        "proto": "UDP",
        "src_port": 53000,
        "dst_port": 53,
        "in_if": 1,
        "out_if": 2,
    }
    obj.update(extra)
    return json.dumps(obj)


@pytest.fixture
def flow_line():
    """goflow2 형식 JSON 라인을 만드는 함수: flow_line(src, dst, **extra)."""
    return _flow_json


@pytest.fixture
def recording_writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def line_source():
    """ListLineSource 생성 함수: line_source(lines, hold=False)."""
    return ListLineSource


@pytest.fixture
def observer() -> PipelineObserver:
    return PipelineObserver()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """테스트 전용 YAML 설정."""
    yaml_content = f"""
flowgate:
  input:
    type: file
    path: "{tmp_path / 'flows.jsonl'}"
  pipeline:
    batch_max_records: 100
    batch_max_age_seconds: 0.5
    retry_backoff_base_seconds: 0.01
    retry_backoff_max_seconds: 0.05
    retry_max_attempts: 3
    shutdown_grace_period_seconds: 2.0
    workers: 2
  influxdb:
    url: "http://127.0.0.1:8086"
    org: "test-org"
    bucket: "test-bucket"
    token: "test-token"
  logging:
    level: DEBUG
    directory: "{tmp_path / 'logs'}"
  web:
    enabled: false
"""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(yaml_content)
    return Config.load(config_file)


class FakeInflux:
    """/api/v2/write 요청을 기록하고 지정된 상태 코드로 응답하는 로컬 서버."""

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.status = 204
        self.url = ""

    async def handle_write(self, request: web.Request) -> web.Response:
        self.requests.append({
            "query": dict(request.query),
            "auth": request.headers.get("Authorization"),
            "body": await request.text(),
        })
        if self.status == 204:
            return web.Response(status=204)
        return web.json_response({"code": "error", "message": "nope"}, status=self.status)

    @property
    def lines(self) -> list[str]:
        return [line for req in self.requests for line in req["body"].splitlines()]


@pytest_asyncio.fixture
async def influx():
    fake = FakeInflux()
    app = web.Application()
    app.router.add_post("/api/v2/write", fake.handle_write)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    fake.url = f"http://127.0.0.1:{runner.addresses[0][1]}"
    yield fake
    await runner.cleanup()
