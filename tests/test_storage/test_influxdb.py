"""InfluxDBWriter HTTP 쓰기 및 상태 코드 분류 테스트 (로컬 aiohttp 서버 사용)."""

from __future__ import annotations

import pytest
import pytest_asyncio

from flowgate.errors import DeliveryPermanentError, DeliveryTransientError
from flowgate.storage.influxdb import InfluxDBWriter, classify_status
from flowgate.storage.points import Point


@pytest_asyncio.fixture
async def influx_writer(influx):
    writer = InfluxDBWriter(url=influx.url + "/", org="my-org", bucket="netflow", token="secret")
    await writer.start()
    yield writer
    await writer.close()


def _points() -> list[Point]:
    return [
        Point("netflow", {"direction": "LanToWan"}, {"bytes": 100}, 1),
        Point("netflow", {"direction": "WanToLan"}, {"bytes": 200}, 2),
    ]


class TestClassifyStatus:
    @pytest.mark.parametrize("status", [200, 204])
    def test_success(self, status):
        assert classify_status(status) is None

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 413, 422, 418])
    def test_permanent(self, status):
        assert classify_status(status) is DeliveryPermanentError

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient(self, status):
        assert classify_status(status) is DeliveryTransientError


class TestInfluxDBWriter:
    @pytest.mark.asyncio
    async def test_bulk_write_single_request(self, influx, influx_writer):
        await influx_writer.bulk_write(_points())

        assert len(influx.requests) == 1
        req = influx.requests[0]
        assert req["query"] == {"org": "my-org", "bucket": "netflow", "precision": "ns"}
        assert req["auth"] == "Token secret"
        assert req["body"] == (
            "netflow,direction=LanToWan bytes=100i 1\n"
            "netflow,direction=WanToLan bytes=200i 2"
        )

    @pytest.mark.asyncio
    async def test_empty_write_skips_request(self, influx, influx_writer):
        await influx_writer.bulk_write([])
        assert influx.requests == []

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, influx, influx_writer):
        influx.status = 503
        with pytest.raises(DeliveryTransientError) as exc_info:
            await influx_writer.bulk_write(_points())
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_auth_error_is_permanent(self, influx, influx_writer):
        influx.status = 401
        with pytest.raises(DeliveryPermanentError) as exc_info:
            await influx_writer.bulk_write(_points())
        assert exc_info.value.status == 401
        assert "401" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_refused_is_transient(self):
        # 서버를 띄우지 않은 포트로 연결
        writer = InfluxDBWriter(url="http://127.0.0.1:1", org="o", bucket="b", timeout=2.0)
        try:
            with pytest.raises(DeliveryTransientError):
                await writer.bulk_write(_points())
        finally:
            await writer.close()


class TestFromConfig:
    def test_from_section(self):
        writer = InfluxDBWriter.from_config({
            "url": "http://influx:8086",
            "org": "o",
            "bucket": "b",
            "token": "t",
            "timeout_seconds": 3,
        })
        assert writer.write_url == "http://influx:8086/api/v2/write"

    def test_missing_url_or_bucket(self):
        with pytest.raises(ValueError):
            InfluxDBWriter.from_config({"bucket": "b"})
        with pytest.raises(ValueError):
            InfluxDBWriter.from_config({"url": "http://influx:8086"})
