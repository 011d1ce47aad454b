"""InfluxDB v2 HTTP 쓰기 API 기반 PointWriter."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import aiohttp

from flowgate.errors import DeliveryPermanentError, DeliveryTransientError
from flowgate.storage.base import PointWriter
from flowgate.storage.points import Point

logger = logging.getLogger("flowgate.storage.influxdb")

# 재시도해도 결과가 같은 응답 코드
_PERMANENT_STATUSES = frozenset({400, 401, 403, 404, 405, 413, 422})


def classify_status(status: int) -> type[DeliveryTransientError] | type[DeliveryPermanentError] | None:
    """HTTP 상태 코드를 실패 분류로 변환한다. 성공(2xx)이면 None."""
    if 200 <= status < 300:
        return None
    if status in _PERMANENT_STATUSES:
        return DeliveryPermanentError
    if status == 429 or status >= 500:
        return DeliveryTransientError
    # 그 밖의 4xx는 요청 자체의 문제
    if 400 <= status < 500:
        return DeliveryPermanentError
    return DeliveryTransientError


class InfluxDBWriter(PointWriter):
    """/api/v2/write 엔드포인트로 line protocol 본문을 POST한다.

    start()에서 ClientSession을 열고 close()에서 닫는다.
    """

    name = "influxdb"

    def __init__(
        self,
        url: str,
        org: str,
        bucket: str,
        token: str = "",
        timeout: float = 10.0,
    ) -> None:
        if not url or not bucket:
            raise ValueError("InfluxDB url and bucket are required")
        self._write_url = url.rstrip("/") + "/api/v2/write"
        self._params    = {"org": org, "bucket": bucket, "precision": "ns"}
        self._headers   = {"Content-Type": "text/plain; charset=utf-8"}
        if token:
            self._headers["Authorization"] = f"Token {token}"
        self._timeout   = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, section: dict[str, Any]) -> InfluxDBWriter:
        """Config의 influxdb 섹션에서 writer를 생성한다."""
        return cls(
            url     = section.get("url", ""),
            org     = section.get("org", ""),
            bucket  = section.get("bucket", ""),
            token   = section.get("token", ""),
            timeout = float(section.get("timeout_seconds", 10.0)),
        )

    @property
    def write_url(self) -> str:
        return self._write_url

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers)
            logger.info("InfluxDB writer ready (%s, bucket=%s)", self._write_url, self._params["bucket"])

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def bulk_write(self, points: Sequence[Point]) -> None:
        """포인트 전체를 한 요청으로 기록한다.

        Raises:
            DeliveryTransientError: 타임아웃, 연결 오류, 429, 5xx.
            DeliveryPermanentError: 잘못된 요청, 인증/권한 오류, 버킷 없음.
        """
        if not points:
            return
        await self.start()
        assert self._session is not None

        body = "\n".join(point.to_line() for point in points).encode("utf-8")

        try:
            async with self._session.post(self._write_url, params=self._params, data=body) as resp:
                error_cls = classify_status(resp.status)
                if error_cls is None:
                    logger.debug("Wrote %d points to InfluxDB", len(points))
                    return
                detail = (await resp.text())[:300]
                raise error_cls(
                    f"InfluxDB write returned HTTP {resp.status}: {detail}",
                    status=resp.status,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeliveryTransientError(f"InfluxDB write failed: {type(exc).__name__}: {exc}") from exc
