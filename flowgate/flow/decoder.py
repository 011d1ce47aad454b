"""익스포터 JSON 라인 디코더.

goflow2 등 플로우 익스포터가 한 줄에 하나씩 내보내는 JSON 객체를 FlowRecord로 변환한다.
필수 필드(src_addr, dst_addr, bytes, packets)가 없거나 타입이 틀리면 DecodeError를 던지고,
그 밖의 필드는 관대하게 처리한다: 모르는 키는 무시하고, 타입이 틀린 보조 필드는 없는 값으로 본다.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from typing import Any

from flowgate.errors import DecodeError
from flowgate.flow.models import FlowRecord, IPAddress

logger = logging.getLogger("flowgate.flow.decoder")

_OPTIONAL_INT_FIELDS = (
    "time_received_ns",
    "time_flow_start_ns",
    "time_flow_end_ns",
    "src_port",
    "dst_port",
    "in_if",
    "out_if",
    "sampling_rate",
    "sequence_num",
)

_OPTIONAL_STR_FIELDS = ("type", "proto", "etype", "sampler_address")

# InfluxDB 정수 필드는 signed int64
INT64_MAX = (1 << 63) - 1


def _parse_addr(obj: dict[str, Any], key: str) -> IPAddress:
    """주소 필드를 ipaddress 객체로 파싱한다. IPv4-mapped IPv6는 IPv4로 정규화한다."""
    value = obj.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"field {key!r} missing or not a string")
    try:
        addr = ipaddress.ip_address(value.strip())
    except ValueError as exc:
        raise DecodeError(f"field {key!r} is not an IP address: {value!r}") from exc
    if addr.version == 6 and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def _required_count(obj: dict[str, Any], key: str) -> int:
    """음이 아닌 정수 카운터 필드를 읽는다. bool은 정수로 인정하지 않는다."""
    value = obj.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise DecodeError(f"field {key!r} missing or not an integer")
    if value < 0:
        raise DecodeError(f"field {key!r} is negative: {value}")
    if value > INT64_MAX:
        raise DecodeError(f"field {key!r} exceeds int64 range: {value}")
    return value


def _optional_int(obj: dict[str, Any], key: str) -> int | None:
    value = obj.get(key)
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= INT64_MAX:
        return value
    return None


def _optional_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def decode_flow(line: bytes | str) -> FlowRecord:
    """JSON 한 줄을 FlowRecord로 디코딩한다.

    Args:
        line: 익스포터가 보낸 원본 라인 (bytes 또는 str).

    Returns:
        주소가 파싱된 FlowRecord.

    Raises:
        DecodeError: UTF-8/JSON 오류, 객체가 아닌 JSON, 필수 필드 누락 또는 타입 불일치.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8: {exc}") from exc

    try:
        obj = json.loads(line)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"malformed JSON: {exc}") from exc
    except (ValueError, RecursionError) as exc:
        # 정수 자릿수 제한 초과, 과도한 중첩
        raise DecodeError(f"unparseable JSON: {type(exc).__name__}") from exc

    if not isinstance(obj, dict):
        raise DecodeError(f"expected a JSON object, got {type(obj).__name__}")

    src_addr = _parse_addr(obj, "src_addr")
    dst_addr = _parse_addr(obj, "dst_addr")
    n_bytes  = _required_count(obj, "bytes")
    packets  = _required_count(obj, "packets")

    ints = {key: _optional_int(obj, key) for key in _OPTIONAL_INT_FIELDS}
    strs = {key: _optional_str(obj, key) for key in _OPTIONAL_STR_FIELDS}

    start, end = ints["time_flow_start_ns"], ints["time_flow_end_ns"]
    if start is not None and end is not None and end < start:
        # 시간 역전은 기록만 하고 통과
        logger.debug(
            "Flow %s->%s ends before it starts (start=%d end=%d)",
            src_addr, dst_addr, start, end,
        )

    return FlowRecord(
        src_addr = src_addr,
        dst_addr = dst_addr,
        bytes    = n_bytes,
        packets  = packets,
        **ints,
        **strs,
    )
