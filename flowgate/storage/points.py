"""시계열 포인트 모델과 InfluxDB line protocol 직렬화."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from flowgate.flow.models import ClassifiedRecord

DEFAULT_MEASUREMENT = "netflow"

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ ", "\n": r"\n"})
_KEY_ESCAPES         = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ ", "\n": r"\n"})

_OPTIONAL_FIELDS = (
    "src_port",
    "dst_port",
    "sampling_rate",
    "sequence_num",
    "time_flow_start_ns",
    "time_flow_end_ns",
)


def _escape_field_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_field(value: int | float | str | bool) -> str:
    """필드 값을 line protocol 표기로 변환한다 (정수는 i 접미사)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    return f'"{_escape_field_string(str(value))}"'


@dataclass(frozen=True)
class Point:
    """measurement, 태그, 필드, 나노초 타임스탬프로 구성된 포인트 한 개."""
    measurement:  str
    tags:         dict[str, str] = field(default_factory=dict)
    fields:       dict[str, int | float | str | bool] = field(default_factory=dict)
    timestamp_ns: int | None = None

    def to_line(self) -> str:
        """InfluxDB line protocol 한 줄로 직렬화한다.

        빈 태그 값은 line protocol에서 허용되지 않으므로 생략한다.
        필드가 하나도 없으면 ValueError를 던진다.
        """
        if not self.fields:
            raise ValueError(f"Point {self.measurement!r} has no fields")

        parts = [self.measurement.translate(_MEASUREMENT_ESCAPES)]
        for key in sorted(self.tags):
            value = self.tags[key]
            if value == "":
                continue
            parts.append(f"{key.translate(_KEY_ESCAPES)}={value.translate(_KEY_ESCAPES)}")
        head = ",".join(parts)

        body = ",".join(
            f"{key.translate(_KEY_ESCAPES)}={_format_field(value)}"
            for key, value in self.fields.items()
        )
        if self.timestamp_ns is None:
            return f"{head} {body}"
        return f"{head} {body} {self.timestamp_ns}"


def record_to_point(classified: ClassifiedRecord, measurement: str = DEFAULT_MEASUREMENT) -> Point:
    """분류된 플로우 한 건을 포인트 한 개로 변환한다.

    태그: direction, proto, etype, sampler_address, in_if, out_if, flow_type
    필드: bytes, packets, src_addr, dst_addr, src_port, dst_port
          (+ sampling_rate, sequence_num, time_flow_start_ns, time_flow_end_ns)
    타임스탬프: 플로우 종료 시각 → 수신 시각 → 현재 시각 순으로 선택한다.
    """
    flow = classified.record

    tags = {
        "direction":       classified.direction.value,
        "proto":           flow.proto,
        "etype":           flow.etype,
        "sampler_address": flow.sampler_address,
        "in_if":           "" if flow.in_if is None else str(flow.in_if),
        "out_if":          "" if flow.out_if is None else str(flow.out_if),
        "flow_type":       flow.type,
    }

    fields: dict[str, int | float | str | bool] = {
        "bytes":    flow.bytes,
        "packets":  flow.packets,
        "src_addr": str(flow.src_addr),
        "dst_addr": str(flow.dst_addr),
    }
    for name in _OPTIONAL_FIELDS:
        value = getattr(flow, name)
        if value is not None:
            fields[name] = value

    timestamp = flow.timestamp_ns
    if timestamp is None:
        timestamp = time.time_ns()

    return Point(measurement=measurement, tags=tags, fields=fields, timestamp_ns=timestamp)
