"""플로우 정규화 모델 — FlowRecord, Direction, ClassifiedRecord."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class Direction(str, enum.Enum):
    """출발지/목적지의 LAN·WAN 관계.

    값은 스토리지의 direction 태그로 그대로 기록된다.
    """
    LAN_TO_WAN = "LanToWan"
    WAN_TO_LAN = "WanToLan"
    LAN_TO_LAN = "LanToLan"
    WAN_TO_WAN = "WanToWan"

    @property
    def kept(self) -> bool:
        """경계를 넘는 트래픽(업로드/다운로드)만 보존한다."""
        return self in (Direction.LAN_TO_WAN, Direction.WAN_TO_LAN)


@dataclass(frozen=True)
class FlowRecord:
    """익스포터(goflow2 등) JSON 한 건의 정규화된 표현.

    주소는 디코딩 시점에 ipaddress 객체로 변환되어 하류에서 다시 파싱하지 않는다.
    타임스탬프는 epoch 기준 나노초이며, 익스포터가 보내지 않으면 None이다.
    """
    src_addr:           IPAddress
    dst_addr:           IPAddress
    bytes:              int
    packets:            int
    type:               str = ""
    time_received_ns:   int | None = None
    time_flow_start_ns: int | None = None
    time_flow_end_ns:   int | None = None
    proto:              str = ""
    etype:              str = ""
    src_port:           int | None = None
    dst_port:           int | None = None
    in_if:              int | None = None
    out_if:             int | None = None
    sampling_rate:      int | None = None
    sequence_num:       int | None = None
    sampler_address:    str = ""

    @property
    def timestamp_ns(self) -> int | None:
        """포인트 타임스탬프: 플로우 종료 시각, 없으면 수신 시각. 0은 없는 값으로 본다."""
        return self.time_flow_end_ns or self.time_received_ns or None


@dataclass(frozen=True)
class ClassifiedRecord:
    """방향 태그가 붙은 보존 대상 플로우. LanToWan/WanToLan만 존재한다."""
    record:    FlowRecord
    direction: Direction
