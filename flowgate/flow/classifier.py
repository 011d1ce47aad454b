"""LAN/WAN 방향 분류기.

출발지·목적지가 사설 대역(LAN)에 속하는지만으로 플로우의 방향을 결정한다.

=========  =========  ==========  ======
src 사설   dst 사설   방향        처리
=========  =========  ==========  ======
예         아니오     LanToWan    보존
아니오     예         WanToLan    보존
예         예         LanToLan    폐기
아니오     아니오     WanToWan    폐기
=========  =========  ==========  ======

IPv6 주소는 private_v6_ranges에 명시된 대역에 속할 때만 사설로 본다.
기본값은 빈 목록이므로 모든 IPv6는 WAN으로 취급된다.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable

from flowgate.errors import ClassificationAmbiguous
from flowgate.flow.models import Direction, FlowRecord

logger = logging.getLogger("flowgate.flow.classifier")

# RFC 1918 사설 IPv4 대역
DEFAULT_PRIVATE_RANGES: tuple[str, ...] = (
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
)

_DIRECTIONS = {
    (True, False):  Direction.LAN_TO_WAN,
    (False, True):  Direction.WAN_TO_LAN,
    (True, True):   Direction.LAN_TO_LAN,
    (False, False): Direction.WAN_TO_WAN,
}


def _parse_networks(cidrs: Iterable[str], version: int) -> tuple:
    """CIDR 문자열 목록을 지정한 IP 버전의 네트워크 튜플로 변환한다.

    Raises:
        ValueError: CIDR 형식이 잘못되었거나 버전이 맞지 않는 경우.
    """
    networks = []
    for cidr in cidrs:
        network = ipaddress.ip_network(str(cidr).strip(), strict=False)
        if network.version != version:
            raise ValueError(f"Expected an IPv{version} range, got {cidr!r}")
        networks.append(network)
    return tuple(networks)


class TrafficClassifier:
    """사설 대역 목록을 가진 상태 없는 분류기.

    생성 이후 내부 상태가 바뀌지 않으므로 여러 워커가 하나의 인스턴스를 공유해도 된다.
    """

    def __init__(
        self,
        private_ranges: Iterable[str] = DEFAULT_PRIVATE_RANGES,
        private_v6_ranges: Iterable[str] = (),
    ) -> None:
        self._v4_networks: tuple[ipaddress.IPv4Network, ...] = _parse_networks(private_ranges, 4)
        self._v6_networks: tuple[ipaddress.IPv6Network, ...] = _parse_networks(private_v6_ranges, 6)
        logger.debug(
            "Classifier ranges: v4=%s v6=%s",
            [str(n) for n in self._v4_networks],
            [str(n) for n in self._v6_networks] or "none (all IPv6 is WAN)",
        )

    @property
    def private_ranges(self) -> list[str]:
        return [str(n) for n in self._v4_networks]

    @property
    def private_v6_ranges(self) -> list[str]:
        return [str(n) for n in self._v6_networks]

    def is_private(self, addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
        """주소가 설정된 사설 대역(LAN)에 속하면 True를 반환한다.

        0.0.0.0 같은 미지정 주소는 어느 대역에도 속하지 않으므로 WAN이다.

        Raises:
            ClassificationAmbiguous: ipaddress 객체가 아닌 값이 전달된 경우.
        """
        if isinstance(addr, ipaddress.IPv4Address):
            return any(addr in net for net in self._v4_networks)
        if isinstance(addr, ipaddress.IPv6Address):
            return any(addr in net for net in self._v6_networks)
        raise ClassificationAmbiguous(f"not an IP address: {addr!r}")

    def classify(self, record: FlowRecord) -> Direction:
        """플로우의 방향을 반환한다. 같은 레코드에 대해 항상 같은 결과를 낸다."""
        key = (self.is_private(record.src_addr), self.is_private(record.dst_addr))
        return _DIRECTIONS[key]


_default_classifier: TrafficClassifier | None = None


def classify(record: FlowRecord) -> Direction:
    """기본 RFC 1918 대역으로 플로우를 분류한다."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = TrafficClassifier()
    return _default_classifier.classify(record)
