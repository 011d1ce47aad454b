"""LAN/WAN 방향 분류기 테스트."""

from __future__ import annotations

import ipaddress

import pytest

from flowgate.errors import ClassificationAmbiguous
from flowgate.flow.classifier import DEFAULT_PRIVATE_RANGES, TrafficClassifier, classify
from flowgate.flow.models import Direction, FlowRecord


def _make_flow(src: str, dst: str) -> FlowRecord:
    return FlowRecord(
        src_addr=ipaddress.ip_address(src),
        dst_addr=ipaddress.ip_address(dst),
        bytes=100,
        packets=1,
    )


PRIVATE = ["10.0.0.1", "10.255.255.255", "172.16.0.1", "172.31.255.254", "192.168.0.1", "192.168.1.10"]
PUBLIC  = ["8.8.8.8", "1.1.1.1", "172.15.255.255", "172.32.0.1", "192.169.0.1", "11.0.0.1", "0.0.0.0"]


class TestTruthTable:
    def setup_method(self):
        self.classifier = TrafficClassifier()

    @pytest.mark.parametrize("src", PRIVATE)
    @pytest.mark.parametrize("dst", PUBLIC)
    def test_lan_to_wan(self, src, dst):
        assert self.classifier.classify(_make_flow(src, dst)) is Direction.LAN_TO_WAN

    @pytest.mark.parametrize("src", PUBLIC)
    @pytest.mark.parametrize("dst", PRIVATE)
    def test_wan_to_lan(self, src, dst):
        assert self.classifier.classify(_make_flow(src, dst)) is Direction.WAN_TO_LAN

    def test_lan_to_lan(self):
        direction = self.classifier.classify(_make_flow("192.168.1.10", "192.168.1.33"))
        assert direction is Direction.LAN_TO_LAN
        assert not direction.kept

    def test_wan_to_wan(self):
        direction = self.classifier.classify(_make_flow("8.8.8.8", "1.1.1.1"))
        assert direction is Direction.WAN_TO_WAN
        assert not direction.kept

    def test_dropped_iff_same_side(self):
        for src in PRIVATE + PUBLIC:
            for dst in PRIVATE + PUBLIC:
                flow = _make_flow(src, dst)
                same_side = self.classifier.is_private(flow.src_addr) == self.classifier.is_private(flow.dst_addr)
                assert (not self.classifier.classify(flow).kept) == same_side

    def test_idempotent(self):
        flow = _make_flow("192.168.1.10", "8.8.8.8")
        assert self.classifier.classify(flow) == self.classifier.classify(flow)

    def test_unspecified_address_is_wan(self):
        assert self.classifier.classify(_make_flow("0.0.0.0", "10.0.0.1")) is Direction.WAN_TO_LAN
        assert self.classifier.classify(_make_flow("0.0.0.0", "8.8.8.8")) is Direction.WAN_TO_WAN

    def test_module_level_classify_uses_rfc1918(self):
        assert classify(_make_flow("10.1.2.3", "8.8.4.4")) is Direction.LAN_TO_WAN


class TestIPv6Policy:
    def test_ipv6_is_wan_by_default(self):
        classifier = TrafficClassifier()
        assert classifier.private_v6_ranges == []
        assert classifier.classify(_make_flow("fd00::1", "2001:db8::1")) is Direction.WAN_TO_WAN

    def test_ipv6_private_ranges_configurable(self):
        classifier = TrafficClassifier(private_v6_ranges=["fd00::/8"])
        assert classifier.classify(_make_flow("fd00::1", "2001:db8::1")) is Direction.LAN_TO_WAN
        assert classifier.classify(_make_flow("2001:db8::1", "fd12::1")) is Direction.WAN_TO_LAN

    def test_mixed_family_flow(self):
        classifier = TrafficClassifier()
        assert classifier.classify(_make_flow("192.168.1.10", "2001:db8::1")) is Direction.LAN_TO_WAN


class TestConfiguration:
    def test_default_ranges(self):
        assert TrafficClassifier().private_ranges == list(DEFAULT_PRIVATE_RANGES)

    def test_custom_ranges(self):
        classifier = TrafficClassifier(private_ranges=["100.64.0.0/10"])
        assert classifier.classify(_make_flow("100.64.1.1", "192.168.1.1")) is Direction.LAN_TO_WAN

    def test_invalid_cidr(self):
        with pytest.raises(ValueError):
            TrafficClassifier(private_ranges=["10.0.0.0/33"])

    def test_version_mismatch(self):
        with pytest.raises(ValueError, match="IPv4"):
            TrafficClassifier(private_ranges=["fd00::/8"])
        with pytest.raises(ValueError, match="IPv6"):
            TrafficClassifier(private_v6_ranges=["10.0.0.0/8"])

    def test_non_address_raises_ambiguous(self):
        with pytest.raises(ClassificationAmbiguous):
            TrafficClassifier().is_private("10.0.0.1")
