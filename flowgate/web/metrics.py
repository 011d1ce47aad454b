"""flowgate용 Prometheus 메트릭 노출."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

CONTENT_TYPE = CONTENT_TYPE_LATEST


def get_metrics_output(registry: CollectorRegistry) -> bytes:
    """관찰자 레지스트리의 Prometheus 텍스트 노출 형식을 생성한다."""
    return generate_latest(registry)
