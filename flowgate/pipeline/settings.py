"""파이프라인 코어가 소비하는 설정 구조체."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from flowgate.flow.classifier import DEFAULT_PRIVATE_RANGES, TrafficClassifier
from flowgate.utils.config import Config


def _default_workers() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class PipelineSettings:
    """배치, 재시도, 종료 동작을 결정하는 값 모음.

    시간 값은 모두 초 단위다. buffer_hard_ceiling을 지정하지 않으면
    batch_max_records의 10배가 된다.
    """
    private_ranges:        tuple[str, ...] = DEFAULT_PRIVATE_RANGES
    private_v6_ranges:     tuple[str, ...] = ()
    batch_max_records:     int   = 5000
    batch_max_age:         float = 5.0
    buffer_hard_ceiling:   int   = 0
    retry_backoff_base:    float = 0.5
    retry_backoff_max:     float = 30.0
    retry_max_attempts:    int   = 5
    retry_jitter:          float = 0.2
    shutdown_grace_period: float = 10.0
    workers:               int   = field(default_factory=_default_workers)
    queue_size:            int   = 10000

    def __post_init__(self) -> None:
        if self.buffer_hard_ceiling <= 0:
            object.__setattr__(self, "buffer_hard_ceiling", self.batch_max_records * 10)
        self.validate()

    def validate(self) -> None:
        """범위를 벗어난 값이 있으면 ValueError를 던진다."""
        if self.batch_max_records < 1:
            raise ValueError("batch_max_records must be >= 1")
        if self.batch_max_age <= 0:
            raise ValueError("batch_max_age must be > 0")
        if self.buffer_hard_ceiling < self.batch_max_records:
            raise ValueError("buffer_hard_ceiling must be >= batch_max_records")
        if self.retry_backoff_base <= 0 or self.retry_backoff_max < self.retry_backoff_base:
            raise ValueError("retry backoff requires 0 < base <= max")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be >= 1")
        if not 0 <= self.retry_jitter < 1:
            raise ValueError("retry_jitter must be in [0, 1)")
        if self.shutdown_grace_period <= 0:
            raise ValueError("shutdown_grace_period must be > 0")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        # CIDR 검증은 분류기 생성과 같은 규칙을 따른다
        TrafficClassifier(self.private_ranges, self.private_v6_ranges)

    def build_classifier(self) -> TrafficClassifier:
        return TrafficClassifier(self.private_ranges, self.private_v6_ranges)

    @classmethod
    def from_config(cls, config: Config) -> PipelineSettings:
        """Config의 pipeline 섹션에서 설정을 만든다. 빠진 키는 기본값을 쓴다."""
        section = config.section("pipeline")
        kwargs: dict = {}

        mapping = {
            "batch_max_records":     ("batch_max_records", int),
            "batch_max_age":         ("batch_max_age_seconds", float),
            "buffer_hard_ceiling":   ("buffer_hard_ceiling", int),
            "retry_backoff_base":    ("retry_backoff_base_seconds", float),
            "retry_backoff_max":     ("retry_backoff_max_seconds", float),
            "retry_max_attempts":    ("retry_max_attempts", int),
            "retry_jitter":          ("retry_jitter", float),
            "shutdown_grace_period": ("shutdown_grace_period_seconds", float),
            "queue_size":            ("queue_size", int),
        }
        for attr, (key, cast) in mapping.items():
            if section.get(key) is not None:
                kwargs[attr] = cast(section[key])

        # 0 또는 미지정이면 CPU 수
        workers = section.get("workers")
        if workers:
            kwargs["workers"] = int(workers)

        if section.get("private_ranges") is not None:
            kwargs["private_ranges"] = tuple(section["private_ranges"])
        if section.get("private_v6_ranges") is not None:
            kwargs["private_v6_ranges"] = tuple(section["private_v6_ranges"])

        unknown = set(section) - {k for k, _ in mapping.values()} - {
            "workers", "private_ranges", "private_v6_ranges",
        }
        if unknown:
            raise ValueError(f"Unknown pipeline settings: {sorted(unknown)}")

        return cls(**kwargs)
