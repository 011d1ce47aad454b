"""PipelineSettings 기본값, 검증, Config 변환 테스트."""

from __future__ import annotations

import pytest

from flowgate.flow.classifier import DEFAULT_PRIVATE_RANGES
from flowgate.pipeline.settings import PipelineSettings
from flowgate.utils.config import Config


class TestDefaults:
    def test_defaults(self):
        s = PipelineSettings()
        assert s.private_ranges == DEFAULT_PRIVATE_RANGES
        assert s.private_v6_ranges == ()
        assert s.batch_max_records == 5000
        assert s.batch_max_age == 5.0
        assert s.buffer_hard_ceiling == 50000
        assert s.retry_backoff_base == 0.5
        assert s.retry_backoff_max == 30.0
        assert s.shutdown_grace_period == 10.0
        assert s.workers >= 1

    def test_hard_ceiling_follows_batch_size(self):
        assert PipelineSettings(batch_max_records=10).buffer_hard_ceiling == 100


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"batch_max_records": 0},
        {"batch_max_age": 0},
        {"batch_max_records": 100, "buffer_hard_ceiling": 50},
        {"retry_backoff_base": 0},
        {"retry_backoff_base": 5.0, "retry_backoff_max": 1.0},
        {"retry_max_attempts": 0},
        {"retry_jitter": 1.0},
        {"shutdown_grace_period": 0},
        {"workers": 0},
        {"queue_size": 0},
        {"private_ranges": ("not-a-cidr",)},
        {"private_v6_ranges": ("10.0.0.0/8",)},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            PipelineSettings(**kwargs)


class TestFromConfig:
    def test_reads_pipeline_section(self, config):
        s = PipelineSettings.from_config(config)
        assert s.batch_max_records == 100
        assert s.batch_max_age == 0.5
        assert s.buffer_hard_ceiling == 1000
        assert s.retry_max_attempts == 3
        assert s.shutdown_grace_period == 2.0
        assert s.workers == 2

    def test_empty_section_uses_defaults(self):
        s = PipelineSettings.from_config(Config.from_dict({}))
        assert s.batch_max_records == 5000

    def test_workers_zero_means_cpu_count(self):
        s = PipelineSettings.from_config(Config.from_dict({"pipeline": {"workers": 0}}))
        assert s.workers >= 1

    def test_private_ranges_from_yaml(self):
        cfg = Config.from_dict({"pipeline": {
            "private_ranges": ["10.0.0.0/8"],
            "private_v6_ranges": ["fd00::/8"],
        }})
        s = PipelineSettings.from_config(cfg)
        assert s.private_ranges == ("10.0.0.0/8",)
        assert s.build_classifier().private_v6_ranges == ["fd00::/8"]

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="batch_size"):
            PipelineSettings.from_config(Config.from_dict({"pipeline": {"batch_size": 10}}))

    def test_env_override(self, tmp_path, monkeypatch):
        config_file = tmp_path / "c.yaml"
        config_file.write_text("flowgate:\n  pipeline:\n    batch_max_records: 10\n")
        monkeypatch.setenv("FLOWGATE_BATCH_SIZE", "250")
        monkeypatch.setenv("FLOWGATE_RETRY_DELAY_MS", "1000")
        s = PipelineSettings.from_config(Config.load(config_file))
        assert s.batch_max_records == 250
        assert s.retry_backoff_base == 1.0
