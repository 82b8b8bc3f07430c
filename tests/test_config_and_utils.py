import json
import logging
from pathlib import Path

import pytest

from config.config import SystemConfig, ZKConfig, load_config, save_config
from utils.utils import (
    PerformanceMonitor,
    convert_to_serializable,
    create_performance_report,
    format_duration,
    save_results,
)
from zk.field import PRIME


class TestConfig:

    def test_defaults(self):
        config = SystemConfig()
        assert config.zk_config.census_depth == 10
        assert config.zk_config.levels == 9
        assert config.zk_config.backend == "transcript"
        assert config.zk_config.nullifier_ttl_seconds is None
        assert config.log_level == "INFO"

    def test_invalid_depth(self):
        with pytest.raises(ValueError):
            ZKConfig(census_depth=0)

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == SystemConfig()

    def test_yaml_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        original = SystemConfig(
            zk_config=ZKConfig(census_depth=6, max_batch_size=7, nullifier_ttl_seconds=60),
            log_dir=tmp_path / "logs",
            enable_debug_mode=True,
        )
        save_config(original, path)
        loaded = load_config(path)

        assert loaded.zk_config == original.zk_config
        assert loaded.log_dir == original.log_dir
        assert loaded.log_level == "DEBUG"

    def test_partial_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("zk_proofs:\n  census_depth: 3\n")
        config = load_config(path)
        assert config.zk_config.census_depth == 3
        assert config.zk_config.max_batch_size == ZKConfig().max_batch_size

    def test_quoted_numbers_coerced(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "zk_proofs:\n"
            "  census_depth: '5'\n"
            "  max_batch_size: '20'\n"
            "  nullifier_ttl_seconds: '600'\n")
        config = load_config(path)
        assert config.zk_config.census_depth == 5
        assert config.zk_config.levels == 4
        assert config.zk_config.max_batch_size == 20
        assert config.zk_config.nullifier_ttl_seconds == 600

    def test_non_numeric_depth_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("zk_proofs:\n  census_depth: deep\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_malformed_yaml_falls_back(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text("zk_proofs: [unclosed\n")
        with caplog.at_level(logging.WARNING):
            config = load_config(path)
        assert config == SystemConfig()
        assert "Could not load config file" in caplog.text


class TestUtils:

    def test_performance_monitor_summary(self):
        monitor = PerformanceMonitor()
        for _ in range(3):
            with monitor.start_operation("prove_vote"):
                sum(range(1000))
        summary = monitor.get_summary()

        assert summary['total_operations'] == 3
        assert summary['operations']['prove_vote']['count'] == 3
        assert "PROVE_VOTE" in create_performance_report(monitor)

    def test_empty_report(self):
        assert "No performance data available." in create_performance_report(PerformanceMonitor())

    def test_field_elements_serialized_as_hex(self):
        data = convert_to_serializable({'root': PRIME - 1, 'count': 3, 'proof': b"\x01", 'ok': True})
        assert data == {'root': hex(PRIME - 1), 'count': 3, 'proof': "01", 'ok': True}

    def test_save_results(self, tmp_path):
        path = tmp_path / "out" / "results.json"
        save_results({'census_root': 2 ** 200, 'path': Path("a")}, path)
        saved = json.loads(path.read_text())
        assert saved['data'] == {'census_root': hex(2 ** 200), 'path': "a"}
        assert 'system_info' in saved['metadata']

    @pytest.mark.parametrize("seconds,expected", [(0.5, "500.0ms"), (2, "2.00s"), (125, "2m 5.0s")])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected
