"""Tests for configuration loading and the NetGuard assembly."""

import os

import pytest
import yaml

from netguard import NetGuard
from netguard.config import DEFAULT_CONFIG, load_config, load_config_from_dict
from netguard.core.guard import WATCHDOG_CONFIG_FILENAME
from netguard.exceptions import ConfigFileNotFoundError, ConfigValidationError
from netguard.rollback.watchdog import CompositeWatchdog, ProcessWatchdog, SystemdWatchdog
from netguard.ruleset import IptablesTool, MemoryRulesetTool


class TestLoadConfig:
    """Tests for YAML loading merged over defaults."""

    def test_defaults(self):
        config = load_config_from_dict({})
        assert config.transaction.window_seconds == 300
        assert config.transaction.state_dir == "/var/lib/netguard"
        assert config.watchdog.backend == "process"
        assert config.watchdog.on_failure == "abort"
        assert config.ruleset.tool == "iptables"
        assert DEFAULT_CONFIG["transaction"]["window_seconds"] == 300

    def test_partial_override_keeps_defaults(self, tmp_path):
        path = tmp_path / "netguard.yaml"
        path.write_text(
            "transaction:\n"
            "  window_seconds: 60\n"
            "ruleset:\n"
            "  wan_interface: eth0\n"
            "logging:\n"
            "  level: debug\n"
        )

        config = load_config(str(path))

        assert config.transaction.window_seconds == 60
        assert config.transaction.lock_timeout == 30.0
        assert config.ruleset.wan_interface == "eth0"
        assert config.ruleset.lan_interfaces == ["enp2s0", "wlo1", "br0"]
        assert config.logging.level == "DEBUG"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("transaction: [unclosed\n")
        with pytest.raises(ConfigValidationError):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigValidationError):
            load_config(str(path))

    @pytest.mark.parametrize(
        "data",
        [
            {"transaction": {"window_seconds": 0}},
            {"watchdog": {"backend": "cron"}},
            {"watchdog": {"on_failure": "ignore"}},
            {"ruleset": {"tool": "nftables"}},
            {"observability": {"exporters": ["otel"]}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ConfigValidationError):
            load_config_from_dict(data)


class TestNetGuardAssembly:
    """Tests for building a NetGuard from configuration."""

    def test_memory_tool_in_state_dir(self, guard):
        assert isinstance(guard.tool, MemoryRulesetTool)
        assert guard.coordinator.window_seconds == 300

    def test_iptables_tool(self, tmp_path, watchdog):
        guard = NetGuard.from_dict(
            {"transaction": {"state_dir": str(tmp_path)}, "observability": {"exporters": []}},
            watchdog=watchdog,
        )
        assert isinstance(guard.tool, IptablesTool)

    def test_default_watchdog_stack(self, tmp_path):
        guard = NetGuard.from_dict(
            {
                "transaction": {"state_dir": str(tmp_path)},
                "ruleset": {"tool": "memory"},
                "observability": {"exporters": []},
            }
        )
        watchdog = guard.coordinator._watchdog
        assert isinstance(watchdog, CompositeWatchdog)
        assert isinstance(watchdog.primary, ProcessWatchdog)

    def test_systemd_backend(self, tmp_path):
        guard = NetGuard.from_dict(
            {
                "transaction": {"state_dir": str(tmp_path)},
                "watchdog": {"backend": "systemd", "in_process": False},
                "ruleset": {"tool": "memory"},
                "observability": {"exporters": []},
            }
        )
        assert isinstance(guard.coordinator._watchdog.primary, SystemdWatchdog)

    def test_effective_config_written_for_watchdog(self, tmp_path):
        NetGuard.from_dict(
            {
                "transaction": {"state_dir": str(tmp_path), "window_seconds": 42},
                "ruleset": {"tool": "memory"},
            }
        )

        path = os.path.join(str(tmp_path), WATCHDOG_CONFIG_FILENAME)
        with open(path, encoding="utf-8") as f:
            written = yaml.safe_load(f)

        assert written["transaction"]["window_seconds"] == 42
        assert written["ruleset"]["tool"] == "memory"
        assert written["watchdog"]["in_process"] is False
        assert load_config(path).transaction.state_dir == str(tmp_path)

    def test_from_config(self, tmp_path, watchdog):
        path = tmp_path / "netguard.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "transaction": {"state_dir": str(tmp_path / "state"), "window_seconds": 120},
                    "ruleset": {"tool": "memory"},
                    "observability": {"exporters": []},
                }
            )
        )
        guard = NetGuard.from_config(str(path), watchdog=watchdog)
        assert guard.coordinator.window_seconds == 120
